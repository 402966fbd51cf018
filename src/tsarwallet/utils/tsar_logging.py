# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
'''
HOW TO USE logging in your code:

log = get_ctx_logger("tsarwallet.wallet(backend)")

log.trace("very technical details, like : per-block sync progress. usually unnecessary")
log.info("normal event / milestone")
log.debug("technical details for diagnosis")
log.warning("a non-fatal condition that needs attention")
log.error("handled error")
log.critical("fatal condition")
log.exception("context message when an exception occurs") >automatically include traceback

Context fields (height, address, tx) can be passed with extra={...}; missing
ones render as "-".
'''

from __future__ import annotations

import os, logging, re, json, time, hashlib, zipfile
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

from tsarwallet.utils import config as CFG

# ===== TRACE level (below DEBUG) =====
TRACE = 9
logging.addLevelName(TRACE, "TRACE")
def _trace(self, msg, *a, **k):
    if self.isEnabledFor(TRACE):
        self._log(TRACE, msg, a, **k)
logging.Logger.trace = _trace

_CTX_FIELDS = ("height", "address", "tx")
# hashes and addresses are long; plain output keeps a recognisable prefix only
_CTX_SHORTEN = {"address": 14, "tx": 12}

_DEFAULT_FMT = (
    "%(asctime)s [%(levelname)s] %(name)s h=%(height)s tx=%(tx)s: %(message)s"
)
_DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


# =========================
# 1) Filters
# =========================

class RedactFilter(logging.Filter):
    """Strips seeds, labelled private keys and passwords from the rendered message."""
    RE_SEED = re.compile(r"\b([a-z]{3,}\s){11,23}[a-z]{3,}\b", re.I)
    # tx hashes are also 64 hex, so only redact when labelled as a key
    RE_PRIV = re.compile(r"((?:private|secret|spend|view)[\w ]{0,12}key\W{1,3})[0-9a-f]{64}\b", re.I)
    RE_PWD  = re.compile(r"(password\s*[=:]\s*)\S+", re.I)

    def filter(self, record):
        msg = record.getMessage()
        msg = self.RE_SEED.sub("[REDACTED_MNEMONIC]", msg)
        msg = self.RE_PRIV.sub(r"\1[REDACTED_KEY]", msg)
        msg = self.RE_PWD.sub(r"\1[REDACTED]", msg)
        record.msg, record.args = msg, None
        return True


class RateLimitFilter(logging.Filter):
    """Drops repeats of the same INFO/DEBUG/TRACE template inside `min_interval`.

    Warnings and errors always pass, a failing sync loop must stay visible.
    """

    MAX_KEYS = 4096

    def __init__(self, min_interval: float = 2.0):
        super().__init__()
        self.min_interval = float(min_interval)
        self._last: dict[str, float] = {}

    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        key = hashlib.blake2b(f"{record.name}|{record.levelno}|{record.msg}".encode(), digest_size=8).hexdigest()
        now = time.monotonic()
        if (now - self._last.get(key, float("-inf"))) < self.min_interval:
            return False
        if len(self._last) >= self.MAX_KEYS:
            self._last.clear()
        self._last[key] = now
        return True


# =========================
# 2) Formatters & adapter
# =========================

class JsonFormatter(logging.Formatter):
    def format(self, record):
        d = {
            "ts": self.formatTime(record, _DEFAULT_DATEFMT),
            "lvl": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        for k in _CTX_FIELDS:
            v = getattr(record, k, None)
            if v not in (None, "-"):
                d[k] = v
        if record.exc_info:
            d["exc"] = self.formatException(record.exc_info)
        return json.dumps(d, ensure_ascii=False)


class SafeFormatter(logging.Formatter):
    def format(self, record):
        for k in _CTX_FIELDS:
            v = getattr(record, k, None)
            if v is None:
                setattr(record, k, "-")
            elif k in _CTX_SHORTEN and isinstance(v, str) and len(v) > _CTX_SHORTEN[k]:
                setattr(record, k, v[:_CTX_SHORTEN[k]] + "..")
        return super().format(record)


class ContextAdapter(logging.LoggerAdapter):
    """Merges bound context (e.g. an address) with per-call extra={...}."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        for k in _CTX_FIELDS:
            extra.setdefault(k, (self.extra or {}).get(k, "-"))
        return msg, kwargs

    def isEnabledFor(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def trace(self, msg, *args, **kwargs):
        if self.logger.isEnabledFor(TRACE):
            self.log(TRACE, msg, *args, **kwargs)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "tsarwallet")


def get_ctx_logger(name: str = "tsarwallet", **ctx) -> ContextAdapter:
    return ContextAdapter(get_logger(name), ctx)


# =========================
# 3) Setup
# =========================

def _level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    lvl = logging.getLevelName(str(level).upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def _wallet_handler(handler: logging.Handler, as_json: bool, rate_seconds: float, fmt: str) -> logging.Handler:
    handler.setFormatter(JsonFormatter() if as_json else SafeFormatter(fmt, _DEFAULT_DATEFMT))
    handler.addFilter(RedactFilter())
    if rate_seconds > 0.0:
        handler.addFilter(RateLimitFilter(rate_seconds))
    return handler


def setup_logging(
    log_file: str | os.PathLike | None = None,
    level: int | str | None = None,
    to_console: bool | None = None,
    force: bool = False,
    fmt: str = _DEFAULT_FMT,
) -> logging.Logger:
    """Install the rotating wallet log (plus optional console) on the root logger.

    Every argument left as None falls back to the LOG_* values in config.
    """
    lvl = _level(CFG.LOG_LEVEL if level is None else level)
    log_path = Path(CFG.LOG_PATH if log_file is None else log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    if to_console is None:
        to_console = bool(CFG.LOG_TO_CONSOLE)
    as_json = str(CFG.LOG_FORMAT).lower() == "json"

    handlers: list[logging.Handler] = [
        _wallet_handler(
            RotatingFileHandler(log_path, maxBytes=int(CFG.LOG_ROTATE_MAX_BYTES),
                                backupCount=int(CFG.LOG_BACKUP_COUNT), encoding="utf-8", delay=True),
            as_json, float(CFG.LOG_FILE_RATE_LIMIT_SECONDS), fmt,
        )
    ]
    if to_console:
        handlers.append(_wallet_handler(logging.StreamHandler(), as_json, float(CFG.LOG_RATE_LIMIT_SECONDS), fmt))

    logging.basicConfig(level=lvl, handlers=handlers, force=force)
    root = get_logger()
    root.trace("Logging configured: level=%s file=%s format=%s console=%s",
               logging.getLevelName(lvl), log_path, ("json" if as_json else "plain"), to_console)
    return root


def export_log_bundle(path: str = "tsarwallet_logs_bundle.zip") -> Path:
    """Zip the active log file and its rotated backups for bug reports."""
    out = Path(path)
    base = Path(CFG.LOG_PATH)
    with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for i in range(int(CFG.LOG_BACKUP_COUNT) + 1):
            p = base if i == 0 else base.with_name(f"{base.name}.{i}")
            if p.exists():
                zf.write(p, arcname=p.name)
    return out
