# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""Length-prefixed JSON frames: 4-byte big-endian length || NETWORK_MAGIC || payload."""

import errno, json, socket, struct
from typing import Any, Dict, Optional

# ---------------- Local Project ----------------
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger, TRACE
log = get_ctx_logger("tsarwallet.network(protocol)")


POSIX_DISCONNECT = {errno.ECONNRESET, errno.EPIPE, errno.ECONNABORTED, errno.ETIMEDOUT}

def is_disconnect_exc(e: BaseException) -> bool:
    if isinstance(e, (ConnectionError, TimeoutError, socket.timeout)):
        return True
    if isinstance(e, OSError):
        return getattr(e, "errno", None) in POSIX_DISCONNECT
    return False


def send_message(sock: socket.socket, payload: bytes) -> None:
    if len(payload) + len(CFG.NETWORK_MAGIC) > CFG.MAX_MSG:
        raise ValueError("Message too large")

    body = CFG.NETWORK_MAGIC + payload
    n = len(body)
    sock.sendall(struct.pack(">I", n) + body)

    if log.isEnabledFor(TRACE):
        log.trace("[send_message] sent %s bytes", n)


def recv_message(sock: socket.socket, timeout: Optional[float] = None) -> Optional[bytes]:
    """Returns the payload, or None on a malformed frame or a closed connection."""
    if timeout is not None:
        sock.settimeout(timeout)
    try:
        hdr = recv_exact(sock, 4)
        n = struct.unpack(">I", hdr)[0]
        if n <= 0 or n > CFG.MAX_MSG:
            log.warning("[recv_message] frame length %d out of bounds", n)
            return None
        body = recv_exact(sock, n)
    except OSError as e:
        if is_disconnect_exc(e):
            log.debug("[recv_message] peer closed (%s)", e)
            return None
        raise
    if not body.startswith(CFG.NETWORK_MAGIC):
        log.warning("[recv_message] frame without network magic dropped")
        return None
    return body[len(CFG.NETWORK_MAGIC):]


def recv_exact(sock: socket.socket, n: int) -> bytes:
    buf = b""
    while len(buf) < n:
        part = sock.recv(n - len(buf))
        if not part:
            raise ConnectionError("Connection closed")
        buf += part

    if log.isEnabledFor(TRACE):
        log.trace("[recv_exact] got %s bytes", len(buf))
    return buf


def send_json(sock: socket.socket, obj: Dict[str, Any]) -> None:
    send_message(sock, json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def recv_json(sock: socket.socket, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
    raw = recv_message(sock, timeout=timeout)
    if raw is None:
        return None
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        log.warning("[recv_json] undecodable payload of %d bytes", len(raw))
        return None
    return obj if isinstance(obj, dict) else None
