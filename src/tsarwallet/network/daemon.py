# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Daemon access for the wallet.

`Daemon` is the interface the backend, the synchronizer and the
transaction builder talk to. `NodeDaemon` implements it over one TCP
connection per request using the framing in `network.protocol`, and keeps
heights, peers, hashrate and the node fee cached by a background thread.
"""
from __future__ import annotations

import abc, secrets, socket, ssl, threading, time
from typing import Any, Dict, List, Optional, Tuple

# ---------------- Local Project ----------------
from .protocol import send_json, recv_json
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.network(daemon)")

_last_log_gate: Dict[str, float] = {}


def _throttle(key: str, interval_sec: float) -> bool:
    now = time.time()
    last = _last_log_gate.get(key, 0.0)
    if now - last >= interval_sec:
        _last_log_gate[key] = now
        return True
    return False


class Daemon(abc.ABC):
    @abc.abstractmethod
    def init(self) -> None: ...

    @abc.abstractmethod
    def stop(self) -> None: ...

    @abc.abstractmethod
    def network_block_count(self) -> int: ...

    @abc.abstractmethod
    def local_daemon_block_count(self) -> int: ...

    @abc.abstractmethod
    def peer_count(self) -> int: ...

    @abc.abstractmethod
    def hashrate(self) -> int: ...

    @abc.abstractmethod
    def node_fee(self) -> Tuple[int, str]:
        """Returns (amount, address), (0, "") when the node charges nothing."""

    @abc.abstractmethod
    def node_address(self) -> Tuple[str, int, bool]: ...

    @abc.abstractmethod
    def swap_node(self, host: str, port: int, ssl_enabled: bool) -> None: ...

    @abc.abstractmethod
    def is_online(self) -> bool: ...

    @abc.abstractmethod
    def get_wallet_sync_data(self, start_height: int, block_count: int) -> Optional[List[Dict[str, Any]]]:
        """Blocks from start_height on, [] at the tip, None when the daemon could not be reached."""

    @abc.abstractmethod
    def send_transaction(self, tx: Dict[str, Any]) -> Tuple[bool, str]: ...


class NodeDaemon(Daemon):
    def __init__(self, host: str = CFG.DEFAULT_DAEMON_HOST, port: int = CFG.DEFAULT_DAEMON_PORT,
                 ssl_enabled: bool = CFG.DEFAULT_DAEMON_SSL) -> None:
        self.host = host
        self.port = int(port)
        self.ssl_enabled = bool(ssl_enabled)

        self._state_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._last_send_ts = 0.0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._online = False
        self._local_height = 0
        self._network_height = 0
        self._peers = 0
        self._hashrate = 0
        self._fee_amount = 0
        self._fee_address = ""

    # ----------- Lifecycle -----------
    def init(self) -> None:
        self._stop.clear()
        self.update_daemon_info()
        self.update_fee_info()
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._refresh_loop, name="daemon-refresh", daemon=True)
            self._thread.start()
        log.info("[init] daemon %s:%d ssl=%s online=%s", self.host, self.port, self.ssl_enabled, self._online)

    def stop(self) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=CFG.RPC_TIMEOUT + 1.0)
        self._thread = None

    def swap_node(self, host: str, port: int, ssl_enabled: bool) -> None:
        self.stop()
        with self._state_lock:
            self.host, self.port, self.ssl_enabled = host, int(port), bool(ssl_enabled)
            self._online = False
            self._local_height = self._network_height = self._peers = self._hashrate = 0
            self._fee_amount, self._fee_address = 0, ""
        self.init()

    def _refresh_loop(self) -> None:
        while not self._stop.wait(CFG.DAEMON_UPDATE_INTERVAL):
            self.update_daemon_info()

    # ----------- Core Send -----------
    def _pace(self) -> None:
        interval = float(CFG.DAEMON_RPC_MIN_INTERVAL or 0.0)
        if interval <= 0.0:
            return
        with self._send_lock:
            now = time.time()
            wait = (self._last_send_ts + interval) - now
            if wait > 0:
                time.sleep(wait)
                now = time.time()
            self._last_send_ts = now

    def _connect(self) -> socket.socket:
        sock = socket.create_connection((self.host, self.port), timeout=CFG.RPC_TIMEOUT)
        if self.ssl_enabled:
            ctx = ssl.create_default_context()
            sock = ctx.wrap_socket(sock, server_hostname=self.host)
        return sock

    def request(self, message: Dict[str, Any]) -> Dict[str, Any]:
        req = secrets.token_hex(6)
        rpc = message.get("type")
        try:
            self._pace()
            with self._connect() as s:
                send_json(s, message)
                resp = recv_json(s, timeout=CFG.RPC_TIMEOUT)
        except OSError as e:
            if _throttle(f"send_err_{rpc}", 5.0):
                log.warning("[request] %s to %s:%d failed (req=%s): %s", rpc, self.host, self.port, req, e)
            with self._state_lock:
                self._online = False
            return {"error": f"Daemon unreachable: {e}"}

        if resp is None:
            if _throttle("no_response", 10.0):
                log.error("[request] no response for %s (req=%s)", rpc, req)
            return {"error": "No response from daemon"}
        with self._state_lock:
            self._online = True
        return resp

    # ----------- Cached info -----------
    def update_daemon_info(self) -> bool:
        resp = self.request({"type": "GET_INFO"})
        if "error" in resp:
            return False
        with self._state_lock:
            self._local_height = int(resp.get("height", 0) or 0)
            self._network_height = int(resp.get("network_height", self._local_height) or 0)
            self._peers = int(resp.get("peers", 0) or 0)
            self._hashrate = int(resp.get("hashrate", 0) or 0)
        log.trace("[update_daemon_info] local=%d network=%d peers=%d", self._local_height, self._network_height, self._peers)
        return True

    def update_fee_info(self) -> bool:
        resp = self.request({"type": "GET_FEE_INFO"})
        if "error" in resp:
            return False
        with self._state_lock:
            self._fee_amount = int(resp.get("amount", 0) or 0)
            self._fee_address = str(resp.get("address", "") or "")
        return True

    def network_block_count(self) -> int:
        with self._state_lock:
            return self._network_height

    def local_daemon_block_count(self) -> int:
        with self._state_lock:
            return self._local_height

    def peer_count(self) -> int:
        with self._state_lock:
            return self._peers

    def hashrate(self) -> int:
        with self._state_lock:
            return self._hashrate

    def node_fee(self) -> Tuple[int, str]:
        with self._state_lock:
            if self._fee_amount <= 0 or not self._fee_address:
                return 0, ""
            return self._fee_amount, self._fee_address

    def node_address(self) -> Tuple[str, int, bool]:
        return self.host, self.port, self.ssl_enabled

    def is_online(self) -> bool:
        with self._state_lock:
            return self._online

    # ----------- Wallet RPCs -----------
    def get_wallet_sync_data(self, start_height: int, block_count: int) -> Optional[List[Dict[str, Any]]]:
        resp = self.request({
            "type": "GET_WALLET_SYNC_DATA",
            "start_height": int(start_height),
            "block_count": int(block_count),
        })
        if "error" in resp:
            return None
        blocks = resp.get("blocks")
        if not isinstance(blocks, list):
            log.warning("[get_wallet_sync_data] malformed response from %s:%d", self.host, self.port)
            return None
        return blocks

    def send_transaction(self, tx: Dict[str, Any]) -> Tuple[bool, str]:
        resp = self.request({"type": "SEND_TRANSACTION", "tx": tx})
        if "error" in resp:
            return False, str(resp["error"])
        if resp.get("status") != "ok":
            return False, str(resp.get("reason") or "Transaction rejected")
        return True, ""
