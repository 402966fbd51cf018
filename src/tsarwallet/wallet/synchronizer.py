# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Background chain scanner.

Pulls blocks from the daemon in batches and hands every output paying one
of our public spend keys, and every spend of one of our key images, to the
sub-wallet registry. The pause flag is checked between blocks and while
idle, which bounds how long a foreground pause request waits.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

# ---------------- Local Project ----------------
from ..core.errors import ErrorCode, WalletError
from ..core.keys import derive_key_image
from ..core.types import Transaction, TransactionInput
from ..utils.helpers import timestamp_to_scan_height
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.wallet(synchronizer)")


class WalletSynchronizer:
    def __init__(self, daemon, start_height: int, start_timestamp: int, private_view_key: str):
        self.daemon = daemon
        self.start_height = int(start_height)
        self.start_timestamp = int(start_timestamp)
        self.private_view_key = private_view_key
        self.sub_wallets = None

        self._height = self._initial_height()
        self._last_known_block_hashes: List[Dict[str, Any]] = []
        self._checkpoints: List[Dict[str, Any]] = []
        self._end_scan_height: Optional[int] = None
        self._resume_height = 0
        self._range_start = 0

        self._cond = threading.Condition(threading.RLock())
        self._pause_requested = False
        self._paused = False
        self._stop = threading.Event()
        self._wakeup = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _initial_height(self) -> int:
        return max(self.start_height, timestamp_to_scan_height(self.start_timestamp))

    # ---------------- wiring ----------------

    def set_sub_wallets(self, sub_wallets) -> None:
        self.sub_wallets = sub_wallets

    def initialize_after_load(self, daemon) -> None:
        self.daemon = daemon

    # ---------------- thread control ----------------

    def start(self) -> None:
        if self.sub_wallets is None:
            raise RuntimeError("synchronizer started without a sub-wallet registry")
        if self.is_running():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="wallet-sync", daemon=True)
        self._thread.start()
        log.info("[start] synchronizer running from height %d", self._height)

    def stop(self) -> None:
        self._stop.set()
        self._wakeup.set()
        with self._cond:
            self._cond.notify_all()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=CFG.RPC_TIMEOUT + CFG.SYNC_PAUSE_ACK_POLL + 1.0)
        self._thread = None
        log.debug("[stop] synchronizer stopped at height %d", self._height)

    def is_running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def is_sync_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    # ---------------- pause protocol ----------------

    def request_pause(self) -> None:
        with self._cond:
            self._pause_requested = True
        self._wakeup.set()

    def wait_paused(self, timeout: float) -> bool:
        """True once the thread sits at its pause point, or when no thread is running."""
        with self._cond:
            return self._cond.wait_for(lambda: self._paused or not self.is_running(), timeout=timeout)

    def resume(self) -> None:
        with self._cond:
            self._pause_requested = False
            self._cond.notify_all()

    def _pause_point(self) -> bool:
        with self._cond:
            if not self._pause_requested:
                return False
            self._paused = True
            self._cond.notify_all()
            while self._pause_requested and not self._stop.is_set():
                self._cond.wait()
            self._paused = False
            return True

    def _should_yield(self) -> bool:
        return self._pause_requested or self._stop.is_set()

    # ---------------- main loop ----------------

    def _run(self) -> None:
        while not self._stop.is_set():
            if self._pause_point():
                continue
            try:
                progressed = self._sync_batch()
            except (KeyError, TypeError, ValueError):
                log.exception("[_run] malformed sync data at height %d", self._height)
                self._idle(CFG.SYNC_ERROR_BACKOFF)
                continue
            if not progressed:
                self._idle(CFG.SYNC_IDLE_INTERVAL)

    def _idle(self, seconds: float) -> None:
        self._wakeup.wait(seconds)
        self._wakeup.clear()

    def _sync_batch(self) -> bool:
        if self._end_scan_height is not None and self._height > self._end_scan_height:
            # blocks between the old tip and the range start were never scanned
            if self._resume_height < self._range_start:
                target = self._resume_height
            else:
                target = max(self._resume_height, self._height)
            log.info("[_sync_batch] range scan done at %d, resuming at %d", self._end_scan_height, target)
            self._height = target
            self._end_scan_height = None

        count = int(CFG.SYNC_BLOCK_BATCH)
        if self._end_scan_height is not None:
            count = min(count, self._end_scan_height - self._height + 1)

        blocks = self.daemon.get_wallet_sync_data(self._height, count)
        if blocks is None:
            log.debug("[_sync_batch] daemon unavailable, backing off")
            self._idle(CFG.SYNC_ERROR_BACKOFF)
            return True
        if not blocks:
            return False

        for block in blocks:
            if self._should_yield():
                return True
            height = int(block["height"])
            if height != self._height:
                log.warning("[_sync_batch] daemon sent block %d, expected %d", height, self._height)
                return False
            self._process_block(block)
        return True

    def _process_block(self, block: Dict[str, Any]) -> None:
        height = int(block["height"])
        timestamp = int(block.get("timestamp", 0))
        for tx in block.get("transactions", []):
            self._process_transaction(tx, height, timestamp)

        self._store_block_hash(height, str(block.get("hash", "")))
        self._height = height + 1
        log.trace("[_process_block] scanned block", extra={"height": height})

    def _process_transaction(self, tx: Dict[str, Any], height: int, timestamp: int) -> None:
        tx_hash = str(tx["hash"])
        transfers: Dict[str, int] = {}

        for inp in tx.get("inputs", []):
            owner = self.sub_wallets.mark_input_as_spent(str(inp["key_image"]), height)
            if owner is not None:
                transfers[owner] = transfers.get(owner, 0) - int(inp.get("amount", 0))

        is_coinbase = bool(tx.get("is_coinbase", False))
        unlock_time = int(tx.get("unlock_time", 0))
        for out in tx.get("outputs", []):
            key = str(out["key"])
            if not self.sub_wallets.has_public_spend_key(key):
                continue
            index = int(out.get("index", 0))
            amount = int(out["amount"])
            self.sub_wallets.store_transaction_input(key, TransactionInput(
                key_image=derive_key_image(key, tx_hash, index),
                amount=amount,
                block_height=height,
                transaction_hash=tx_hash,
                output_index=index,
                public_spend_key=key,
                unlock_time=unlock_time,
                is_coinbase=is_coinbase,
            ))
            transfers[key] = transfers.get(key, 0) + amount

        if transfers:
            self.sub_wallets.add_transaction(Transaction(
                hash=tx_hash,
                transfers=transfers,
                fee=int(tx.get("fee", 0)),
                block_height=height,
                timestamp=timestamp,
                payment_id=str(tx.get("payment_id", "") or ""),
                unlock_time=unlock_time,
                is_coinbase=is_coinbase,
            ))
            log.debug("[_process_transaction] found transaction", extra={"height": height, "tx": tx_hash})

    def _drop_hashes(self, low: int, high: Optional[int] = None) -> None:
        """Forget stored hashes with low <= height (<= high when given)."""
        def keep(b):
            return b["height"] < low or (high is not None and b["height"] > high)
        self._last_known_block_hashes = [b for b in self._last_known_block_hashes if keep(b)]
        self._checkpoints = [b for b in self._checkpoints if keep(b)]

    @staticmethod
    def _insert_hash(hashes: List[Dict[str, Any]], height: int, block_hash: str) -> None:
        hashes[:] = [b for b in hashes if b["height"] != height]
        hashes.append({"height": height, "hash": block_hash})
        hashes.sort(key=lambda b: b["height"], reverse=True)

    def _store_block_hash(self, height: int, block_hash: str) -> None:
        self._insert_hash(self._last_known_block_hashes, height, block_hash)
        del self._last_known_block_hashes[CFG.LAST_KNOWN_HASHES_SIZE:]
        if height % CFG.BLOCK_HASH_CHECKPOINT_INTERVAL == 0:
            self._insert_hash(self._checkpoints, height, block_hash)

    # ---------------- height control (call while paused) ----------------

    def get_current_scan_height(self) -> int:
        return self._height

    def reset(self, scan_height: int) -> None:
        self.start_height = int(scan_height)
        self.start_timestamp = 0
        self._height = int(scan_height)
        self._last_known_block_hashes = []
        self._checkpoints = []
        self._end_scan_height = None
        log.info("[reset] synchronizer reset to height %d", scan_height)

    def rewind(self, scan_height: int) -> None:
        self._height = int(scan_height)
        self._drop_hashes(self._height)
        self._end_scan_height = None
        log.info("[rewind] synchronizer rewound to height %d", scan_height)

    def set_end_scan_height(self, start_height: int, end_height: int) -> None:
        """Scan [start_height, end_height], then continue from the old tip, which may lie below the range."""
        if self._end_scan_height is None:
            self._resume_height = self._height
        self._range_start = int(start_height)
        self._height = int(start_height)
        self._end_scan_height = int(end_height)
        self._drop_hashes(self._range_start, self._end_scan_height)
        log.info("[set_end_scan_height] scanning %d..%d, tip %d", start_height, end_height, self._resume_height)

    # ---------------- persistence ----------------

    def to_json(self) -> dict:
        return {
            "startHeight": self.start_height,
            "startTimestamp": self.start_timestamp,
            "transactionSynchronizerStatus": {
                "height": self._height,
                "lastKnownBlockHashes": list(self._last_known_block_hashes),
                "blockHashCheckpoints": list(self._checkpoints),
            },
        }

    @classmethod
    def from_json(cls, d: dict, private_view_key: str, daemon=None) -> "WalletSynchronizer":
        try:
            sync = cls(daemon, int(d.get("startHeight", 0)), int(d.get("startTimestamp", 0)), private_view_key)
            status = d.get("transactionSynchronizerStatus") or {}
            if "height" in status:
                sync._height = int(status["height"])
            sync._last_known_block_hashes = [
                {"height": int(b["height"]), "hash": str(b["hash"])} for b in status.get("lastKnownBlockHashes", [])
            ]
            sync._checkpoints = [
                {"height": int(b["height"]), "hash": str(b["hash"])} for b in status.get("blockHashCheckpoints", [])
            ]
        except (KeyError, TypeError, ValueError, AttributeError):
            raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED) from None
        return sync
