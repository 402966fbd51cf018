# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

import threading
from typing import Callable, TypeVar

# ---------------- Local Project ----------------
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.wallet(sync_guard)")

T = TypeVar("T")


class SynchronizerGuard:
    """
    Runs foreground mutations with the synchronizer parked at its pause point.

    Only the outermost call on a thread pauses and resumes, nested calls run
    straight through. Code running on the synchronizer thread itself is never
    paused, it already is the only writer.
    """

    def __init__(self, synchronizer):
        self.synchronizer = synchronizer
        self._lock = threading.RLock()
        self._depth = 0

    def pause_and_run(self, fn: Callable[[], T]) -> T:
        sync = self.synchronizer
        if sync is None or sync.is_sync_thread():
            return fn()

        with self._lock:
            self._depth += 1
            outermost = self._depth == 1
            try:
                if outermost:
                    self._pause()
                return fn()
            finally:
                self._depth -= 1
                if outermost:
                    sync.resume()

    def _pause(self) -> None:
        sync = self.synchronizer
        sync.request_pause()
        waited = 0.0
        while not sync.wait_paused(CFG.SYNC_PAUSE_ACK_POLL):
            waited += CFG.SYNC_PAUSE_ACK_POLL
            log.debug("[pause_and_run] still waiting for the synchronizer to pause (%.1fs)", waited)
