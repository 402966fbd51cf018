# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import os
import secrets
import sys
import threading
import time

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(PROJECT_ROOT, "src")
for path in (PROJECT_ROOT, SRC_ROOT):
    if path not in sys.path:
        sys.path.append(path)

from tsarwallet.core.keys import generate_view_from_spend  # noqa: E402
from tsarwallet.network.daemon import Daemon  # noqa: E402
from tsarwallet.utils import config as CFG  # noqa: E402
from tsarwallet.wallet.backend import WalletBackend  # noqa: E402

SPEND_KEY = "1" * 64
VIEW_KEY = generate_view_from_spend(SPEND_KEY)[0]
PASSWORD = "correct horse"


@pytest.fixture(autouse=True)
def fast_config(monkeypatch):
    monkeypatch.setattr(CFG, "PBKDF2_ITERATIONS", 1_000)
    monkeypatch.setattr(CFG, "SYNC_IDLE_INTERVAL", 0.02)
    monkeypatch.setattr(CFG, "SYNC_ERROR_BACKOFF", 0.05)
    monkeypatch.setattr(CFG, "SYNC_PAUSE_ACK_POLL", 0.05)
    monkeypatch.setattr(CFG, "RPC_TIMEOUT", 2.0)
    monkeypatch.setattr(CFG, "DAEMON_UPDATE_INTERVAL", 60.0)


class FakeDaemon(Daemon):
    """In-memory chain: block i sits at self.blocks[i]."""

    def __init__(self, fee=(0, ""), online=True):
        self.blocks = []
        self.sent = []
        self.fee = fee
        self.online = online
        self.reject = None
        self.network_height = None
        self.swapped = []
        self.lock = threading.Lock()

    def init(self):
        pass

    def stop(self):
        pass

    def network_block_count(self):
        if self.network_height is not None:
            return self.network_height
        return len(self.blocks)

    def local_daemon_block_count(self):
        return len(self.blocks)

    def peer_count(self):
        return 3

    def hashrate(self):
        return 1234

    def node_fee(self):
        return self.fee

    def node_address(self):
        return "fake", 1, False

    def swap_node(self, host, port, ssl_enabled):
        self.swapped.append((host, port, ssl_enabled))

    def is_online(self):
        return self.online

    def get_wallet_sync_data(self, start_height, block_count):
        with self.lock:
            return [b for b in self.blocks if start_height <= b["height"] < start_height + block_count]

    def send_transaction(self, tx):
        if self.reject:
            return False, self.reject
        self.sent.append(tx)
        return True, ""

    # ----- chain building -----

    def add_block(self, transactions=(), timestamp=0):
        with self.lock:
            height = len(self.blocks)
            self.blocks.append({
                "height": height,
                "hash": secrets.token_hex(32),
                "timestamp": timestamp or CFG.GENESIS_BLOCK_TIMESTAMP + height * CFG.TARGET_BLOCK_TIME,
                "transactions": list(transactions),
            })
            return height

    def add_empty_blocks(self, n):
        for _ in range(n):
            self.add_block()


def payment(public_spend_key, amount, unlock_time=0, outputs=1):
    """A transaction paying `outputs` outputs of `amount` each to one key."""
    return {
        "hash": secrets.token_hex(32),
        "fee": 10,
        "unlock_time": unlock_time,
        "payment_id": "",
        "inputs": [],
        "outputs": [{"key": public_spend_key, "amount": amount, "index": i} for i in range(outputs)],
    }


def wait_for(predicate, timeout=5.0, interval=0.01):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def wait_synced(wallet, daemon, timeout=5.0):
    assert wait_for(lambda: wallet.get_sync_status()[0] >= len(daemon.blocks), timeout), "wallet did not sync"


@pytest.fixture
def daemon():
    return FakeDaemon()


@pytest.fixture
def wallet_path(tmp_path):
    return str(tmp_path / "test.wallet")


@pytest.fixture
def wallet(daemon, wallet_path):
    err, w = WalletBackend.import_wallet_from_keys(SPEND_KEY, VIEW_KEY, wallet_path, PASSWORD, 0, daemon=daemon)
    assert err is None
    yield w
    w.close()
