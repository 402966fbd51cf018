# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import socket
import socketserver
import struct
import threading

import pytest

from tsarwallet.network.daemon import NodeDaemon
from tsarwallet.network.protocol import recv_json, recv_message, send_json, send_message
from tsarwallet.utils import config as CFG


class _Handler(socketserver.BaseRequestHandler):
    def handle(self):
        msg = recv_json(self.request, timeout=2.0)
        if msg is None:
            return
        self.server.seen.append(msg)
        kind = msg.get("type")
        if kind == "GET_INFO":
            send_json(self.request, {"type": "INFO", "height": 41, "network_height": 42, "peers": 8, "hashrate": 900})
        elif kind == "GET_FEE_INFO":
            send_json(self.request, {"type": "FEE_INFO", "address": "tsw1node", "amount": 250})
        elif kind == "GET_WALLET_SYNC_DATA":
            start, count = msg["start_height"], msg["block_count"]
            blocks = [{"height": h, "hash": "00" * 32, "timestamp": 0, "transactions": []}
                      for h in range(start, min(start + count, 42))]
            send_json(self.request, {"type": "WALLET_SYNC_DATA", "blocks": blocks})
        elif kind == "SEND_TRANSACTION":
            if msg["tx"].get("fee", 0) < 0:
                send_json(self.request, {"status": "rejected", "reason": "negative fee"})
            else:
                send_json(self.request, {"status": "ok"})


class _Server(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


@pytest.fixture
def node():
    server = _Server(("127.0.0.1", 0), _Handler)
    server.seen = []
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    yield server
    server.shutdown()
    server.server_close()


def _free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_init_caches_info(node):
    d = NodeDaemon("127.0.0.1", node.server_address[1], False)
    d.init()
    try:
        assert d.is_online()
        assert d.local_daemon_block_count() == 41
        assert d.network_block_count() == 42
        assert d.peer_count() == 8
        assert d.hashrate() == 900
        assert d.node_fee() == (250, "tsw1node")
        assert d.node_address() == ("127.0.0.1", node.server_address[1], False)
    finally:
        d.stop()


def test_sync_data_and_send(node):
    d = NodeDaemon("127.0.0.1", node.server_address[1], False)
    blocks = d.get_wallet_sync_data(40, 10)
    assert [b["height"] for b in blocks] == [40, 41]
    assert d.get_wallet_sync_data(42, 10) == []
    assert d.send_transaction({"hash": "ab", "fee": 1}) == (True, "")
    assert d.send_transaction({"hash": "ab", "fee": -1}) == (False, "negative fee")
    assert [m["type"] for m in node.seen] == ["GET_WALLET_SYNC_DATA", "GET_WALLET_SYNC_DATA",
                                            "SEND_TRANSACTION", "SEND_TRANSACTION"]


def test_offline_node():
    d = NodeDaemon("127.0.0.1", _free_port(), False)
    d.init()
    try:
        assert not d.is_online()
        assert d.get_wallet_sync_data(0, 10) is None
        ok, err = d.send_transaction({"hash": "ab"})
        assert not ok and err
        assert d.node_fee() == (0, "")
    finally:
        d.stop()


def test_swap_node(node):
    d = NodeDaemon("127.0.0.1", _free_port(), False)
    d.init()
    try:
        assert not d.is_online()
        d.swap_node("127.0.0.1", node.server_address[1], False)
        assert d.is_online()
        assert d.network_block_count() == 42
    finally:
        d.stop()


# ---------------- framing ----------------

def test_frame_round_trip():
    a, b = socket.socketpair()
    with a, b:
        send_message(a, b"hello")
        assert recv_message(b, timeout=1.0) == b"hello"


def test_frame_without_magic_is_dropped():
    a, b = socket.socketpair()
    with a, b:
        body = b"XXXX" + b"payload"
        a.sendall(struct.pack(">I", len(body)) + body)
        assert recv_message(b, timeout=1.0) is None


def test_oversized_frame_is_dropped():
    a, b = socket.socketpair()
    with a, b:
        a.sendall(struct.pack(">I", CFG.MAX_MSG + 1))
        assert recv_message(b, timeout=1.0) is None


def test_closed_peer_returns_none():
    a, b = socket.socketpair()
    with b:
        a.close()
        assert recv_message(b, timeout=1.0) is None


def test_send_rejects_oversized_payload(monkeypatch):
    monkeypatch.setattr(CFG, "MAX_MSG", 16)
    a, b = socket.socketpair()
    with a, b:
        with pytest.raises(ValueError):
            send_message(a, b"x" * 32)
