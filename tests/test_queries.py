# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

from tsarwallet.core import keys
from tsarwallet.core.errors import ErrorCode

from conftest import payment, wait_for, wait_synced


def _pub(wallet):
    return keys.address_to_keys(wallet.get_primary_address())[0]


def test_transactions_range_is_half_open(daemon, wallet):
    pub = _pub(wallet)
    wanted = {5: 1, 10: 2, 15: 1}
    for height in range(16):
        daemon.add_block([payment(pub, 1) for _ in range(wanted.get(height, 0))])
    wait_synced(wallet, daemon)

    heights = lambda txs: sorted(t.block_height for t in txs)
    assert heights(wallet.get_transactions()) == [5, 10, 10, 15]
    assert heights(wallet.get_transactions_range(10, 15)) == [10, 10]
    assert heights(wallet.get_transactions_range(5, 10)) == [5]
    assert heights(wallet.get_transactions_range(5, 16)) == [5, 10, 10, 15]
    assert wallet.get_transactions_range(11, 15) == []


def test_balances_split_locked_and_unlocked(daemon, wallet):
    pub = _pub(wallet)
    daemon.add_block([payment(pub, 100)])
    daemon.add_block([payment(pub, 40, unlock_time=10_000)])
    wait_synced(wallet, daemon)

    err, unlocked, locked = wallet.get_balance(wallet.get_primary_address())
    assert err is None and (unlocked, locked) == (100, 40)
    assert wallet.get_total_balance() == (100, 40)
    assert wallet.get_total_unlocked_balance() == 100

    _, sub_address = wallet.add_sub_wallet()
    balances = wallet.get_balances()
    assert balances == [(wallet.get_primary_address(), 100, 40), (sub_address, 0, 0)]


def test_coinbase_waits_for_unlock_window(daemon, wallet):
    pub = _pub(wallet)
    tx = payment(pub, 500)
    tx["is_coinbase"] = True
    daemon.add_block([tx])
    wait_synced(wallet, daemon)
    assert wallet.get_total_balance() == (0, 500)
    assert wallet.get_transactions()[0].is_coinbase

    from tsarwallet.utils import config as CFG
    daemon.add_empty_blocks(CFG.MINED_MONEY_UNLOCK_WINDOW)
    assert wait_for(lambda: wallet.get_total_balance() == (500, 0))


def test_balance_address_checks(wallet):
    spend_pub, _ = keys.generate_keys()
    view_pub, _ = keys.generate_keys()
    foreign = keys.public_keys_to_address(spend_pub, view_pub)
    assert wallet.get_balance(foreign)[0].code == ErrorCode.ADDRESS_NOT_IN_WALLET
    assert wallet.get_balance("garbage")[0].code == ErrorCode.INVALID_ADDRESS


def test_address_lookup(wallet):
    pub = _pub(wallet)
    assert wallet.get_address(pub) == (None, wallet.get_primary_address())
    other, _ = keys.generate_keys()
    assert wallet.get_address(other)[0].code == ErrorCode.ADDRESS_NOT_IN_WALLET
    assert wallet.get_addresses() == [wallet.get_primary_address()]
    assert wallet.get_wallet_count() == 1


def test_status_and_node_info(daemon, wallet):
    daemon.add_empty_blocks(4)
    daemon.network_height = 9
    wait_synced(wallet, daemon)
    assert wallet.get_sync_status() == (4, 4, 9)

    status = wallet.get_status()
    assert (status.wallet_block_count, status.peer_count, status.last_known_hashrate) == (4, 3, 1234)
    assert wallet.get_node_fee() == (0, "")
    assert wallet.get_node_address() == ("fake", 1, False)
    assert wallet.daemon_online()
