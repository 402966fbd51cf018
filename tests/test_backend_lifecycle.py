# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md

import os

import pytest

from tsarwallet.core import keys
from tsarwallet.core.errors import ErrorCode
from tsarwallet.utils import config as CFG
from tsarwallet.wallet.backend import WalletBackend

from conftest import FakeDaemon, PASSWORD, SPEND_KEY, VIEW_KEY, payment, wait_for, wait_synced


def _primary_pub(wallet):
    return keys.address_to_keys(wallet.get_primary_address())[0]


# ---------------- construction ----------------

def test_create_wallet_writes_file(daemon, wallet_path):
    err, w = WalletBackend.create_wallet(wallet_path, PASSWORD, daemon=daemon)
    assert err is None
    try:
        assert os.path.exists(wallet_path)
        assert w.get_wallet_count() == 1
        assert not w.is_view_wallet()
        assert w.get_wallet_location() == wallet_path
    finally:
        w.close()


def test_create_refuses_existing_file(daemon, wallet_path):
    with open(wallet_path, "wb") as f:
        f.write(b"keep me")
    err, w = WalletBackend.create_wallet(wallet_path, PASSWORD, daemon=daemon)
    assert w is None
    assert err.code == ErrorCode.WALLET_FILE_ALREADY_EXISTS
    with open(wallet_path, "rb") as f:
        assert f.read() == b"keep me"


def test_create_refuses_unwritable_path(daemon, tmp_path):
    err, w = WalletBackend.create_wallet(str(tmp_path / "missing" / "dir" / "w.wallet"), PASSWORD, daemon=daemon)
    assert w is None
    assert err.code == ErrorCode.INVALID_WALLET_FILENAME


def test_create_without_filename_uses_data_dir(daemon, tmp_path, monkeypatch):
    data_dir = tmp_path / "appdata"
    default_file = str(data_dir / "default.wallet")
    monkeypatch.setattr(CFG, "WALLET_DATA_DIR", str(data_dir))
    monkeypatch.setattr(CFG, "DEFAULT_WALLET_FILE", default_file)

    err, w = WalletBackend.create_wallet(None, PASSWORD, daemon=daemon)
    assert err is None
    try:
        assert w.get_wallet_location() == default_file
    finally:
        w.close()
    assert os.path.exists(default_file)

    err, w = WalletBackend.open_wallet(None, PASSWORD, daemon=daemon)
    assert err is None
    w.close()


def test_import_from_keys_validates(daemon, wallet_path):
    err, w = WalletBackend.import_wallet_from_keys("zz" * 32, VIEW_KEY, wallet_path, PASSWORD, daemon=daemon)
    assert w is None and err.code == ErrorCode.INVALID_PRIVATE_KEY
    assert not os.path.exists(wallet_path)


def test_import_from_bad_seed(daemon, wallet_path):
    err, w = WalletBackend.import_wallet_from_seed("not a real seed", wallet_path, PASSWORD, daemon=daemon)
    assert w is None and err.code == ErrorCode.INVALID_MNEMONIC


def test_seed_round_trip(daemon, tmp_path):
    err, w = WalletBackend.create_wallet(str(tmp_path / "a.wallet"), PASSWORD, daemon=daemon)
    assert err is None
    err, seed = w.get_mnemonic_seed()
    assert err is None
    address = w.get_primary_address()
    w.close()

    err, restored = WalletBackend.import_wallet_from_seed(seed, str(tmp_path / "b.wallet"), PASSWORD, 0,
                                                          daemon=FakeDaemon())
    assert err is None
    try:
        assert restored.get_primary_address() == address
    finally:
        restored.close()


def test_seed_needs_deterministic_keys(daemon, wallet_path):
    err, w = WalletBackend.import_wallet_from_keys(SPEND_KEY, "2" * 64, wallet_path, PASSWORD, daemon=daemon)
    assert err is None
    try:
        err, seed = w.get_mnemonic_seed()
        assert err.code == ErrorCode.KEYS_NOT_DETERMINISTIC and seed == ""
        err, spend, view = w.get_primary_address_private_keys()
        assert err is None and (spend, view) == (SPEND_KEY, "2" * 64)
    finally:
        w.close()


# ---------------- open / save ----------------

def test_open_round_trip(daemon, wallet, wallet_path):
    pub = _primary_pub(wallet)
    daemon.add_block([payment(pub, 700)])
    daemon.add_block([payment(pub, 300)])
    wait_synced(wallet, daemon)
    added_err, sub_address = wallet.add_sub_wallet()
    assert added_err is None
    addresses = wallet.get_addresses()
    assert wallet.close() is None

    err, reopened = WalletBackend.open_wallet(wallet_path, PASSWORD, daemon=daemon)
    assert err is None
    try:
        assert reopened.get_addresses() == addresses
        assert reopened.get_total_balance() == (1_000, 0)
        assert len(reopened.get_transactions()) == 2
        assert reopened.get_sync_status()[0] >= 2
    finally:
        reopened.close()


def test_open_errors(daemon, wallet, wallet_path, tmp_path):
    wallet.close()
    err, w = WalletBackend.open_wallet(wallet_path, "wrong", daemon=daemon)
    assert w is None and err.code == ErrorCode.WRONG_PASSWORD

    err, w = WalletBackend.open_wallet(str(tmp_path / "absent.wallet"), PASSWORD, daemon=daemon)
    assert w is None and err.code == ErrorCode.FILENAME_NON_EXISTENT

    junk = tmp_path / "junk.wallet"
    junk.write_bytes(b"not a wallet")
    err, w = WalletBackend.open_wallet(str(junk), PASSWORD, daemon=daemon)
    assert w is None and err.code == ErrorCode.NOT_A_WALLET_FILE


def test_change_password(daemon, wallet, wallet_path):
    assert wallet.change_password(PASSWORD) is None
    assert wallet.change_password("new password") is None
    assert wallet.get_wallet_password() == "new password"
    wallet.close()

    err, _ = WalletBackend.open_wallet(wallet_path, PASSWORD, daemon=daemon)
    assert err.code == ErrorCode.WRONG_PASSWORD
    err, w = WalletBackend.open_wallet(wallet_path, "new password", daemon=daemon)
    assert err is None
    w.close()


def test_context_manager_saves_and_closes(daemon, wallet_path):
    err, w = WalletBackend.import_wallet_from_keys(SPEND_KEY, VIEW_KEY, wallet_path, PASSWORD, daemon=daemon)
    assert err is None
    with w:
        w.add_sub_wallet()
    with pytest.raises(RuntimeError):
        w.get_addresses()
    err, reopened = WalletBackend.open_wallet(wallet_path, PASSWORD, daemon=daemon)
    assert err is None
    try:
        assert reopened.get_wallet_count() == 2
    finally:
        reopened.close()


def test_to_json_has_container_fields(wallet):
    import json
    doc = json.loads(wallet.to_json())
    assert set(doc) == {"walletFileFormatVersion", "subWallets", "walletSynchronizer"}


def test_swap_node(daemon, wallet):
    wallet.swap_node("10.0.0.2", 1234, True)
    assert daemon.swapped == [("10.0.0.2", 1234, True)]


# ---------------- sub-wallets ----------------

def test_sub_wallet_indexes_are_deterministic(daemon, tmp_path):
    err, a = WalletBackend.import_wallet_from_keys(SPEND_KEY, VIEW_KEY, str(tmp_path / "a.wallet"), PASSWORD,
                                                   daemon=daemon)
    err2, b = WalletBackend.import_wallet_from_keys(SPEND_KEY, VIEW_KEY, str(tmp_path / "b.wallet"), PASSWORD,
                                                    daemon=FakeDaemon())
    assert err is None and err2 is None
    try:
        _, first = a.add_sub_wallet()
        _, second = a.add_sub_wallet()
        assert first != second

        err, imported = b.import_sub_wallet_by_index(2, 0)
        assert err is None and imported == second
        _, next_on_b = b.add_sub_wallet()
        assert next_on_b not in (second,)
        assert b.import_sub_wallet_by_index(2, 0)[0].code == ErrorCode.SUBWALLET_ALREADY_EXISTS
    finally:
        a.close()
        b.close()


def test_delete_sub_wallet(wallet):
    err, address = wallet.add_sub_wallet()
    assert err is None and wallet.get_wallet_count() == 2
    assert wallet.delete_sub_wallet(wallet.get_primary_address()).code == ErrorCode.CANNOT_DELETE_PRIMARY_ADDRESS
    assert wallet.delete_sub_wallet(address) is None
    assert wallet.get_addresses() == [wallet.get_primary_address()]
    assert wallet.delete_sub_wallet(address).code == ErrorCode.ADDRESS_NOT_IN_WALLET


def test_import_rewinds_to_exactly_scan_height(daemon, wallet, monkeypatch):
    daemon.add_empty_blocks(20)
    wait_synced(wallet, daemon)

    resets, rewinds = [], []
    sync, registry = wallet._synchronizer, wallet._sub_wallets
    real_reset, real_rewind = sync.reset, registry.rewind
    monkeypatch.setattr(sync, "reset", lambda h: (resets.append(h), real_reset(h)))
    monkeypatch.setattr(registry, "rewind", lambda h: (rewinds.append(h), real_rewind(h)))

    _, priv = keys.generate_keys()
    err, _ = wallet.import_sub_wallet(priv, 5)
    assert err is None
    assert resets == [5] and rewinds == [5]

    _, priv2 = keys.generate_keys()
    err, _ = wallet.import_sub_wallet(priv2, 10_000)
    assert err is None
    assert resets == [5]


def test_imported_sub_wallet_finds_old_funds(daemon, wallet):
    _, priv = keys.generate_keys()
    pub = keys.secret_key_to_public_key(priv)
    daemon.add_empty_blocks(3)
    daemon.add_block([payment(pub, 250)])
    daemon.add_empty_blocks(3)
    wait_synced(wallet, daemon)
    assert wallet.get_total_balance() == (0, 0)

    err, address = wallet.import_sub_wallet(priv, 2)
    assert err is None
    assert wait_for(lambda: wallet.get_balance(address)[1] == 250)


def test_reset_and_rewind(daemon, wallet):
    pub = _primary_pub(wallet)
    for _ in range(6):
        daemon.add_block([payment(pub, 10)])
    wait_synced(wallet, daemon)
    assert len(wallet.get_transactions()) == 6

    assert wallet.rewind(3) is None
    assert wait_for(lambda: len(wallet.get_transactions()) == 6 and wallet.get_total_balance()[0] == 60)

    assert wallet.reset(0) is None
    assert wait_for(lambda: len(wallet.get_transactions()) == 6 and wallet.get_total_balance()[0] == 60)


def test_scan_range_returns_to_tip(daemon, wallet):
    daemon.add_empty_blocks(12)
    wait_synced(wallet, daemon)
    assert wallet.scan_range(2, 4) is None
    assert wait_for(lambda: wallet.get_sync_status()[0] == 12)


# ---------------- view wallets ----------------

def test_view_wallet_refuses_spending(daemon, wallet_path):
    pub_spend = keys.secret_key_to_public_key(SPEND_KEY)
    pub_view = keys.secret_key_to_public_key(VIEW_KEY)
    address = keys.public_keys_to_address(pub_spend, pub_view)
    err, w = WalletBackend.import_view_wallet(VIEW_KEY, address, wallet_path, PASSWORD, daemon=daemon)
    assert err is None
    try:
        assert w.is_view_wallet()
        assert w.get_primary_address() == address
        assert w.add_sub_wallet()[0].code == ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION
        assert w.get_mnemonic_seed()[0].code == ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION
        assert w.send_transaction_basic(address, 1)[0].code == ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION

        other_pub, _ = keys.generate_keys()
        err, view_sub = w.import_view_sub_wallet(other_pub, 0)
        assert err is None and w.get_wallet_count() == 2

        daemon.add_block([payment(pub_spend, 40)])
        assert wait_for(lambda: w.get_total_balance()[0] == 40)
    finally:
        w.close()


def test_spend_wallet_refuses_view_import(wallet):
    other_pub, _ = keys.generate_keys()
    err, _ = wallet.import_view_sub_wallet(other_pub, 0)
    assert err.code == ErrorCode.ILLEGAL_NON_VIEW_WALLET_OPERATION
