# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: RFC8018; NIST SP 800-38A

import json
import os
import sys

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from tsarwallet.core.errors import ErrorCode, WalletError
from tsarwallet.storage import container
from tsarwallet.storage.container import (
    decode_container, encode_container, is_wallet_file, read_wallet_file, write_wallet_file,
)
from tsarwallet.utils import config as CFG

STATE = {
    "walletFileFormatVersion": CFG.WALLET_FILE_FORMAT_VERSION,
    "subWallets": {"privateViewKey": "ab" * 32, "subWallet": []},
    "walletSynchronizer": {"startHeight": 7, "startTimestamp": 0},
}


def _seal(plaintext: bytes, password: str, salt: bytes = b"\x07" * 16) -> bytes:
    """Envelope arbitrary plaintext, bypassing the JSON step."""
    key = container._derive_key(password, salt)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext) + padder.finalize()
    enc = Cipher(algorithms.AES(key), modes.CBC(salt)).encryptor()
    return CFG.IS_A_WALLET_IDENTIFIER + salt + enc.update(padded) + enc.finalize()


def _code(excinfo):
    return excinfo.value.code


def test_round_trip():
    blob = encode_container(STATE, "pw")
    assert blob.startswith(CFG.IS_A_WALLET_IDENTIFIER)
    assert decode_container(blob, "pw") == STATE


def test_fresh_salt_per_encode():
    a = encode_container(STATE, "pw")
    b = encode_container(STATE, "pw")
    n = len(CFG.IS_A_WALLET_IDENTIFIER)
    assert a != b
    assert a[n:n + 16] != b[n:n + 16]
    assert decode_container(a, "pw") == decode_container(b, "pw")


def test_wrong_password():
    blob = encode_container(STATE, "pw")
    with pytest.raises(WalletError) as ei:
        decode_container(blob, "not pw")
    assert _code(ei) == ErrorCode.WRONG_PASSWORD


@pytest.mark.parametrize("raw", [b"", b"TSAR", b"definitely not a wallet file at all"])
def test_not_a_wallet_file(raw):
    with pytest.raises(WalletError) as ei:
        decode_container(raw, "pw")
    assert _code(ei) == ErrorCode.NOT_A_WALLET_FILE


def test_truncated_salt_is_corrupted():
    with pytest.raises(WalletError) as ei:
        decode_container(CFG.IS_A_WALLET_IDENTIFIER + b"\x00" * 5, "pw")
    assert _code(ei) == ErrorCode.WALLET_FILE_CORRUPTED


def test_plaintext_shorter_than_password_magic_is_corrupted():
    with pytest.raises(WalletError) as ei:
        decode_container(_seal(b"abc", "pw"), "pw")
    assert _code(ei) == ErrorCode.WALLET_FILE_CORRUPTED


def test_different_password_magic_reads_as_wrong_password():
    fake_magic = b"X" * len(CFG.IS_CORRECT_PASSWORD_IDENTIFIER)
    with pytest.raises(WalletError) as ei:
        decode_container(_seal(fake_magic + b"{}", "pw"), "pw")
    assert _code(ei) == ErrorCode.WRONG_PASSWORD


def test_bad_json_is_corrupted():
    with pytest.raises(WalletError) as ei:
        decode_container(_seal(CFG.IS_CORRECT_PASSWORD_IDENTIFIER + b"{not json", "pw"), "pw")
    assert _code(ei) == ErrorCode.WALLET_FILE_CORRUPTED


def test_unsupported_version():
    state = dict(STATE, walletFileFormatVersion=CFG.WALLET_FILE_FORMAT_VERSION + 1)
    blob = _seal(CFG.IS_CORRECT_PASSWORD_IDENTIFIER + json.dumps(state).encode(), "pw")
    with pytest.raises(WalletError) as ei:
        decode_container(blob, "pw")
    assert _code(ei) == ErrorCode.UNSUPPORTED_WALLET_FILE_FORMAT_VERSION


def test_file_round_trip(tmp_path):
    path = str(tmp_path / "w.wallet")
    write_wallet_file(path, STATE, "pw")
    assert is_wallet_file(path)
    assert not os.path.exists(path + ".tmp")
    assert read_wallet_file(path, "pw") == STATE


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX permissions")
def test_file_is_owner_only(tmp_path):
    path = str(tmp_path / "w.wallet")
    write_wallet_file(path, STATE, "pw")
    assert os.stat(path).st_mode & 0o777 == CFG.SECURE_FILE_MODE


def test_missing_file(tmp_path):
    with pytest.raises(WalletError) as ei:
        read_wallet_file(str(tmp_path / "nope.wallet"), "pw")
    assert _code(ei) == ErrorCode.FILENAME_NON_EXISTENT


def test_unwritable_path(tmp_path):
    blocker = tmp_path / "afile"
    blocker.write_bytes(b"x")
    with pytest.raises(WalletError) as ei:
        write_wallet_file(str(blocker / "w.wallet"), STATE, "pw")
    assert _code(ei) == ErrorCode.INVALID_WALLET_FILENAME


def _large_state():
    state = json.loads(json.dumps(STATE))
    state["subWallets"]["subWallet"] = [
        {"publicSpendKey": f"{i:02x}" * 32, "unspentInputs": [], "spentInputs": []} for i in range(8)
    ]
    return state


@pytest.mark.parametrize("where", ["first", "middle", "last"])
def test_corrupt_ciphertext_with_wrong_password_reads_as_wrong_password(where):
    # The plaintext spans many blocks, so even a padding check that passes
    # by chance leaves more than the password magic behind. A single-block
    # body could decrypt short and report WALLET_FILE_CORRUPTED instead.
    blob = bytearray(encode_container(_large_state(), "pw"))
    body = len(CFG.IS_A_WALLET_IDENTIFIER) + 16
    n_blocks = (len(blob) - body) // 16
    assert n_blocks > 4
    block = {"first": 0, "middle": n_blocks // 2, "last": n_blocks - 1}[where]
    for off in (0, 7, 15):
        blob[body + block * 16 + off] ^= 0xA5

    with pytest.raises(WalletError) as ei:
        decode_container(bytes(blob), "not pw")
    assert _code(ei) == ErrorCode.WRONG_PASSWORD


def test_corrupt_first_block_with_right_password_reads_as_wrong_password():
    blob = bytearray(encode_container(_large_state(), "pw"))
    blob[len(CFG.IS_A_WALLET_IDENTIFIER) + 16] ^= 0xFF
    with pytest.raises(WalletError) as ei:
        decode_container(bytes(blob), "pw")
    assert _code(ei) == ErrorCode.WRONG_PASSWORD
