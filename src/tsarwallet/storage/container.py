# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: RFC8018 (PBKDF2); NIST SP 800-38A (CBC); RFC5652 (PKCS#7 padding)
"""
Encrypted wallet container.

Layout on disk:

    IS_A_WALLET_IDENTIFIER || salt(16) || AES-128-CBC(key, iv=salt, PKCS7(
        IS_CORRECT_PASSWORD_IDENTIFIER || utf-8 JSON))

key = PBKDF2-HMAC-SHA256(password, salt, PBKDF2_ITERATIONS, 16 bytes).
A fresh salt is drawn on every encode, so saving the same state twice never
yields the same bytes.
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# ---------------- Local Project ----------------
from ..core.errors import ErrorCode, WalletError
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.storage(container)")


def _derive_key(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=CFG.PBKDF2_KEY_LENGTH,
        salt=salt,
        iterations=int(CFG.PBKDF2_ITERATIONS),
    )
    return kdf.derive((password or "").encode("utf-8"))


def encode_container(state: Dict[str, Any], password: str) -> bytes:
    salt = os.urandom(CFG.SALT_LENGTH)
    key = _derive_key(password, salt)

    body = json.dumps(state, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(CFG.IS_CORRECT_PASSWORD_IDENTIFIER + body) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(salt)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return CFG.IS_A_WALLET_IDENTIFIER + salt + ciphertext


def decode_container(data: bytes, password: str) -> Dict[str, Any]:
    """
    Check the cleartext magic, decrypt, check the password magic, parse JSON,
    then check the format version. Raises WalletError for each failure kind.
    """
    magic = CFG.IS_A_WALLET_IDENTIFIER
    if len(data) < len(magic) or data[:len(magic)] != magic:
        raise WalletError(ErrorCode.NOT_A_WALLET_FILE)

    rest = data[len(magic):]
    if len(rest) < CFG.SALT_LENGTH:
        raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED)
    salt, ciphertext = rest[:CFG.SALT_LENGTH], rest[CFG.SALT_LENGTH:]

    key = _derive_key(password, salt)
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(salt)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError:
        # A wrong key almost always shows up as bad padding.
        raise WalletError(ErrorCode.WRONG_PASSWORD) from None

    pass_magic = CFG.IS_CORRECT_PASSWORD_IDENTIFIER
    if len(plaintext) < len(pass_magic):
        raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED)
    if plaintext[:len(pass_magic)] != pass_magic:
        raise WalletError(ErrorCode.WRONG_PASSWORD)

    try:
        state = json.loads(plaintext[len(pass_magic):].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED) from None
    if not isinstance(state, dict):
        raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED)

    version = state.get("walletFileFormatVersion")
    if version != CFG.WALLET_FILE_FORMAT_VERSION:
        raise WalletError(
            ErrorCode.UNSUPPORTED_WALLET_FILE_FORMAT_VERSION,
            f"Wallet file format version {version!r} is not supported, expected {CFG.WALLET_FILE_FORMAT_VERSION}.",
        )
    return state


# ---------------- File I/O ----------------

def _write_atomic(path: str, data: bytes) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "wb") as f:
        f.write(data)
        f.flush(); os.fsync(f.fileno())
    try:
        os.chmod(tmp, CFG.SECURE_FILE_MODE)
    except OSError:
        log.debug("[_write_atomic] chmod not supported for %s", tmp)
    os.replace(tmp, path)


def read_wallet_file(path: str, password: str) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError:
        raise WalletError(ErrorCode.FILENAME_NON_EXISTENT) from None
    return decode_container(data, password)


def write_wallet_file(path: str, state: Dict[str, Any], password: str) -> None:
    blob = encode_container(state, password)
    try:
        _write_atomic(path, blob)
    except OSError as e:
        log.error("[write_wallet_file] failed writing %s: %s", path, e)
        raise WalletError(ErrorCode.INVALID_WALLET_FILENAME) from None
    log.debug("[write_wallet_file] wrote %d bytes to %s", len(blob), path)


def is_wallet_file(path: str) -> bool:
    magic = CFG.IS_A_WALLET_IDENTIFIER
    try:
        with open(path, "rb") as f:
            return f.read(len(magic)) == magic
    except OSError:
        return False
