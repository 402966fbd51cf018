# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: BIP173; BIP39; libsecp256k1; RFC6979
"""
Key primitives for spend/view key pairs.

Every private key is a secp256k1 scalar in hex, every public key a
compressed point in hex. The view key is derived from the spend key, so a
container created from one spend key can always be re-derived from its
mnemonic. Addresses carry both public keys in a bech32 string.
"""
from __future__ import annotations

import hashlib
from typing import Tuple

from ecdsa import SECP256k1, SigningKey, VerifyingKey, BadSignatureError
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigencode_der, sigdecode_der
from bech32 import bech32_encode, bech32_verify_checksum, convertbits, CHARSET
from mnemonic import Mnemonic

from .errors import ErrorCode, WalletError
from ..utils.helpers import hash_to_scalar, sha256
from ..utils import config as CFG


def _scalar_to_hex(k: int) -> str:
    return k.to_bytes(32, "big").hex()


def secret_key_to_public_key(priv_hex: str) -> str:
    sk = SigningKey.from_string(bytes.fromhex(priv_hex), curve=SECP256k1)
    vk = sk.get_verifying_key()
    px = vk.pubkey.point.x()
    py = vk.pubkey.point.y()
    prefix = b'\x02' if (py % 2 == 0) else b'\x03'
    return (prefix + px.to_bytes(32, 'big')).hex()


def generate_keys() -> Tuple[str, str]:
    """Returns (public_key, private_key)."""
    sk = SigningKey.generate(curve=SECP256k1)
    priv_hex = sk.to_string().hex()
    return secret_key_to_public_key(priv_hex), priv_hex


def generate_view_from_spend(private_spend_key: str) -> Tuple[str, str]:
    """Returns (private_view_key, public_view_key)."""
    scalar = hash_to_scalar(CFG.VIEW_KEY_DERIVATION_TAG + bytes.fromhex(private_spend_key))
    priv_view = _scalar_to_hex(scalar)
    return priv_view, secret_key_to_public_key(priv_view)


def derive_subwallet_spend_key(primary_private_spend_key: str, wallet_index: int) -> str:
    if wallet_index == 0:
        return primary_private_spend_key
    data = CFG.SUBWALLET_DERIVATION_TAG + bytes.fromhex(primary_private_spend_key) + int(wallet_index).to_bytes(8, "big")
    return _scalar_to_hex(hash_to_scalar(data))


def derive_key_image(public_spend_key: str, transaction_hash: str, output_index: int) -> str:
    data = CFG.KEY_IMAGE_TAG + bytes.fromhex(public_spend_key) + bytes.fromhex(transaction_hash) + int(output_index).to_bytes(4, "big")
    return sha256(data).hex()


# ---------------- Addresses ----------------

def public_keys_to_address(public_spend_key: str, public_view_key: str) -> str:
    payload = bytes.fromhex(public_spend_key) + bytes.fromhex(public_view_key)
    return bech32_encode(CFG.ADDRESS_PREFIX, convertbits(payload, 8, 5, True))


def private_keys_to_address(private_spend_key: str, private_view_key: str) -> str:
    return public_keys_to_address(
        secret_key_to_public_key(private_spend_key),
        secret_key_to_public_key(private_view_key),
    )


def address_to_keys(address: str) -> Tuple[str, str]:
    """
    Returns (public_spend_key, public_view_key).

    bech32_decode() caps strings at 90 chars, two compressed keys do not
    fit, so the checksum is verified by hand here.
    """
    addr = (address or "").strip()
    if not addr or addr.lower() != addr:
        raise ValueError("address must be lowercase bech32")
    pos = addr.rfind("1")
    if pos < 1 or pos + 7 > len(addr):
        raise ValueError("address separator missing")
    hrp = addr[:pos]
    if hrp != CFG.ADDRESS_PREFIX:
        raise ValueError(f"Invalid address prefix: expected '{CFG.ADDRESS_PREFIX}', got '{hrp}'")
    try:
        data = [CHARSET.index(c) for c in addr[pos + 1:]]
    except ValueError:
        raise ValueError("address has characters outside the bech32 charset") from None
    if not bech32_verify_checksum(hrp, data):
        raise ValueError("address checksum mismatch")
    decoded = convertbits(data[:-6], 5, 8, False)
    if decoded is None or len(decoded) != CFG.ADDRESS_KEYS_LENGTH:
        raise ValueError("address payload has the wrong length")
    raw = bytes(decoded)
    return raw[:33].hex(), raw[33:].hex()


# ---------------- Mnemonics ----------------

def private_key_to_mnemonic(private_spend_key: str) -> str:
    return Mnemonic(CFG.MNEMONIC_LANGUAGE).to_mnemonic(bytes.fromhex(private_spend_key))


def mnemonic_to_private_key(words: str) -> str:
    mnemo = Mnemonic(CFG.MNEMONIC_LANGUAGE)
    phrase = " ".join((words or "").lower().split())
    if not mnemo.check(phrase):
        raise WalletError(ErrorCode.INVALID_MNEMONIC)
    entropy = bytes(mnemo.to_entropy(phrase))
    if len(entropy) != 32:
        raise WalletError(ErrorCode.INVALID_MNEMONIC, "Mnemonic seeds must be 24 words.")
    k = int.from_bytes(entropy, "big")
    if not (0 < k < SECP256k1.order):
        raise WalletError(ErrorCode.INVALID_MNEMONIC, "Mnemonic does not encode a valid private key.")
    return entropy.hex()


# ---------------- Signatures ----------------

def sign(private_key: str, data: bytes) -> str:
    sk = SigningKey.from_string(bytes.fromhex(private_key), curve=SECP256k1)
    return sk.sign_deterministic(data, hashfunc=hashlib.sha256, sigencode=sigencode_der).hex()


def verify(public_key: str, data: bytes, signature_hex: str) -> bool:
    try:
        vk = VerifyingKey.from_string(bytes.fromhex(public_key), curve=SECP256k1)
        return vk.verify(bytes.fromhex(signature_hex), data, hashfunc=hashlib.sha256, sigdecode=sigdecode_der)
    except (BadSignatureError, MalformedPointError, ValueError):
        return False
