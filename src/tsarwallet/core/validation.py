# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: BIP173; libsecp256k1
from __future__ import annotations

import re
from typing import Iterable, Sequence, Tuple

from ecdsa import SECP256k1, VerifyingKey
from ecdsa.errors import MalformedPointError

from .errors import ErrorCode, WalletError
from .keys import address_to_keys
from ..utils import config as CFG

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


def _is_hex(s: str, length: int) -> bool:
    return isinstance(s, str) and len(s) == length and bool(_HEX_RE.fullmatch(s))


def validate_private_key(priv_hex: str) -> None:
    if not _is_hex(priv_hex, CFG.PRIVATE_KEY_HEX_LENGTH):
        raise WalletError(ErrorCode.INVALID_PRIVATE_KEY)
    k = int(priv_hex, 16)
    if not (0 < k < SECP256k1.order):
        raise WalletError(ErrorCode.INVALID_PRIVATE_KEY)


def validate_public_key(pub_hex: str) -> None:
    if not _is_hex(pub_hex, CFG.PUBLIC_KEY_HEX_LENGTH) or pub_hex[:2] not in ("02", "03"):
        raise WalletError(ErrorCode.INVALID_PUBLIC_KEY)
    try:
        VerifyingKey.from_string(bytes.fromhex(pub_hex), curve=SECP256k1)
    except (MalformedPointError, ValueError):
        raise WalletError(ErrorCode.INVALID_PUBLIC_KEY) from None


def validate_addresses(addresses: Iterable[str]) -> None:
    for addr in addresses:
        try:
            pub_spend, pub_view = address_to_keys(addr)
            validate_public_key(pub_spend)
            validate_public_key(pub_view)
        except (ValueError, WalletError):
            raise WalletError(ErrorCode.INVALID_ADDRESS, f"The address {addr!r} is invalid.") from None


def validate_our_addresses(addresses: Iterable[str], subwallets) -> None:
    addresses = list(addresses)
    validate_addresses(addresses)
    ours = set(subwallets.get_public_spend_keys())
    for addr in addresses:
        pub_spend, _ = address_to_keys(addr)
        if pub_spend not in ours:
            raise WalletError(ErrorCode.ADDRESS_NOT_IN_WALLET, f"The address {addr!r} does not belong to this wallet.")


def validate_payment_id(payment_id: str) -> None:
    if not payment_id:
        return
    if not _is_hex(payment_id, CFG.PAYMENT_ID_HEX_LENGTH):
        raise WalletError(ErrorCode.INVALID_PAYMENT_ID)


def validate_mixin(mixin: int) -> None:
    if int(mixin) < CFG.MINIMUM_MIXIN:
        raise WalletError(ErrorCode.MIXIN_TOO_SMALL, f"Mixin {mixin} is below the minimum of {CFG.MINIMUM_MIXIN}.")
    if int(mixin) > CFG.MAXIMUM_MIXIN:
        raise WalletError(ErrorCode.MIXIN_TOO_BIG, f"Mixin {mixin} is above the maximum of {CFG.MAXIMUM_MIXIN}.")


def validate_destinations(destinations: Sequence[Tuple[str, int]]) -> None:
    if not destinations:
        raise WalletError(ErrorCode.NO_DESTINATIONS_GIVEN)
    validate_addresses([addr for addr, _ in destinations])
    for _, amount in destinations:
        if int(amount) <= 0:
            raise WalletError(ErrorCode.AMOUNT_IS_ZERO)
