# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations
import hashlib, json, time
from typing import Optional, Union

from ..utils import config as CFG

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# -----------------------------
# HASHING
# -----------------------------

def sha256(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()


def hash_to_scalar(data: bytes) -> int:
    """Reduce a SHA-256 digest onto the secp256k1 group order (never zero)."""
    counter = 0
    while True:
        h = int.from_bytes(sha256(data + counter.to_bytes(4, "big")), "big") % SECP256K1_N
        if h != 0:
            return h
        counter += 1


# -----------------------------
# SERIALIZATION
# -----------------------------

def serialize(obj: Union[dict, list, object]) -> bytes:
    def convert(o):
        if hasattr(o, "to_dict"):
            return o.to_dict()
        elif isinstance(o, bytes):
            return o.hex()
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")
    return json.dumps(obj, default=convert, sort_keys=True, separators=(',', ':'), ensure_ascii=False).encode('utf-8')

def hash_obj_hex(obj) -> str:
    return sha256(serialize(obj)).hex()


# -----------------------------
# HEIGHT / TIMESTAMP
# -----------------------------

def timestamp_to_scan_height(timestamp: int) -> int:
    """
    Approximate the block height for a unix timestamp.

    Deliberately lands a little early (TIMESTAMP_SCAN_SAFETY blocks) since
    block timestamps drift against the target time.
    """
    timestamp = int(timestamp or 0)
    if timestamp <= CFG.GENESIS_BLOCK_TIMESTAMP:
        return 0
    height = (timestamp - CFG.GENESIS_BLOCK_TIMESTAMP) // int(CFG.TARGET_BLOCK_TIME)
    if height > CFG.TIMESTAMP_SCAN_SAFETY:
        height -= CFG.TIMESTAMP_SCAN_SAFETY
    else:
        height = 0
    return int(height)

def get_current_timestamp_adjusted() -> int:
    now = int(time.time())
    adjust = int(CFG.BLOCK_FUTURE_TIME_LIMIT)
    if now < adjust:
        return 0
    return now - adjust

def is_unlocked(unlock_time: int, current_height: int, now: Optional[int] = None) -> bool:
    """
    Values below MAX_BLOCK_NUMBER are block heights, larger ones are unix
    timestamps compared against the wall clock.
    """
    unlock_time = int(unlock_time)
    if unlock_time < CFG.MAX_BLOCK_NUMBER:
        return unlock_time <= int(current_height)
    now = int(time.time()) if now is None else int(now)
    return unlock_time <= now + int(CFG.LOCKED_TX_ALLOWED_DELTA_SECONDS)

def format_amount(atomic: int) -> str:
    sign = "-" if int(atomic) < 0 else ""
    whole, frac = divmod(abs(int(atomic)), CFG.TSAR)
    txt = f"{whole}.{frac:0{CFG.MAX_DECIMALS}d}".rstrip("0").rstrip(".")
    return sign + txt
