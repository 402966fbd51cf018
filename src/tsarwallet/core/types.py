# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Dict, List, Tuple

from ..utils import config as CFG
from ..utils.helpers import is_unlocked


@dataclass
class TransactionInput:
    key_image: str
    amount: int
    block_height: int
    transaction_hash: str
    output_index: int
    public_spend_key: str
    unlock_time: int = 0
    spend_height: int = 0   # 0 = unspent
    is_coinbase: bool = False

    def is_spendable(self, current_height: int) -> bool:
        if self.spend_height:
            return False
        if not is_unlocked(self.unlock_time, current_height):
            return False
        if self.is_coinbase and self.block_height + CFG.MINED_MONEY_UNLOCK_WINDOW > current_height:
            return False
        return True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "TransactionInput":
        return cls(
            key_image=str(d["key_image"]),
            amount=int(d["amount"]),
            block_height=int(d["block_height"]),
            transaction_hash=str(d["transaction_hash"]),
            output_index=int(d["output_index"]),
            public_spend_key=str(d["public_spend_key"]),
            unlock_time=int(d.get("unlock_time", 0)),
            spend_height=int(d.get("spend_height", 0)),
            is_coinbase=bool(d.get("is_coinbase", False)),
        )


@dataclass
class Transaction:
    hash: str
    transfers: Dict[str, int]   # public spend key -> signed amount
    fee: int
    block_height: int
    timestamp: int
    payment_id: str = ""
    unlock_time: int = 0
    is_coinbase: bool = False

    def total_amount(self) -> int:
        return sum(self.transfers.values())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Transaction":
        return cls(
            hash=str(d["hash"]),
            transfers={str(k): int(v) for k, v in (d.get("transfers") or {}).items()},
            fee=int(d.get("fee", 0)),
            block_height=int(d.get("block_height", 0)),
            timestamp=int(d.get("timestamp", 0)),
            payment_id=str(d.get("payment_id", "")),
            unlock_time=int(d.get("unlock_time", 0)),
            is_coinbase=bool(d.get("is_coinbase", False)),
        )


@dataclass(frozen=True)
class FeeType:
    """Either a fixed fee, a fee per estimated byte, or the network minimum."""
    kind: str = "minimum"
    amount: int = 0

    @classmethod
    def minimum(cls) -> "FeeType":
        return cls("minimum", 0)

    @classmethod
    def fixed(cls, amount: int) -> "FeeType":
        return cls("fixed", int(amount))

    @classmethod
    def per_byte(cls, rate: int) -> "FeeType":
        return cls("per_byte", int(rate))


@dataclass
class PreparedTransaction:
    transaction_hash: str
    tx: dict
    inputs: List[TransactionInput]
    destinations: List[Tuple[str, int]]
    fee: int
    change_address: str = ""
    change_amount: int = 0
    tx_private_key: str = ""
    deadline: int = 0   # 0 = no deadline, else the last block height the tx is valid at
    is_fusion: bool = False

    def input_key_images(self) -> List[str]:
        return [i.key_image for i in self.inputs]


@dataclass
class WalletStatus:
    wallet_block_count: int = 0
    local_daemon_block_count: int = 0
    network_block_count: int = 0
    peer_count: int = 0
    last_known_hashrate: int = 0


# ---------------- Construction key variants ----------------

@dataclass(frozen=True)
class SpendKeys:
    """Only the spend key is known, the view key gets derived."""
    private_spend_key: str


@dataclass(frozen=True)
class FullKeys:
    private_spend_key: str
    private_view_key: str


@dataclass(frozen=True)
class ViewOnlyKeys:
    private_view_key: str
    address: str


__all__ = [
    "TransactionInput", "Transaction", "FeeType", "PreparedTransaction", "WalletStatus",
    "SpendKeys", "FullKeys", "ViewOnlyKeys",
]
