# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Registry of the sub-wallets held by one container.

All sub-wallets share the container's private view key. A container is
either spend-capable (every sub-wallet has a private spend key) or a pure
view container (none do). Deterministic sub-wallets are numbered from the
primary key, index 0 being the primary itself.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

# ---------------- Local Project ----------------
from ..core.errors import ErrorCode, WalletError
from ..core.keys import (
    derive_subwallet_spend_key, public_keys_to_address, secret_key_to_public_key,
)
from ..core.types import Transaction, TransactionInput
from ..utils.helpers import get_current_timestamp_adjusted, timestamp_to_scan_height

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.wallet(subwallets)")


class SubWallet:
    def __init__(self, public_spend_key: str, address: str, private_spend_key: Optional[str] = None,
                 sync_start_height: int = 0, sync_start_timestamp: int = 0,
                 is_primary: bool = False, wallet_index: Optional[int] = None):
        self.public_spend_key = public_spend_key
        self.private_spend_key = private_spend_key
        self.address = address
        self.sync_start_height = int(sync_start_height)
        self.sync_start_timestamp = int(sync_start_timestamp)
        self.is_primary = bool(is_primary)
        self.wallet_index = wallet_index
        self.unspent_inputs: List[TransactionInput] = []
        self.locked_inputs: List[TransactionInput] = []
        self.spent_inputs: List[TransactionInput] = []
        # change from our own pending sends, tx hash -> amount
        self.unconfirmed_incoming: Dict[str, int] = {}

    def effective_start_height(self) -> int:
        if self.sync_start_timestamp:
            return max(self.sync_start_height, timestamp_to_scan_height(self.sync_start_timestamp))
        return self.sync_start_height

    def get_balance(self, current_height: int) -> Tuple[int, int]:
        unlocked = locked = 0
        for inp in self.unspent_inputs:
            if inp.is_spendable(current_height):
                unlocked += inp.amount
            else:
                locked += inp.amount
        locked += sum(self.unconfirmed_incoming.values())
        return unlocked, locked

    def has_key_image(self, key_image: str) -> bool:
        return any(i.key_image == key_image
                   for i in self.unspent_inputs + self.locked_inputs + self.spent_inputs)

    def store_input(self, inp: TransactionInput) -> None:
        if self.has_key_image(inp.key_image):
            return
        self.unspent_inputs.append(inp)

    def mark_input_as_spent(self, key_image: str, spend_height: int) -> bool:
        for bucket in (self.unspent_inputs, self.locked_inputs):
            for inp in bucket:
                if inp.key_image == key_image:
                    bucket.remove(inp)
                    inp.spend_height = int(spend_height)
                    self.spent_inputs.append(inp)
                    return True
        return False

    def mark_input_as_locked(self, key_image: str) -> bool:
        for inp in self.unspent_inputs:
            if inp.key_image == key_image:
                self.unspent_inputs.remove(inp)
                self.locked_inputs.append(inp)
                return True
        return False

    def get_spendable_inputs(self, current_height: int) -> List[TransactionInput]:
        return [i for i in self.unspent_inputs if i.is_spendable(current_height)]

    def remove_forked_inputs(self, fork_height: int) -> None:
        self.unspent_inputs = [i for i in self.unspent_inputs if i.block_height < fork_height]
        self.locked_inputs = [i for i in self.locked_inputs if i.block_height < fork_height]
        still_spent = []
        for inp in self.spent_inputs:
            if inp.block_height >= fork_height:
                continue
            if inp.spend_height >= fork_height:
                inp.spend_height = 0
                self.unspent_inputs.append(inp)
            else:
                still_spent.append(inp)
        self.spent_inputs = still_spent

    def reset(self, scan_height: int) -> None:
        self.sync_start_height = int(scan_height)
        self.sync_start_timestamp = 0
        self.unspent_inputs = []
        self.locked_inputs = []
        self.spent_inputs = []
        self.unconfirmed_incoming = {}

    def to_dict(self) -> dict:
        return {
            "publicSpendKey": self.public_spend_key,
            "privateSpendKey": self.private_spend_key,
            "address": self.address,
            "syncStartHeight": self.sync_start_height,
            "syncStartTimestamp": self.sync_start_timestamp,
            "isPrimaryAddress": self.is_primary,
            "walletIndex": self.wallet_index,
            "unspentInputs": [i.to_dict() for i in self.unspent_inputs],
            "lockedInputs": [i.to_dict() for i in self.locked_inputs],
            "spentInputs": [i.to_dict() for i in self.spent_inputs],
            "unconfirmedIncomingAmounts": dict(self.unconfirmed_incoming),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SubWallet":
        sw = cls(
            public_spend_key=d["publicSpendKey"],
            address=d["address"],
            private_spend_key=d.get("privateSpendKey"),
            sync_start_height=d.get("syncStartHeight", 0),
            sync_start_timestamp=d.get("syncStartTimestamp", 0),
            is_primary=d.get("isPrimaryAddress", False),
            wallet_index=d.get("walletIndex"),
        )
        sw.unspent_inputs = [TransactionInput.from_dict(x) for x in d.get("unspentInputs", [])]
        sw.locked_inputs = [TransactionInput.from_dict(x) for x in d.get("lockedInputs", [])]
        sw.spent_inputs = [TransactionInput.from_dict(x) for x in d.get("spentInputs", [])]
        sw.unconfirmed_incoming = {str(k): int(v) for k, v in (d.get("unconfirmedIncomingAmounts") or {}).items()}
        return sw


class SubWallets:
    def __init__(self, private_view_key: str, is_view_wallet: bool = False):
        self._lock = threading.RLock()
        self.private_view_key = private_view_key
        self.public_view_key = secret_key_to_public_key(private_view_key)
        self.is_view_wallet = bool(is_view_wallet)
        self._sub_wallets: Dict[str, SubWallet] = {}
        self._order: List[str] = []
        self.transactions: List[Transaction] = []
        self.locked_transactions: List[Transaction] = []
        self.tx_private_keys: Dict[str, str] = {}

    # ---------------- construction ----------------

    @classmethod
    def create(cls, private_spend_key: str, private_view_key: str,
               scan_height: int, new_wallet: bool) -> "SubWallets":
        reg = cls(private_view_key, is_view_wallet=False)
        pub_spend = secret_key_to_public_key(private_spend_key)
        reg._insert(pub_spend, private_spend_key, scan_height, new_wallet, is_primary=True, wallet_index=0)
        return reg

    @classmethod
    def create_view(cls, private_view_key: str, public_spend_key: str,
                    scan_height: int, new_wallet: bool) -> "SubWallets":
        reg = cls(private_view_key, is_view_wallet=True)
        reg._insert(public_spend_key, None, scan_height, new_wallet, is_primary=True, wallet_index=0)
        return reg

    def _insert(self, public_spend_key: str, private_spend_key: Optional[str], scan_height: int,
                new_wallet: bool, is_primary: bool = False, wallet_index: Optional[int] = None) -> SubWallet:
        timestamp = get_current_timestamp_adjusted() if new_wallet else 0
        sw = SubWallet(
            public_spend_key=public_spend_key,
            address=public_keys_to_address(public_spend_key, self.public_view_key),
            private_spend_key=private_spend_key,
            sync_start_height=0 if new_wallet else scan_height,
            sync_start_timestamp=timestamp,
            is_primary=is_primary,
            wallet_index=wallet_index,
        )
        self._sub_wallets[public_spend_key] = sw
        self._order.append(public_spend_key)
        return sw

    def _get(self, public_spend_key: str) -> SubWallet:
        sw = self._sub_wallets.get(public_spend_key)
        if sw is None:
            raise WalletError(ErrorCode.ADDRESS_NOT_IN_WALLET)
        return sw

    def _primary(self) -> SubWallet:
        for pub in self._order:
            sw = self._sub_wallets[pub]
            if sw.is_primary:
                return sw
        raise RuntimeError("registry has no primary sub-wallet")

    # ---------------- sub-wallet mutations ----------------

    def add_sub_wallet(self) -> str:
        """Adds the next deterministic sub-wallet, returns its address."""
        with self._lock:
            if self.is_view_wallet:
                raise WalletError(ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION)
            primary = self._primary()
            used = [sw.wallet_index for sw in self._sub_wallets.values() if sw.wallet_index is not None]
            index = max(used) + 1
            while True:
                priv = derive_subwallet_spend_key(primary.private_spend_key, index)
                pub = secret_key_to_public_key(priv)
                if pub not in self._sub_wallets:
                    break
                index += 1
            sw = self._insert(pub, priv, 0, True, wallet_index=index)
            log.info("[add_sub_wallet] added sub-wallet #%d %s", index, sw.address)
            return sw.address

    def import_sub_wallet(self, private_spend_key: str, scan_height: int,
                          wallet_index: Optional[int] = None) -> str:
        with self._lock:
            if self.is_view_wallet:
                raise WalletError(ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION)
            pub = secret_key_to_public_key(private_spend_key)
            if pub in self._sub_wallets:
                raise WalletError(ErrorCode.SUBWALLET_ALREADY_EXISTS)
            sw = self._insert(pub, private_spend_key, scan_height, False, wallet_index=wallet_index)
            log.info("[import_sub_wallet] imported %s from height %d", sw.address, scan_height)
            return sw.address

    def import_sub_wallet_by_index(self, wallet_index: int, scan_height: int) -> str:
        with self._lock:
            if self.is_view_wallet:
                raise WalletError(ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION)
            priv = derive_subwallet_spend_key(self._primary().private_spend_key, int(wallet_index))
            return self.import_sub_wallet(priv, scan_height, wallet_index=int(wallet_index))

    def import_view_sub_wallet(self, public_spend_key: str, scan_height: int) -> str:
        with self._lock:
            if not self.is_view_wallet:
                raise WalletError(ErrorCode.ILLEGAL_NON_VIEW_WALLET_OPERATION)
            if public_spend_key in self._sub_wallets:
                raise WalletError(ErrorCode.SUBWALLET_ALREADY_EXISTS)
            sw = self._insert(public_spend_key, None, scan_height, False)
            log.info("[import_view_sub_wallet] imported view sub-wallet %s from height %d", sw.address, scan_height)
            return sw.address

    def delete_sub_wallet(self, public_spend_key: str) -> None:
        with self._lock:
            sw = self._get(public_spend_key)
            if sw.is_primary:
                raise WalletError(ErrorCode.CANNOT_DELETE_PRIMARY_ADDRESS)
            del self._sub_wallets[public_spend_key]
            self._order.remove(public_spend_key)
            self.transactions = self._strip_key(self.transactions, public_spend_key)
            self.locked_transactions = self._strip_key(self.locked_transactions, public_spend_key)
            log.info("[delete_sub_wallet] deleted %s", sw.address)

    @staticmethod
    def _strip_key(txs: List[Transaction], public_spend_key: str) -> List[Transaction]:
        kept = []
        for tx in txs:
            if public_spend_key in tx.transfers:
                transfers = {k: v for k, v in tx.transfers.items() if k != public_spend_key}
                if not transfers:
                    continue
                tx = replace(tx, transfers=transfers)
            kept.append(tx)
        return kept

    # ---------------- keys & addresses ----------------

    def get_public_spend_keys(self) -> List[str]:
        with self._lock:
            return list(self._order)

    def has_public_spend_key(self, public_spend_key: str) -> bool:
        with self._lock:
            return public_spend_key in self._sub_wallets

    def get_addresses(self) -> List[str]:
        with self._lock:
            return [self._sub_wallets[p].address for p in self._order]

    def get_primary_address(self) -> str:
        with self._lock:
            return self._primary().address

    def get_address(self, public_spend_key: str) -> str:
        with self._lock:
            return self._get(public_spend_key).address

    def get_wallet_count(self) -> int:
        with self._lock:
            return len(self._order)

    def get_private_view_key(self) -> str:
        return self.private_view_key

    def get_private_spend_key(self, public_spend_key: str) -> str:
        with self._lock:
            sw = self._get(public_spend_key)
            if sw.private_spend_key is None:
                raise WalletError(ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION)
            return sw.private_spend_key

    def get_primary_private_spend_key(self) -> str:
        with self._lock:
            if self.is_view_wallet:
                raise WalletError(ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION)
            return self._primary().private_spend_key

    def get_min_initial_sync_start(self) -> Tuple[int, int]:
        """
        Returns (height, timestamp) the synchronizer has to start from.

        When every sub-wallet was created fresh the oldest creation timestamp
        is returned with height 0, otherwise the lowest effective height.
        """
        with self._lock:
            subs = [self._sub_wallets[p] for p in self._order]
            if subs and all(sw.sync_start_timestamp for sw in subs):
                return 0, min(sw.sync_start_timestamp for sw in subs)
            return min((sw.effective_start_height() for sw in subs), default=0), 0

    # ---------------- balances ----------------

    def get_balance(self, public_spend_keys: Iterable[str], take_from_all: bool,
                    current_height: int) -> Tuple[int, int]:
        with self._lock:
            keys = self._order if take_from_all else list(public_spend_keys)
            unlocked = locked = 0
            for pub in keys:
                u, l = self._get(pub).get_balance(current_height)
                unlocked += u
                locked += l
            return unlocked, locked

    def get_balances(self, current_height: int) -> List[Tuple[str, int, int]]:
        with self._lock:
            out = []
            for pub in self._order:
                sw = self._sub_wallets[pub]
                u, l = sw.get_balance(current_height)
                out.append((sw.address, u, l))
            return out

    # ---------------- inputs ----------------

    def store_transaction_input(self, public_spend_key: str, inp: TransactionInput) -> None:
        with self._lock:
            self._get(public_spend_key).store_input(inp)

    def mark_input_as_spent(self, key_image: str, spend_height: int) -> Optional[str]:
        """Returns the owning public spend key, None when the key image is not ours."""
        with self._lock:
            for pub in self._order:
                if self._sub_wallets[pub].mark_input_as_spent(key_image, spend_height):
                    return pub
            return None

    def mark_inputs_as_locked(self, key_images: Iterable[str]) -> None:
        with self._lock:
            for ki in key_images:
                for pub in self._order:
                    if self._sub_wallets[pub].mark_input_as_locked(ki):
                        break

    def get_spendable_inputs(self, public_spend_keys: Iterable[str], take_from_all: bool,
                             current_height: int) -> List[TransactionInput]:
        with self._lock:
            keys = self._order if take_from_all else list(public_spend_keys)
            out: List[TransactionInput] = []
            for pub in keys:
                out.extend(self._get(pub).get_spendable_inputs(current_height))
            return out

    def is_input_spendable(self, key_image: str, current_height: int) -> bool:
        with self._lock:
            for sw in self._sub_wallets.values():
                for inp in sw.unspent_inputs:
                    if inp.key_image == key_image:
                        return inp.is_spendable(current_height)
            return False

    def add_unconfirmed_incoming(self, public_spend_key: str, tx_hash: str, amount: int) -> None:
        with self._lock:
            self._get(public_spend_key).unconfirmed_incoming[tx_hash] = int(amount)

    # ---------------- transactions ----------------

    def add_transaction(self, tx: Transaction) -> None:
        with self._lock:
            pending = [t for t in self.locked_transactions if t.hash == tx.hash]
            if pending:
                self.locked_transactions = [t for t in self.locked_transactions if t.hash != tx.hash]
                for sw in self._sub_wallets.values():
                    sw.unconfirmed_incoming.pop(tx.hash, None)
            if any(t.hash == tx.hash for t in self.transactions):
                return
            self.transactions.append(tx)

    def add_unconfirmed_transaction(self, tx: Transaction) -> None:
        with self._lock:
            if any(t.hash == tx.hash for t in self.locked_transactions):
                return
            self.locked_transactions.append(tx)

    def get_transactions(self) -> List[Transaction]:
        with self._lock:
            return list(self.transactions)

    def get_unconfirmed_transactions(self) -> List[Transaction]:
        with self._lock:
            return list(self.locked_transactions)

    def store_tx_private_key(self, tx_hash: str, tx_private_key: str) -> None:
        with self._lock:
            self.tx_private_keys[tx_hash] = tx_private_key

    def get_tx_private_key(self, tx_hash: str) -> str:
        with self._lock:
            key = self.tx_private_keys.get(tx_hash)
            if key is None:
                raise WalletError(ErrorCode.TX_PRIVATE_KEY_NOT_FOUND)
            return key

    # ---------------- reset / rewind ----------------

    def reset(self, scan_height: int) -> None:
        """Forget everything learned from the chain, every sub-wallet restarts at scan_height."""
        with self._lock:
            self.transactions = []
            self.locked_transactions = []
            for sw in self._sub_wallets.values():
                sw.reset(scan_height)
            log.info("[reset] registry reset to height %d", scan_height)

    def rewind(self, scan_height: int) -> None:
        """Drop what was learned at or above scan_height, keep everything below."""
        with self._lock:
            self.transactions = [t for t in self.transactions if t.block_height < scan_height]
            for sw in self._sub_wallets.values():
                sw.remove_forked_inputs(scan_height)
            log.info("[rewind] registry rewound to height %d", scan_height)

    # ---------------- persistence ----------------

    def to_json(self) -> dict:
        with self._lock:
            return {
                "privateViewKey": self.private_view_key,
                "isViewWallet": self.is_view_wallet,
                "publicSpendKeys": list(self._order),
                "subWallet": [self._sub_wallets[p].to_dict() for p in self._order],
                "transactions": [t.to_dict() for t in self.transactions],
                "lockedTransactions": [t.to_dict() for t in self.locked_transactions],
                "txPrivateKeys": [{"transactionHash": h, "txPrivateKey": k} for h, k in self.tx_private_keys.items()],
            }

    @classmethod
    def from_json(cls, d: dict) -> "SubWallets":
        try:
            reg = cls(d["privateViewKey"], is_view_wallet=d.get("isViewWallet", False))
            for item in d.get("subWallet", []):
                sw = SubWallet.from_dict(item)
                reg._sub_wallets[sw.public_spend_key] = sw
            order = d.get("publicSpendKeys") or [sw["publicSpendKey"] for sw in d.get("subWallet", [])]
            reg._order = [p for p in order if p in reg._sub_wallets]
            reg.transactions = [Transaction.from_dict(t) for t in d.get("transactions", [])]
            reg.locked_transactions = [Transaction.from_dict(t) for t in d.get("lockedTransactions", [])]
            reg.tx_private_keys = {x["transactionHash"]: x["txPrivateKey"] for x in d.get("txPrivateKeys", [])}
        except (KeyError, TypeError, ValueError, AttributeError):
            raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED) from None
        if not reg._order:
            raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED)
        return reg
