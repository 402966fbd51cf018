# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from typing import List, Optional, Tuple

# ---------------- Local Project ----------------
from ..core.errors import WalletError
from ..core.keys import address_to_keys
from ..core.types import Transaction, WalletStatus
from ..core.validation import validate_our_addresses


class WalletQueryMixin:
    # provided by WalletBackend: _sub_wallets, _daemon, _synchronizer,
    # _wallet_height(), _require_init()

    # --------- balances ---------

    def get_balance(self, address: str) -> Tuple[Optional[WalletError], int, int]:
        """Returns (error, unlocked, locked) for one of our addresses."""
        self._require_init()
        try:
            validate_our_addresses([address], self._sub_wallets)
        except WalletError as e:
            return e, 0, 0
        pub = address_to_keys(address)[0]
        unlocked, locked = self._sub_wallets.get_balance([pub], False, self._wallet_height())
        return None, unlocked, locked

    def get_total_balance(self) -> Tuple[int, int]:
        self._require_init()
        return self._sub_wallets.get_balance([], True, self._wallet_height())

    def get_total_unlocked_balance(self) -> int:
        return self.get_total_balance()[0]

    def get_balances(self) -> List[Tuple[str, int, int]]:
        self._require_init()
        return self._sub_wallets.get_balances(self._wallet_height())

    # --------- history ---------

    def get_transactions(self) -> List[Transaction]:
        self._require_init()
        return self._sub_wallets.get_transactions()

    def get_unconfirmed_transactions(self) -> List[Transaction]:
        self._require_init()
        return self._sub_wallets.get_unconfirmed_transactions()

    def get_transactions_range(self, start_height: int, end_height: int) -> List[Transaction]:
        """Confirmed transactions with start_height <= block_height < end_height."""
        return [tx for tx in self.get_transactions() if start_height <= tx.block_height < end_height]

    def get_tx_private_key(self, transaction_hash: str) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        try:
            return None, self._sub_wallets.get_tx_private_key(transaction_hash)
        except WalletError as e:
            return e, ""

    # --------- sync & daemon ---------

    def get_sync_status(self) -> Tuple[int, int, int]:
        """Returns (wallet height, local daemon height, network height)."""
        self._require_init()
        return (
            self._wallet_height(),
            self._daemon.local_daemon_block_count(),
            self._daemon.network_block_count(),
        )

    def get_status(self) -> WalletStatus:
        wallet, local, network = self.get_sync_status()
        return WalletStatus(
            wallet_block_count=wallet,
            local_daemon_block_count=local,
            network_block_count=network,
            peer_count=self._daemon.peer_count(),
            last_known_hashrate=self._daemon.hashrate(),
        )

    def get_node_fee(self) -> Tuple[int, str]:
        self._require_init()
        return self._daemon.node_fee()

    def get_node_address(self) -> Tuple[str, int, bool]:
        self._require_init()
        return self._daemon.node_address()

    def daemon_online(self) -> bool:
        self._require_init()
        return self._daemon.is_online()

    # --------- addresses ---------

    def get_address(self, public_spend_key: str) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        try:
            return None, self._sub_wallets.get_address(public_spend_key.lower())
        except WalletError as e:
            return e, ""

    def get_primary_address(self) -> str:
        self._require_init()
        return self._sub_wallets.get_primary_address()

    def get_addresses(self) -> List[str]:
        self._require_init()
        return self._sub_wallets.get_addresses()

    def get_wallet_count(self) -> int:
        self._require_init()
        return self._sub_wallets.get_wallet_count()
