# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: BIP39; see REFERENCES.md
"""
Wallet lifecycle: the five ways to get a wallet, saving, sub-wallet
management and the key queries.

Public methods return a tuple whose first element is None on success or
the WalletError that stopped them. Anything that changes registry or
synchronizer state runs through the SynchronizerGuard so the background
thread never sees a half-applied change.
"""
from __future__ import annotations

import json
import os
import threading
from typing import Dict, Optional, Tuple, Union

# ---------------- Local Project ----------------
from ..core.errors import ErrorCode, WalletError
from ..core.keys import (
    address_to_keys, generate_keys, generate_view_from_spend, mnemonic_to_private_key,
    private_key_to_mnemonic,
)
from ..core.types import FullKeys, PreparedTransaction, SpendKeys, ViewOnlyKeys
from ..core.validation import (
    validate_addresses, validate_our_addresses, validate_private_key, validate_public_key,
)
from ..network.daemon import Daemon, NodeDaemon
from ..storage.container import read_wallet_file, write_wallet_file
from ..utils.helpers import timestamp_to_scan_height
from ..utils import config as CFG
from .pipeline import TransactionPipelineMixin
from .queries import WalletQueryMixin
from .subwallets import SubWallets
from .sync_guard import SynchronizerGuard
from .synchronizer import WalletSynchronizer
from .transfer import TransferService

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.wallet(backend)")

WalletKeys = Union[SpendKeys, FullKeys, ViewOnlyKeys]


class WalletBackend(WalletQueryMixin, TransactionPipelineMixin):
    def __init__(self, filename: str, password: str, sub_wallets: SubWallets,
                 synchronizer: WalletSynchronizer, daemon: Daemon):
        self._filename = filename
        self._password = password
        self._sub_wallets = sub_wallets
        self._synchronizer = synchronizer
        self._daemon = daemon
        self._guard: Optional[SynchronizerGuard] = None
        self._initialized = False

        self._transaction_lock = threading.Lock()
        self._prepared_transactions: Dict[str, PreparedTransaction] = {}

    # ---------------- construction ----------------

    @staticmethod
    def _make_daemon(daemon_host: str, daemon_port: int, daemon_ssl: bool, daemon: Optional[Daemon]) -> Daemon:
        if daemon is not None:
            return daemon
        return NodeDaemon(daemon_host, daemon_port, daemon_ssl)

    @staticmethod
    def _resolve_filename(filename: Optional[str]) -> str:
        """None selects the default wallet in the per-user data directory."""
        if filename is None:
            os.makedirs(CFG.WALLET_DATA_DIR, exist_ok=True)
            return CFG.DEFAULT_WALLET_FILE
        return filename

    @classmethod
    def _check_new_wallet_filename(cls, filename: Optional[str]) -> str:
        filename = cls._resolve_filename(filename)
        if filename and os.path.exists(filename):
            raise WalletError(ErrorCode.WALLET_FILE_ALREADY_EXISTS,
                              f"The wallet file {filename!r} already exists, refusing to overwrite it.")
        try:
            if not filename:
                raise OSError("empty filename")
            with open(filename, "wb"):
                pass
            os.remove(filename)
        except OSError:
            raise WalletError(ErrorCode.INVALID_WALLET_FILENAME,
                              f"The wallet file {filename!r} cannot be written to.") from None
        return filename

    @classmethod
    def _build(cls, keys: WalletKeys, filename: str, password: str, scan_height: int,
               new_wallet: bool, daemon: Daemon) -> "WalletBackend":
        if isinstance(keys, ViewOnlyKeys):
            public_spend_key, _ = address_to_keys(keys.address)
            sub_wallets = SubWallets.create_view(keys.private_view_key, public_spend_key, scan_height, new_wallet)
            private_view_key = keys.private_view_key
        else:
            if isinstance(keys, FullKeys):
                private_view_key = keys.private_view_key
            else:
                private_view_key, _ = generate_view_from_spend(keys.private_spend_key)
            sub_wallets = SubWallets.create(keys.private_spend_key, private_view_key, scan_height, new_wallet)

        start_height, start_timestamp = sub_wallets.get_min_initial_sync_start()
        synchronizer = WalletSynchronizer(daemon, start_height, start_timestamp, private_view_key)
        wallet = cls(filename, password, sub_wallets, synchronizer, daemon)
        wallet._init()
        return wallet

    @classmethod
    def _build_and_save(cls, keys: WalletKeys, filename: str, password: str, scan_height: int,
                        new_wallet: bool, daemon: Daemon) -> Tuple[Optional[WalletError], Optional["WalletBackend"]]:
        wallet = cls._build(keys, filename, password, scan_height, new_wallet, daemon)
        err = wallet.save()
        if err:
            wallet._shutdown()
            return err, None
        log.info("[_build_and_save] wallet %s ready, primary %s", filename, wallet.get_primary_address())
        return None, wallet

    @classmethod
    def create_wallet(cls, filename: str, password: str,
                      daemon_host: str = CFG.DEFAULT_DAEMON_HOST, daemon_port: int = CFG.DEFAULT_DAEMON_PORT,
                      daemon_ssl: bool = CFG.DEFAULT_DAEMON_SSL, daemon: Optional[Daemon] = None):
        try:
            filename = cls._check_new_wallet_filename(filename)
        except WalletError as e:
            return e, None
        _, private_spend_key = generate_keys()
        return cls._build_and_save(SpendKeys(private_spend_key), filename, password, 0, True,
                                   cls._make_daemon(daemon_host, daemon_port, daemon_ssl, daemon))

    @classmethod
    def import_wallet_from_seed(cls, mnemonic_seed: str, filename: str, password: str, scan_height: int = 0,
                                daemon_host: str = CFG.DEFAULT_DAEMON_HOST, daemon_port: int = CFG.DEFAULT_DAEMON_PORT,
                                daemon_ssl: bool = CFG.DEFAULT_DAEMON_SSL, daemon: Optional[Daemon] = None):
        try:
            filename = cls._check_new_wallet_filename(filename)
            private_spend_key = mnemonic_to_private_key(mnemonic_seed)
        except WalletError as e:
            return e, None
        return cls._build_and_save(SpendKeys(private_spend_key), filename, password, int(scan_height), False,
                                   cls._make_daemon(daemon_host, daemon_port, daemon_ssl, daemon))

    @classmethod
    def import_wallet_from_keys(cls, private_spend_key: str, private_view_key: str, filename: str, password: str,
                                scan_height: int = 0,
                                daemon_host: str = CFG.DEFAULT_DAEMON_HOST, daemon_port: int = CFG.DEFAULT_DAEMON_PORT,
                                daemon_ssl: bool = CFG.DEFAULT_DAEMON_SSL, daemon: Optional[Daemon] = None):
        private_spend_key = (private_spend_key or "").strip().lower()
        private_view_key = (private_view_key or "").strip().lower()
        try:
            filename = cls._check_new_wallet_filename(filename)
            validate_private_key(private_spend_key)
            validate_private_key(private_view_key)
        except WalletError as e:
            return e, None
        return cls._build_and_save(FullKeys(private_spend_key, private_view_key), filename, password,
                                   int(scan_height), False,
                                   cls._make_daemon(daemon_host, daemon_port, daemon_ssl, daemon))

    @classmethod
    def import_view_wallet(cls, private_view_key: str, address: str, filename: str, password: str,
                           scan_height: int = 0,
                           daemon_host: str = CFG.DEFAULT_DAEMON_HOST, daemon_port: int = CFG.DEFAULT_DAEMON_PORT,
                           daemon_ssl: bool = CFG.DEFAULT_DAEMON_SSL, daemon: Optional[Daemon] = None):
        private_view_key = (private_view_key or "").strip().lower()
        address = (address or "").strip()
        try:
            filename = cls._check_new_wallet_filename(filename)
            validate_private_key(private_view_key)
            validate_addresses([address])
        except WalletError as e:
            return e, None
        return cls._build_and_save(ViewOnlyKeys(private_view_key, address), filename, password,
                                   int(scan_height), False,
                                   cls._make_daemon(daemon_host, daemon_port, daemon_ssl, daemon))

    @classmethod
    def open_wallet(cls, filename: str, password: str,
                    daemon_host: str = CFG.DEFAULT_DAEMON_HOST, daemon_port: int = CFG.DEFAULT_DAEMON_PORT,
                    daemon_ssl: bool = CFG.DEFAULT_DAEMON_SSL, daemon: Optional[Daemon] = None):
        try:
            filename = cls._resolve_filename(filename)
            state = read_wallet_file(filename, password)
            if not isinstance(state.get("subWallets"), dict) or not isinstance(state.get("walletSynchronizer"), dict):
                raise WalletError(ErrorCode.WALLET_FILE_CORRUPTED)
            sub_wallets = SubWallets.from_json(state["subWallets"])
            synchronizer = WalletSynchronizer.from_json(state["walletSynchronizer"], sub_wallets.private_view_key)
        except WalletError as e:
            log.warning("[open_wallet] cannot open %s: %s", filename, e.code.name)
            return e, None

        daemon = cls._make_daemon(daemon_host, daemon_port, daemon_ssl, daemon)
        wallet = cls(filename, password, sub_wallets, synchronizer, daemon)
        wallet._init()
        log.info("[open_wallet] opened %s with %d sub-wallet(s)", filename, sub_wallets.get_wallet_count())
        return None, wallet

    def _init(self) -> None:
        self._daemon.init()
        self._synchronizer.initialize_after_load(self._daemon)
        self._synchronizer.set_sub_wallets(self._sub_wallets)
        self._guard = SynchronizerGuard(self._synchronizer)
        self._synchronizer.start()
        self._initialized = True

    # ---------------- internals ----------------

    def _require_init(self) -> None:
        if not self._initialized:
            raise RuntimeError("WalletBackend used before it was initialized or after close()")

    def _wallet_height(self) -> int:
        return self._synchronizer.get_current_scan_height()

    def _transfer_service(self) -> TransferService:
        return TransferService(self._sub_wallets, self._daemon)

    def _state(self) -> dict:
        return {
            "walletFileFormatVersion": CFG.WALLET_FILE_FORMAT_VERSION,
            "subWallets": self._sub_wallets.to_json(),
            "walletSynchronizer": self._synchronizer.to_json(),
        }

    def _unsafe_save(self) -> Optional[WalletError]:
        try:
            write_wallet_file(self._filename, self._state(), self._password)
        except WalletError as e:
            return e
        return None

    def _rescan_from(self, scan_height: int) -> None:
        # only called with the synchronizer paused
        if scan_height <= self._synchronizer.get_current_scan_height():
            self._synchronizer.reset(scan_height)
            self._sub_wallets.rewind(scan_height)

    def _shutdown(self) -> None:
        self._synchronizer.stop()
        self._daemon.stop()
        self._initialized = False

    # ---------------- persistence ----------------

    def save(self) -> Optional[WalletError]:
        self._require_init()
        return self._guard.pause_and_run(self._unsafe_save)

    def to_json(self) -> str:
        self._require_init()
        return self._guard.pause_and_run(lambda: json.dumps(self._state()))

    def change_password(self, new_password: str) -> Optional[WalletError]:
        self._require_init()
        if new_password == self._password:
            return None
        self._password = new_password
        log.info("[change_password] password changed for %s", self._filename)
        return self.save()

    def close(self) -> Optional[WalletError]:
        """Final save, then stop the synchronizer and the daemon client."""
        if not self._initialized:
            return None
        err = self.save()
        if err:
            log.error("[close] final save of %s failed: %s", self._filename, err.message)
        self._shutdown()
        return err

    def __enter__(self) -> "WalletBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- node ----------------

    def swap_node(self, daemon_host: str, daemon_port: int, daemon_ssl: bool = False) -> None:
        self._require_init()
        self._guard.pause_and_run(lambda: self._daemon.swap_node(daemon_host, int(daemon_port), bool(daemon_ssl)))
        log.info("[swap_node] now using %s:%d", daemon_host, int(daemon_port))

    # ---------------- rescanning ----------------

    def reset(self, scan_height: int = 0, timestamp: int = 0) -> Optional[WalletError]:
        """Forget all chain data and rescan from scan_height (or the height of timestamp)."""
        self._require_init()
        height = timestamp_to_scan_height(timestamp) if timestamp else int(scan_height)

        def fn():
            self._synchronizer.reset(height)
            self._sub_wallets.reset(height)
        self._guard.pause_and_run(fn)
        return self.save()

    def rewind(self, scan_height: int = 0, timestamp: int = 0) -> Optional[WalletError]:
        """Drop chain data at or above scan_height and rescan from there."""
        self._require_init()
        height = timestamp_to_scan_height(timestamp) if timestamp else int(scan_height)

        def fn():
            self._synchronizer.rewind(height)
            self._sub_wallets.rewind(height)
        self._guard.pause_and_run(fn)
        return self.save()

    def scan_range(self, start_height: int, end_height: int) -> Optional[WalletError]:
        """Rescan [start_height, end_height], then continue from where the wallet was."""
        self._require_init()
        start_height, end_height = int(start_height), int(end_height)
        if end_height < start_height:
            start_height, end_height = end_height, start_height
        self._guard.pause_and_run(lambda: self._synchronizer.set_end_scan_height(start_height, end_height))
        return self.save()

    # ---------------- sub-wallets ----------------

    def add_sub_wallet(self) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        try:
            address = self._guard.pause_and_run(self._sub_wallets.add_sub_wallet)
        except WalletError as e:
            return e, ""
        return self.save(), address

    def _import_guarded(self, do_import, scan_height: int) -> Tuple[Optional[WalletError], str]:
        def fn():
            address = do_import()
            self._rescan_from(scan_height)
            return address
        try:
            address = self._guard.pause_and_run(fn)
        except WalletError as e:
            return e, ""
        return self.save(), address

    def import_sub_wallet(self, private_spend_key: str, scan_height: int = 0) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        private_spend_key = (private_spend_key or "").strip().lower()
        try:
            validate_private_key(private_spend_key)
        except WalletError as e:
            return e, ""
        scan_height = int(scan_height)
        return self._import_guarded(lambda: self._sub_wallets.import_sub_wallet(private_spend_key, scan_height), scan_height)

    def import_sub_wallet_by_index(self, wallet_index: int, scan_height: int = 0) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        scan_height = int(scan_height)
        return self._import_guarded(
            lambda: self._sub_wallets.import_sub_wallet_by_index(int(wallet_index), scan_height), scan_height)

    def import_view_sub_wallet(self, public_spend_key: str, scan_height: int = 0) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        public_spend_key = (public_spend_key or "").strip().lower()
        try:
            validate_public_key(public_spend_key)
        except WalletError as e:
            return e, ""
        scan_height = int(scan_height)
        return self._import_guarded(
            lambda: self._sub_wallets.import_view_sub_wallet(public_spend_key, scan_height), scan_height)

    def delete_sub_wallet(self, address: str) -> Optional[WalletError]:
        self._require_init()
        try:
            validate_our_addresses([address], self._sub_wallets)
            public_spend_key = address_to_keys(address)[0]
            self._guard.pause_and_run(lambda: self._sub_wallets.delete_sub_wallet(public_spend_key))
        except WalletError as e:
            return e
        return self.save()

    # ---------------- keys ----------------

    def get_spend_keys(self, address: str) -> Tuple[Optional[WalletError], str, str]:
        """Returns (error, public spend key, private spend key)."""
        self._require_init()
        try:
            validate_our_addresses([address], self._sub_wallets)
            public_spend_key = address_to_keys(address)[0]
            private_spend_key = self._sub_wallets.get_private_spend_key(public_spend_key)
        except WalletError as e:
            return e, "", ""
        return None, public_spend_key, private_spend_key

    def get_private_view_key(self) -> str:
        self._require_init()
        return self._sub_wallets.get_private_view_key()

    def get_primary_address_private_keys(self) -> Tuple[Optional[WalletError], str, str]:
        """Returns (error, private spend key, private view key) of the primary address."""
        self._require_init()
        try:
            private_spend_key = self._sub_wallets.get_primary_private_spend_key()
        except WalletError as e:
            return e, "", ""
        return None, private_spend_key, self._sub_wallets.get_private_view_key()

    def get_mnemonic_seed(self) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        return self.get_mnemonic_seed_for_address(self._sub_wallets.get_primary_address())

    def get_mnemonic_seed_for_address(self, address: str) -> Tuple[Optional[WalletError], str]:
        """
        A seed only exists when the view key is derivable from the spend key,
        otherwise restoring from the words would lose the view key.
        """
        err, _, private_spend_key = self.get_spend_keys(address)
        if err:
            return err, ""
        derived_view_key, _ = generate_view_from_spend(private_spend_key)
        if derived_view_key != self._sub_wallets.get_private_view_key():
            return WalletError(ErrorCode.KEYS_NOT_DETERMINISTIC), ""
        return None, private_key_to_mnemonic(private_spend_key)

    def is_view_wallet(self) -> bool:
        return self._sub_wallets.is_view_wallet

    def get_wallet_location(self) -> str:
        return self._filename

    def get_wallet_password(self) -> str:
        return self._password
