# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
"""
Send paths of the wallet backend.

Every send either relays right away or, with send_transaction=False,
parks the built transaction in the prepared cache keyed by its hash. A
parked transaction leaves the cache once it was relayed or once it can no
longer be relayed, so it is submitted at most once.
"""
from __future__ import annotations

from typing import Callable, Optional, Sequence, Tuple, Union

# ---------------- Local Project ----------------
from ..core.errors import ErrorCode, WalletError
from ..core.types import FeeType, PreparedTransaction
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.wallet(pipeline)")

SendResult = Tuple[Optional[WalletError], str, Optional[PreparedTransaction]]


class TransactionPipelineMixin:
    # provided by WalletBackend: _transaction_lock, _prepared_transactions,
    # _transfer_service(), _wallet_height(), _require_init()

    def _run_send(self, build: Callable[[], PreparedTransaction], send_transaction: bool) -> SendResult:
        self._require_init()
        service = self._transfer_service()
        with self._transaction_lock:
            try:
                prepared = build()
                if send_transaction:
                    service.relay(prepared)
                else:
                    self._prepared_transactions[prepared.transaction_hash] = prepared
                    log.debug("[_run_send] prepared transaction cached", extra={"tx": prepared.transaction_hash})
            except WalletError as e:
                return e, "", None
        return None, prepared.transaction_hash, prepared

    def send_transaction_basic(self, destination: str, amount: int, payment_id: str = "",
                               send_all: bool = False, send_transaction: bool = True,
                               deadline: int = 0) -> SendResult:
        return self.send_transaction_advanced(
            [(destination, amount)],
            mixin=CFG.DEFAULT_MIXIN,
            payment_id=payment_id,
            send_all=send_all,
            send_transaction=send_transaction,
            deadline=deadline,
        )

    def send_transaction_advanced(
        self,
        destinations: Sequence[Tuple[str, int]],
        mixin: int = CFG.DEFAULT_MIXIN,
        fee: Optional[FeeType] = None,
        payment_id: str = "",
        sub_wallets_to_take_from: Optional[Sequence[str]] = None,
        change_address: str = "",
        unlock_time: int = 0,
        extra_data: Union[bytes, str, None] = None,
        send_all: bool = False,
        send_transaction: bool = True,
        deadline: int = 0,
    ) -> SendResult:
        def build() -> PreparedTransaction:
            return self._transfer_service().prepare_transaction(
                destinations,
                self._wallet_height(),
                mixin=mixin,
                fee=fee,
                payment_id=payment_id,
                sub_wallets_to_take_from=sub_wallets_to_take_from,
                change_address=change_address,
                unlock_time=unlock_time,
                extra_data=extra_data,
                send_all=send_all,
                deadline=deadline,
            )
        return self._run_send(build, send_transaction)

    def send_fusion_transaction_basic(self, send_transaction: bool = True) -> SendResult:
        return self.send_fusion_transaction_advanced(CFG.DEFAULT_MIXIN, send_transaction=send_transaction)

    def send_fusion_transaction_advanced(
        self,
        mixin: int = CFG.DEFAULT_MIXIN,
        sub_wallets_to_take_from: Optional[Sequence[str]] = None,
        destination: str = "",
        extra_data: Union[bytes, str, None] = None,
        optimize_target: int = 0,
        send_transaction: bool = True,
    ) -> SendResult:
        def build() -> PreparedTransaction:
            return self._transfer_service().prepare_fusion(
                self._wallet_height(),
                mixin=mixin,
                sub_wallets_to_take_from=sub_wallets_to_take_from,
                destination=destination,
                extra_data=extra_data,
                optimize_target=optimize_target,
            )
        return self._run_send(build, send_transaction)

    def send_prepared_transaction(self, transaction_hash: str) -> Tuple[Optional[WalletError], str]:
        self._require_init()
        service = self._transfer_service()
        with self._transaction_lock:
            prepared = self._prepared_transactions.get(transaction_hash)
            if prepared is None:
                return WalletError(ErrorCode.PREPARED_TRANSACTION_NOT_FOUND), ""
            try:
                service.check_still_valid(prepared, self._wallet_height())
                service.relay(prepared)
            except WalletError as e:
                if e.code == ErrorCode.PREPARED_TRANSACTION_EXPIRED:
                    self._prepared_transactions.pop(transaction_hash, None)
                    log.info("[send_prepared_transaction] dropped expired transaction", extra={"tx": transaction_hash})
                return e, ""
            self._prepared_transactions.pop(transaction_hash, None)
        return None, transaction_hash

    def remove_prepared_transaction(self, transaction_hash: str) -> bool:
        with self._transaction_lock:
            removed = self._prepared_transactions.pop(transaction_hash, None) is not None
        if removed:
            log.debug("[remove_prepared_transaction] removed", extra={"tx": transaction_hash})
        else:
            log.debug("[remove_prepared_transaction] not in cache", extra={"tx": transaction_hash})
        return removed

    def get_prepared_transactions(self):
        with self._transaction_lock:
            return list(self._prepared_transactions.values())
