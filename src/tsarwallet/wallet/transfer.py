# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple, Union

# ---------------- Local Project ----------------
from ..core.errors import ErrorCode, WalletError
from ..core.keys import address_to_keys, generate_keys, sign
from ..core.types import FeeType, PreparedTransaction, Transaction, TransactionInput
from ..core.validation import (
    validate_addresses, validate_destinations, validate_mixin, validate_our_addresses, validate_payment_id,
)
from ..utils.helpers import format_amount, hash_obj_hex
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.tsar_logging import get_ctx_logger
log = get_ctx_logger("tsarwallet.wallet(transfer)")


def _extra_hex(extra_data: Union[bytes, str, None]) -> str:
    if not extra_data:
        return ""
    if isinstance(extra_data, (bytes, bytearray)):
        return bytes(extra_data).hex()
    return str(extra_data)


class TransferService:
    """Builds, signs and relays transactions spending the registry's inputs."""

    def __init__(self, sub_wallets, daemon):
        self.sub_wallets = sub_wallets
        self.daemon = daemon

    # ---------------- fee estimation ----------------

    @staticmethod
    def estimate_size(n_inputs: int, n_outputs: int, payment_id: str = "", extra_hex: str = "") -> int:
        size = int(CFG.TX_BASE_BYTES) + int(n_inputs) * int(CFG.TX_INPUT_BYTES) + int(n_outputs) * int(CFG.TX_OUTPUT_BYTES)
        if payment_id:
            size += int(CFG.TX_EXTRA_BYTES_PER_ID)
        return size + len(extra_hex) // 2

    @staticmethod
    def estimate_fee(fee: FeeType, n_inputs: int, n_outputs: int, payment_id: str = "", extra_hex: str = "") -> int:
        if fee.kind == "fixed":
            return int(fee.amount)
        rate = fee.amount if fee.kind == "per_byte" else CFG.DEFAULT_FEE_PER_BYTE
        size = TransferService.estimate_size(n_inputs, n_outputs, payment_id, extra_hex)
        return max(int(CFG.MINIMUM_FEE), int(rate) * size)

    # ---------------- shared checks ----------------

    def _source_keys(self, sub_wallets_to_take_from: Optional[Sequence[str]]) -> Tuple[List[str], bool]:
        if not sub_wallets_to_take_from:
            return [], True
        validate_our_addresses(sub_wallets_to_take_from, self.sub_wallets)
        return [address_to_keys(a)[0] for a in sub_wallets_to_take_from], False

    def _default_own_address(self, address: str, sub_wallets_to_take_from: Optional[Sequence[str]]) -> str:
        if address:
            validate_our_addresses([address], self.sub_wallets)
            return address
        if sub_wallets_to_take_from and len(sub_wallets_to_take_from) == 1:
            return sub_wallets_to_take_from[0]
        return self.sub_wallets.get_primary_address()

    def _require_spend_wallet(self) -> None:
        if self.sub_wallets.is_view_wallet:
            raise WalletError(ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION)

    def _require_daemon(self) -> None:
        if not self.daemon.is_online():
            raise WalletError(ErrorCode.DAEMON_OFFLINE)

    # ---------------- building ----------------

    def prepare_transaction(
        self,
        destinations: Sequence[Tuple[str, int]],
        current_height: int,
        mixin: int = CFG.DEFAULT_MIXIN,
        fee: Optional[FeeType] = None,
        payment_id: str = "",
        sub_wallets_to_take_from: Optional[Sequence[str]] = None,
        change_address: str = "",
        unlock_time: int = 0,
        extra_data: Union[bytes, str, None] = None,
        send_all: bool = False,
        deadline: int = 0,
    ) -> PreparedTransaction:
        self._require_spend_wallet()
        destinations = [(str(a).strip(), int(v)) for a, v in destinations]
        if send_all:
            if len(destinations) != 1:
                raise WalletError(ErrorCode.NO_DESTINATIONS_GIVEN, "Send all takes exactly one destination.")
            validate_addresses([destinations[0][0]])
        else:
            validate_destinations(destinations)
        validate_mixin(mixin)
        validate_payment_id(payment_id)
        fee = fee or FeeType.minimum()
        if fee.kind == "fixed" and fee.amount < CFG.MINIMUM_FEE:
            raise WalletError(ErrorCode.FEE_TOO_SMALL)

        source_keys, take_all = self._source_keys(sub_wallets_to_take_from)
        change_address = self._default_own_address(change_address, sub_wallets_to_take_from)
        self._require_daemon()

        node_fee_amount, node_fee_address = self.daemon.node_fee()
        if node_fee_amount:
            validate_addresses([node_fee_address])
        extra_hex = _extra_hex(extra_data)
        available = sorted(
            self.sub_wallets.get_spendable_inputs(source_keys, take_all, current_height),
            key=lambda i: i.amount, reverse=True,
        )

        if send_all:
            selected = available
            found = sum(i.amount for i in selected)
            n_out = 1 + (1 if node_fee_amount else 0)
            tx_fee = self.estimate_fee(fee, len(selected), n_out, payment_id, extra_hex)
            amount = found - tx_fee - node_fee_amount
            if not selected or amount <= 0:
                raise WalletError(ErrorCode.NOT_ENOUGH_BALANCE)
            destinations = [(destinations[0][0], amount)]
        else:
            selected, found, tx_fee = self._select_inputs(
                available, sum(v for _, v in destinations) + node_fee_amount,
                fee, len(destinations) + (1 if node_fee_amount else 0) + 1, payment_id, extra_hex,
            )

        if node_fee_amount:
            destinations.append((node_fee_address, node_fee_amount))

        change = found - sum(v for _, v in destinations) - tx_fee
        outputs = list(destinations)
        if change > 0:
            outputs.append((change_address, change))

        prepared = self._assemble(selected, outputs, tx_fee, mixin, payment_id, unlock_time, extra_hex)
        prepared.destinations = destinations
        prepared.change_address = change_address
        prepared.change_amount = max(change, 0)
        prepared.deadline = int(deadline or 0)
        log.debug("[prepare_transaction] %d input(s), %d output(s), fee %d", len(selected), len(outputs), tx_fee,
                  extra={"tx": prepared.transaction_hash})
        return prepared

    def _select_inputs(self, available: List[TransactionInput], needed: int, fee: FeeType,
                       n_outputs: int, payment_id: str, extra_hex: str) -> Tuple[List[TransactionInput], int, int]:
        selected: List[TransactionInput] = []
        found = 0
        for inp in available:
            selected.append(inp)
            found += inp.amount
            tx_fee = self.estimate_fee(fee, len(selected), n_outputs, payment_id, extra_hex)
            if found >= needed + tx_fee:
                return selected, found, tx_fee
        raise WalletError(ErrorCode.NOT_ENOUGH_BALANCE)

    def prepare_fusion(
        self,
        current_height: int,
        mixin: int = CFG.DEFAULT_MIXIN,
        sub_wallets_to_take_from: Optional[Sequence[str]] = None,
        destination: str = "",
        extra_data: Union[bytes, str, None] = None,
        optimize_target: int = 0,
    ) -> PreparedTransaction:
        self._require_spend_wallet()
        validate_mixin(mixin)
        source_keys, take_all = self._source_keys(sub_wallets_to_take_from)
        destination = self._default_own_address(destination, sub_wallets_to_take_from)
        self._require_daemon()

        target = int(optimize_target or CFG.FUSION_DEFAULT_OPTIMIZE_TARGET)
        small = sorted(
            (i for i in self.sub_wallets.get_spendable_inputs(source_keys, take_all, current_height) if i.amount < target),
            key=lambda i: i.amount,
        )[:CFG.FUSION_TX_MAX_INPUT_COUNT]
        if len(small) < CFG.FUSION_TX_MIN_INPUT_COUNT:
            raise WalletError(ErrorCode.FULLY_OPTIMIZED)

        total = sum(i.amount for i in small)
        prepared = self._assemble(small, [(destination, total)], 0, mixin, "", 0, _extra_hex(extra_data))
        prepared.destinations = [(destination, total)]
        prepared.change_address = destination
        prepared.is_fusion = True
        log.debug("[prepare_fusion] merging %d input(s) into %d", len(small), total,
                  extra={"tx": prepared.transaction_hash})
        return prepared

    def _assemble(self, inputs: List[TransactionInput], outputs: List[Tuple[str, int]], fee: int, mixin: int,
                  payment_id: str, unlock_time: int, extra_hex: str) -> PreparedTransaction:
        tx_public_key, tx_private_key = generate_keys()
        prefix = {
            "version": 1,
            "inputs": [{"key_image": i.key_image, "amount": i.amount} for i in inputs],
            "outputs": [
                {"key": address_to_keys(addr)[0], "amount": int(amount), "index": n}
                for n, (addr, amount) in enumerate(outputs)
            ],
            "fee": int(fee),
            "mixin": int(mixin),
            "unlock_time": int(unlock_time),
            "payment_id": payment_id or "",
            "extra": extra_hex,
            "tx_public_key": tx_public_key,
        }
        tx_hash = hash_obj_hex(prefix)
        signatures = [
            sign(self.sub_wallets.get_private_spend_key(i.public_spend_key), bytes.fromhex(tx_hash))
            for i in inputs
        ]
        tx = dict(prefix, hash=tx_hash, signatures=signatures)
        return PreparedTransaction(
            transaction_hash=tx_hash,
            tx=tx,
            inputs=list(inputs),
            destinations=[],
            fee=int(fee),
            tx_private_key=tx_private_key,
        )

    # ---------------- submission ----------------

    def check_still_valid(self, prepared: PreparedTransaction, current_height: int) -> None:
        for ki in prepared.input_key_images():
            if not self.sub_wallets.is_input_spendable(ki, current_height):
                raise WalletError(ErrorCode.PREPARED_TRANSACTION_EXPIRED, "An input of the prepared transaction has been spent.")
        if prepared.deadline and self.daemon.network_block_count() > prepared.deadline:
            raise WalletError(ErrorCode.PREPARED_TRANSACTION_EXPIRED, "The prepared transaction passed its deadline.")

    def relay(self, prepared: PreparedTransaction) -> None:
        self._require_daemon()
        ok, err = self.daemon.send_transaction(prepared.tx)
        if not ok:
            log.warning("[relay] daemon rejected transaction: %s", err, extra={"tx": prepared.transaction_hash})
            raise WalletError(ErrorCode.DAEMON_ERROR, f"The daemon rejected the transaction: {err}")
        self._record_sent(prepared)
        log.info("[relay] transaction relayed, fee %s TSAR", format_amount(prepared.fee), extra={"tx": prepared.transaction_hash})

    def _record_sent(self, prepared: PreparedTransaction) -> None:
        tx_hash = prepared.transaction_hash
        transfers: Dict[str, int] = {}
        for inp in prepared.inputs:
            transfers[inp.public_spend_key] = transfers.get(inp.public_spend_key, 0) - inp.amount
        for out in prepared.tx["outputs"]:
            key = out["key"]
            if self.sub_wallets.has_public_spend_key(key):
                transfers[key] = transfers.get(key, 0) + int(out["amount"])
                self.sub_wallets.add_unconfirmed_incoming(key, tx_hash, int(out["amount"]))

        self.sub_wallets.mark_inputs_as_locked(prepared.input_key_images())
        self.sub_wallets.add_unconfirmed_transaction(Transaction(
            hash=tx_hash,
            transfers=transfers,
            fee=prepared.fee,
            block_height=0,
            timestamp=0,
            payment_id=prepared.tx.get("payment_id", ""),
            unlock_time=int(prepared.tx.get("unlock_time", 0)),
        ))
        self.sub_wallets.store_tx_private_key(tx_hash, prepared.tx_private_key)
