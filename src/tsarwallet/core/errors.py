# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

from enum import IntEnum
from typing import Optional


class ErrorCode(IntEnum):
    # ---- wallet file ----
    FILENAME_NON_EXISTENT = 1
    INVALID_WALLET_FILENAME = 2
    NOT_A_WALLET_FILE = 3
    WALLET_FILE_CORRUPTED = 4
    WRONG_PASSWORD = 5
    UNSUPPORTED_WALLET_FILE_FORMAT_VERSION = 6
    WALLET_FILE_ALREADY_EXISTS = 7

    # ---- keys & addresses ----
    INVALID_MNEMONIC = 10
    INVALID_PRIVATE_KEY = 11
    INVALID_PUBLIC_KEY = 12
    INVALID_ADDRESS = 13
    ADDRESS_NOT_IN_WALLET = 14
    KEYS_NOT_DETERMINISTIC = 15
    SUBWALLET_ALREADY_EXISTS = 16
    CANNOT_DELETE_PRIMARY_ADDRESS = 17
    ILLEGAL_VIEW_WALLET_OPERATION = 18
    ILLEGAL_NON_VIEW_WALLET_OPERATION = 19

    # ---- transactions ----
    NO_DESTINATIONS_GIVEN = 20
    AMOUNT_IS_ZERO = 21
    NOT_ENOUGH_BALANCE = 22
    INVALID_PAYMENT_ID = 23
    MIXIN_TOO_SMALL = 24
    MIXIN_TOO_BIG = 25
    FEE_TOO_SMALL = 26
    FULLY_OPTIMIZED = 27
    TX_PRIVATE_KEY_NOT_FOUND = 28
    PREPARED_TRANSACTION_NOT_FOUND = 29
    PREPARED_TRANSACTION_EXPIRED = 30

    # ---- daemon ----
    DAEMON_OFFLINE = 40
    DAEMON_ERROR = 41


_DEFAULT_MESSAGES = {
    ErrorCode.FILENAME_NON_EXISTENT: "The wallet file does not exist or cannot be read.",
    ErrorCode.INVALID_WALLET_FILENAME: "The wallet filename cannot be written to.",
    ErrorCode.NOT_A_WALLET_FILE: "The file is not a wallet file.",
    ErrorCode.WALLET_FILE_CORRUPTED: "The wallet file is corrupted.",
    ErrorCode.WRONG_PASSWORD: "The password is incorrect.",
    ErrorCode.UNSUPPORTED_WALLET_FILE_FORMAT_VERSION: "The wallet file format version is not supported.",
    ErrorCode.WALLET_FILE_ALREADY_EXISTS: "A file already exists at that location.",
    ErrorCode.INVALID_MNEMONIC: "The mnemonic seed is invalid.",
    ErrorCode.INVALID_PRIVATE_KEY: "The private key is invalid.",
    ErrorCode.INVALID_PUBLIC_KEY: "The public key is invalid.",
    ErrorCode.INVALID_ADDRESS: "The address is invalid.",
    ErrorCode.ADDRESS_NOT_IN_WALLET: "The address does not belong to this wallet.",
    ErrorCode.KEYS_NOT_DETERMINISTIC: "The view key cannot be derived from the spend key, no seed is available.",
    ErrorCode.SUBWALLET_ALREADY_EXISTS: "The sub wallet already exists in this container.",
    ErrorCode.CANNOT_DELETE_PRIMARY_ADDRESS: "The primary address cannot be deleted.",
    ErrorCode.ILLEGAL_VIEW_WALLET_OPERATION: "This operation is not possible with a view only wallet.",
    ErrorCode.ILLEGAL_NON_VIEW_WALLET_OPERATION: "This operation is only possible with a view only wallet.",
    ErrorCode.NO_DESTINATIONS_GIVEN: "No destinations were given.",
    ErrorCode.AMOUNT_IS_ZERO: "An amount of zero cannot be sent.",
    ErrorCode.NOT_ENOUGH_BALANCE: "Not enough unlocked balance to cover the transaction and fee.",
    ErrorCode.INVALID_PAYMENT_ID: "The payment ID must be 64 hex characters or empty.",
    ErrorCode.MIXIN_TOO_SMALL: "The mixin is below the allowed minimum.",
    ErrorCode.MIXIN_TOO_BIG: "The mixin is above the allowed maximum.",
    ErrorCode.FEE_TOO_SMALL: "The fee is below the network minimum.",
    ErrorCode.FULLY_OPTIMIZED: "The wallet is already fully optimized.",
    ErrorCode.TX_PRIVATE_KEY_NOT_FOUND: "No transaction private key is stored for that hash.",
    ErrorCode.PREPARED_TRANSACTION_NOT_FOUND: "No prepared transaction exists with that hash.",
    ErrorCode.PREPARED_TRANSACTION_EXPIRED: "The prepared transaction is no longer valid.",
    ErrorCode.DAEMON_OFFLINE: "The daemon is offline.",
    ErrorCode.DAEMON_ERROR: "The daemon rejected the request.",
}


class WalletError(Exception):
    """A named failure kind plus a human readable message."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = ErrorCode(code)
        self.message = message or _DEFAULT_MESSAGES.get(self.code, self.code.name)
        super().__init__(self.message)

    def __eq__(self, other):
        if isinstance(other, WalletError):
            return self.code == other.code
        if isinstance(other, ErrorCode):
            return self.code == other
        return NotImplemented

    def __hash__(self):
        return hash(self.code)

    def __repr__(self):
        return f"WalletError({self.code.name}, {self.message!r})"
