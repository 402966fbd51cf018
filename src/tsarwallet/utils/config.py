# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of TsarWallet — see LICENSE and TRADEMARKS.md
# Refs: RFC8018-PBKDF2; NIST-800-38A-CBC; BIP173; BIP39

'''
=============================================================================
 -------- !!! WALLET-FILE-CRITICAL REMINDER - READ BEFORE EDITING !!! --------
=============================================================================

The values below **MUST STAY IDENTICAL** between releases or existing
wallet files can no longer be opened:

  1) CONTAINER FORMAT
   - IS_A_WALLET_IDENTIFIER, IS_CORRECT_PASSWORD_IDENTIFIER
   - WALLET_FILE_FORMAT_VERSION
   - PBKDF2_ITERATIONS, PBKDF2_KEY_LENGTH, SALT_LENGTH

  2) KEYS & ADDRESSES
   - ADDRESS_PREFIX, VIEW_KEY_DERIVATION_TAG, SUBWALLET_DERIVATION_TAG

NOT CRITICAL (safe to tune per install):
   daemon host/port, timeouts, sync batch sizes, logging/path,
   fee defaults.

=============================================================================
'''

import os
import appdirs


# =============================================================================
# 1. MODE & APPLICATION
# =============================================================================
# ---- RUNTIME PROFILE ----
MODE   = "dev"  # default runtime profile, switch to "prod" for user installs
IS_DEV = (MODE.lower() == "dev")  # cached boolean to simplify dev/prod toggles

# ---- APP METADATA ----
APP_NAME        = "TsarWallet"  # display name used for user data directories
APP_AUTHOR      = "TsarStudio"  # vendor string passed into platform dir helpers
WALLET_DATA_DIR = appdirs.user_data_dir(APP_NAME, APP_AUTHOR)  # OS-specific wallet folder resolved via appdirs
DEFAULT_WALLET_FILE = os.path.join(WALLET_DATA_DIR, "default.wallet")  # used when no filename is supplied


# =============================================================================
# 2. CONTAINER FORMAT
# =============================================================================
# ---- MAGIC IDENTIFIERS ----
IS_A_WALLET_IDENTIFIER         = b"TSARWALLET\x00FILE\x00\x01"  # cleartext prefix marking a wallet file
IS_CORRECT_PASSWORD_IDENTIFIER = b"TSARWALLET\x00PASS\x00\x01"  # encrypted prefix proving the password was right

# ---- VERSIONING ----
WALLET_FILE_FORMAT_VERSION = 1  # bump only with a new container layout, no migration on load

# ---- KEY DERIVATION ----
PBKDF2_ITERATIONS = 500_000  # PBKDF2-HMAC-SHA256 rounds per open/save
PBKDF2_KEY_LENGTH = 16  # AES-128 key size in bytes
SALT_LENGTH       = 16  # salt doubles as the CBC IV, must equal the AES block size

# ---- FILE PERMISSIONS ----
SECURE_FILE_MODE = 0o600  # owner read/write only on POSIX


# =============================================================================
# 3. KEYS & ADDRESSES
# =============================================================================
# ---- ADDRESS FORMAT ----
ADDRESS_PREFIX = "tsw"  # bech32 human readable part of wallet addresses
ADDRESS_KEYS_LENGTH = 66  # public spend key (33) + public view key (33)
PRIVATE_KEY_HEX_LENGTH = 64  # hex chars of a secp256k1 scalar
PUBLIC_KEY_HEX_LENGTH  = 66  # hex chars of a compressed secp256k1 point

# ---- DERIVATION TAGS ----
VIEW_KEY_DERIVATION_TAG  = b"tsarwallet:view"  # domain separator for view-from-spend
SUBWALLET_DERIVATION_TAG = b"tsarwallet:subwallet"  # domain separator for indexed sub-wallets
KEY_IMAGE_TAG            = b"tsarwallet:keyimage"  # domain separator for output key images

# ---- MNEMONIC ----
MNEMONIC_LANGUAGE = "english"  # BIP-39 word list used for seed export/import
PAYMENT_ID_HEX_LENGTH = 64  # payment ids are 32 bytes hex, or empty


# =============================================================================
# 4. CHAIN PARAMETERS
# =============================================================================
# ---- TIMING ----
GENESIS_BLOCK_TIMESTAMP  = 1_735_689_600  # 2025-01-01T00:00:00Z
TARGET_BLOCK_TIME        = 37  # seconds between blocks, used for timestamp -> height
TIMESTAMP_SCAN_SAFETY    = 1_000  # blocks subtracted from a timestamp-derived height
BLOCK_FUTURE_TIME_LIMIT  = 600  # seconds a block timestamp may lead wall clock

# ---- MATURITY ----
MINED_MONEY_UNLOCK_WINDOW = 10  # confirmations before coinbase outputs unlock
MAX_BLOCK_NUMBER          = 500_000_000  # unlock_time at or above this is a unix timestamp, below is a height
LOCKED_TX_ALLOWED_DELTA_SECONDS = 600  # timestamp unlocks may release this early


# =============================================================================
# 5. TRANSACTIONS & FEES
# =============================================================================
# ---- UNIT CONSTANTS ----
TSAR          = 100_000_000  # atomic units per coin (8 decimals)
MAX_DECIMALS  = 8  # UI precision for amount rendering

# ---- MIXIN ----
MINIMUM_MIXIN = 0  # smallest ring size accepted by the pipeline
MAXIMUM_MIXIN = 7  # largest ring size accepted by the pipeline
DEFAULT_MIXIN = 3  # used by the basic send paths

# ---- FEE POLICY ----
MINIMUM_FEE            = 1_000  # absolute fee floor in atomic units
DEFAULT_FEE_PER_BYTE   = 5  # atomic units per estimated byte
TX_BASE_BYTES          = 120  # serialized prefix overhead used for projections
TX_INPUT_BYTES         = 110  # assumed size of one signed input
TX_OUTPUT_BYTES        = 45  # assumed size of one output
TX_EXTRA_BYTES_PER_ID  = 34  # payment id tag + body

# ---- FUSION ----
FUSION_TX_MIN_INPUT_COUNT = 12  # fewer small inputs than this means fully optimized
FUSION_TX_MAX_INPUT_COUNT = 90  # inputs consumed per fusion transaction at most
FUSION_DEFAULT_OPTIMIZE_TARGET = 100 * TSAR  # inputs below this size get consolidated


# =============================================================================
# 6. DAEMON & SYNC
# =============================================================================
# ---- DAEMON DEFAULTS ----
DEFAULT_DAEMON_HOST = "127.0.0.1"  # local daemon by default
DEFAULT_DAEMON_PORT = 38170  # wallet RPC port of a dev node
DEFAULT_DAEMON_SSL  = False  # plaintext on loopback

# ---- WIRE ----
NETWORK_MAGIC  = b"TSARWALLET"  # frame prefix to avoid cross-protocol chatter
MAX_MSG        = 16 * 1024 * 1024  # upper bound for inbound message payloads
RPC_TIMEOUT    = 4.0  # daemon request timeout in seconds
DAEMON_UPDATE_INTERVAL = 10.0  # seconds between background GET_INFO refreshes
DAEMON_RPC_MIN_INTERVAL = 0.0  # minimum spacing between requests, 0 disables pacing

# ---- SYNCHRONIZER ----
SYNC_BLOCK_BATCH          = 100  # blocks requested per GET_WALLET_SYNC_DATA
SYNC_IDLE_INTERVAL        = 5.0  # seconds to sleep when the wallet is at the tip
SYNC_ERROR_BACKOFF        = 10.0  # seconds to wait after a daemon failure
SYNC_PAUSE_ACK_POLL       = 0.5  # guard re-checks the ack at this interval while waiting
LAST_KNOWN_HASHES_SIZE    = 100  # recent block hashes kept for fork detection
BLOCK_HASH_CHECKPOINT_INTERVAL = 5_000  # one sparse checkpoint hash every N blocks


# =============================================================================
# 7. LOGGING
# =============================================================================
# ---- MODE PROFILES ----
if IS_DEV:
    # ---- DEV PROFILE ----
    LOG_LEVEL                   = "DEBUG"  # verbose logging for development
    LOG_FORMAT                  = "plain"  # plain text logs ease local debugging
    LOG_TO_CONSOLE              = True  # mirror logs to stdout for dev loops
    LOG_RATE_LIMIT_SECONDS      = 0.0  # disable console throttling in dev
    LOG_FILE_RATE_LIMIT_SECONDS = 0.0  # disable file throttling in dev
    LOG_ROTATE_MAX_BYTES        = 5_000_000  # rollover log files after ~5MB in dev
    LOG_BACKUP_COUNT            = 3  # retain a few rotated dev log files
else:
    # ---- PROD PROFILE ----
    LOG_LEVEL                   = "INFO"  # balanced verbosity for end users
    LOG_FORMAT                  = "json"  # JSON logs simplify ingestion
    LOG_TO_CONSOLE              = False  # keep the terminal clean
    LOG_RATE_LIMIT_SECONDS      = 2.0  # throttle console spam in prod
    LOG_FILE_RATE_LIMIT_SECONDS = 1.0  # throttle file spam in prod
    LOG_ROTATE_MAX_BYTES        = 10_000_000  # rollover log files after ~10MB in prod
    LOG_BACKUP_COUNT            = 7  # keep more history on user machines

# ---- LOG FILE ----
LOG_DIR  = os.path.join(WALLET_DATA_DIR, "logs")  # rotated wallet logs live beside the default wallet
_LOG_EXT = ".jsonl" if str(LOG_FORMAT).lower().strip() == "json" else ".log"  # JSON lines get their own extension
LOG_PATH = os.path.join(LOG_DIR, "tsarwallet" + _LOG_EXT)  # active log file, rotated copies get .1, .2, ...
