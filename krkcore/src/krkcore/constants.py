"""
Kryptokrona network and CryptoNote protocol constants.
"""

from __future__ import annotations

# Coinbase outputs cannot be spent until this many blocks have been mined on top
MINED_MONEY_UNLOCK_WINDOW = 40

# unlock_time values below this are block heights, values at or above are timestamps
MAX_BLOCK_NUMBER = 500_000_000

# Atomic units per XKR (2 decimal places)
COIN = 100
DECIMAL_PLACES = 2

# Default number of blocks requested per getwalletsyncdata call
BLOCKS_PER_DAEMON_REQUEST = 100

# Poll cadences (seconds)
SYNC_THREAD_INTERVAL = 1.0
DAEMON_UPDATE_INTERVAL = 10.0
SCAN_THREAD_INTERVAL = 1.0

DEFAULT_DAEMON_PORT = 11898

# Length of keys, hashes, derivations and key images in bytes
KEY_SIZE = 32

# Base58 address prefix, encodes to addresses starting with "SEKR"
ADDRESS_PREFIX = 2239254

# Standard: prefix + spend key + view key + checksum
STANDARD_ADDRESS_LENGTH = 99
# Integrated: standard plus a 64 character payment ID
INTEGRATED_ADDRESS_LENGTH = 187

PAYMENT_ID_LENGTH = 64
