"""
krkcore - Core library for the Kryptokrona wallet components

Provides shared CryptoNote cryptography, protocol constants and data models.
"""

__version__ = "0.1.0"

from krkcore.address import (
    Address,
    AddressError,
    decode_address,
    encode_address,
    validate_address,
    validate_payment_id,
)
from krkcore.constants import (
    COIN,
    MAX_BLOCK_NUMBER,
    MINED_MONEY_UNLOCK_WINDOW,
)
from krkcore.crypto import (
    CryptoError,
    CryptoOps,
    derive_public_key,
    derive_secret_key,
    generate_key_derivation,
    generate_key_image,
    generate_keys,
    hash_to_ec,
    keccak256,
    underive_public_key,
)
from krkcore.models import (
    NodeInfoResponse,
    SyncDataResponse,
    WalletKeys,
)

__all__ = [
    "Address",
    "AddressError",
    "COIN",
    "CryptoError",
    "CryptoOps",
    "MAX_BLOCK_NUMBER",
    "MINED_MONEY_UNLOCK_WINDOW",
    "NodeInfoResponse",
    "SyncDataResponse",
    "WalletKeys",
    "decode_address",
    "encode_address",
    "derive_public_key",
    "derive_secret_key",
    "generate_key_derivation",
    "generate_key_image",
    "generate_keys",
    "hash_to_ec",
    "keccak256",
    "underive_public_key",
    "validate_address",
    "validate_payment_id",
]
