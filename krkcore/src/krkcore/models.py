"""
Core data models using Pydantic for validation and serialization.

Daemon responses are validated here before the wallet turns them into its
own immutable block types.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

from krkcore.address import encode_address
from krkcore.crypto import (
    CryptoError,
    generate_keys,
    generate_view_from_spend,
    secret_key_to_public_key,
)

HEX_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def validate_hex_key(value: str) -> str:
    if not HEX_KEY_PATTERN.match(value):
        raise ValueError("Expected 64 hex characters")
    return value.lower()


class OutputModel(BaseModel):
    """
    Keys are kept as the daemon sent them. A malformed key only affects its
    own output, which the scanner skips, not the whole sync batch.
    """

    key: str
    amount: int = Field(..., ge=0)

    @field_validator("key")
    @classmethod
    def normalise_key(cls, v: str) -> str:
        return v.lower()


class TransactionModel(BaseModel):
    hash: str
    tx_public_key: str = Field(..., alias="txPublicKey")
    unlock_time: int = Field(default=0, alias="unlockTime", ge=0)
    outputs: list[OutputModel] = Field(default_factory=list)
    payment_id: str = Field(default="", alias="paymentID")

    model_config = {"populate_by_name": True}

    @field_validator("hash", "tx_public_key")
    @classmethod
    def normalise_hex(cls, v: str) -> str:
        return v.lower()


class SyncBlockModel(BaseModel):
    block_hash: str = Field(..., alias="blockHash")
    block_height: int = Field(..., alias="blockHeight", ge=0)
    block_timestamp: int = Field(default=0, alias="blockTimestamp")
    coinbase_tx: TransactionModel | None = Field(default=None, alias="coinbaseTX")
    transactions: list[TransactionModel] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @field_validator("block_hash")
    @classmethod
    def validate_hash(cls, v: str) -> str:
        return validate_hex_key(v)


class TopBlockModel(BaseModel):
    hash: str
    height: int = Field(..., ge=0)


class SyncDataResponse(BaseModel):
    items: list[SyncBlockModel] = Field(default_factory=list)
    synced: bool = False
    status: str = "OK"
    top_block: TopBlockModel | None = Field(default=None, alias="topBlock")

    model_config = {"populate_by_name": True}


class NodeInfoResponse(BaseModel):
    height: int = Field(..., ge=0)
    network_height: int = Field(default=0, ge=0)
    synced: bool = False
    version: str = ""
    status: str = "OK"


class BlockDetailsModel(BaseModel):
    hash: str
    index: int | None = None

    @field_validator("hash")
    @classmethod
    def validate_hash(cls, v: str) -> str:
        return validate_hex_key(v)


class BlockDetailsResponse(BaseModel):
    block: BlockDetailsModel
    status: str = "OK"


class WalletKeys(BaseModel):
    """
    Key set needed to scan the chain and compute key images.

    The public spend key must match the private spend key; a mismatch would
    make every key image unspendable, so it is rejected up front.
    """

    private_view_key: str
    public_spend_key: str
    private_spend_key: str

    model_config = {"frozen": True}

    @field_validator("private_view_key", "public_spend_key", "private_spend_key")
    @classmethod
    def validate_hex(cls, v: str) -> str:
        return validate_hex_key(v)

    @model_validator(mode="after")
    def validate_spend_pair(self) -> WalletKeys:
        try:
            derived = secret_key_to_public_key(bytes.fromhex(self.private_spend_key))
        except CryptoError as e:
            raise ValueError(f"Invalid private spend key: {e}") from e
        if derived.hex() != self.public_spend_key:
            raise ValueError("Public spend key does not match private spend key")
        return self

    @classmethod
    def from_private_spend_key(cls, private_spend_key: str) -> WalletKeys:
        """Rebuild a deterministic wallet from its private spend key."""
        spend = bytes.fromhex(validate_hex_key(private_spend_key))
        return cls(
            private_view_key=generate_view_from_spend(spend).hex(),
            public_spend_key=secret_key_to_public_key(spend).hex(),
            private_spend_key=spend.hex(),
        )

    @classmethod
    def generate(cls) -> WalletKeys:
        _, spend = generate_keys()
        return cls.from_private_spend_key(spend.hex())

    @property
    def private_view_key_bytes(self) -> bytes:
        return bytes.fromhex(self.private_view_key)

    @property
    def public_spend_key_bytes(self) -> bytes:
        return bytes.fromhex(self.public_spend_key)

    @property
    def private_spend_key_bytes(self) -> bytes:
        return bytes.fromhex(self.private_spend_key)

    @property
    def public_view_key(self) -> str:
        return secret_key_to_public_key(self.private_view_key_bytes).hex()

    @property
    def address(self) -> str:
        """Standard XKR address for this key set"""
        return encode_address(self.public_spend_key_bytes, bytes.fromhex(self.public_view_key))
