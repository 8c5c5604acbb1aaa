"""
Kryptokrona address utilities.

Addresses use CryptoNote base58: the payload is split into 8-byte blocks,
each encoded to 11 characters (a shorter final block maps to a shorter
final chunk), so no big-integer conversion of the whole payload is needed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from krkcore.constants import (
    ADDRESS_PREFIX,
    INTEGRATED_ADDRESS_LENGTH,
    KEY_SIZE,
    PAYMENT_ID_LENGTH,
    STANDARD_ADDRESS_LENGTH,
)
from krkcore.crypto import encode_varint, keccak256

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

FULL_BLOCK_SIZE = 8
FULL_ENCODED_BLOCK_SIZE = 11
# Encoded length for each possible block length 0..8
ENCODED_BLOCK_SIZES = [0, 2, 3, 5, 6, 7, 9, 10, 11]

CHECKSUM_SIZE = 4

PAYMENT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class AddressError(ValueError):
    pass


def _encode_block(block: bytes) -> str:
    num = int.from_bytes(block, "big")
    size = ENCODED_BLOCK_SIZES[len(block)]
    chars = []
    for _ in range(size):
        num, rem = divmod(num, 58)
        chars.append(BASE58_ALPHABET[rem])
    return "".join(reversed(chars))


def _decode_block(chunk: str) -> bytes:
    if len(chunk) not in ENCODED_BLOCK_SIZES:
        raise AddressError("Invalid base58 block length")
    size = ENCODED_BLOCK_SIZES.index(len(chunk))

    num = 0
    for char in chunk:
        digit = BASE58_ALPHABET.find(char)
        if digit < 0:
            raise AddressError(f"Invalid base58 character: {char!r}")
        num = num * 58 + digit

    if num >= 1 << (8 * size):
        raise AddressError("Base58 block overflow")
    return num.to_bytes(size, "big")


def base58_encode(data: bytes) -> str:
    """CryptoNote block-wise base58 encoding"""
    return "".join(
        _encode_block(data[i : i + FULL_BLOCK_SIZE]) for i in range(0, len(data), FULL_BLOCK_SIZE)
    )


def base58_decode(encoded: str) -> bytes:
    """Inverse of base58_encode"""
    return b"".join(
        _decode_block(encoded[i : i + FULL_ENCODED_BLOCK_SIZE])
        for i in range(0, len(encoded), FULL_ENCODED_BLOCK_SIZE)
    )


def decode_varint(data: bytes) -> tuple[int, int]:
    """Returns (value, bytes consumed)"""
    value = 0
    for i, byte in enumerate(data):
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            return value, i + 1
    raise AddressError("Truncated varint")


@dataclass(frozen=True)
class Address:
    public_spend_key: str
    public_view_key: str
    payment_id: str = ""

    @property
    def is_integrated(self) -> bool:
        return bool(self.payment_id)


def validate_payment_id(payment_id: str, allow_empty: bool = True) -> str:
    """
    Payment IDs are 64 hex characters.

    Raises:
        AddressError: If the payment ID is malformed
    """
    if payment_id == "" and allow_empty:
        return payment_id
    if len(payment_id) != PAYMENT_ID_LENGTH:
        raise AddressError(f"Payment ID must be {PAYMENT_ID_LENGTH} characters")
    if not PAYMENT_ID_PATTERN.match(payment_id):
        raise AddressError("Payment ID must be hexadecimal")
    return payment_id.lower()


def encode_address(
    public_spend_key: bytes,
    public_view_key: bytes,
    payment_id: str = "",
    prefix: int = ADDRESS_PREFIX,
) -> str:
    """Build a standard address, or an integrated one when a payment ID is given."""
    if len(public_spend_key) != KEY_SIZE or len(public_view_key) != KEY_SIZE:
        raise AddressError(f"Public keys must be {KEY_SIZE} bytes")

    payload = encode_varint(prefix)
    if payment_id:
        # The payment ID is embedded as its ASCII hex text
        payload += validate_payment_id(payment_id, allow_empty=False).encode("ascii")
    payload += bytes(public_spend_key) + bytes(public_view_key)
    return base58_encode(payload + keccak256(payload)[:CHECKSUM_SIZE])


def decode_address(address: str, prefix: int = ADDRESS_PREFIX) -> Address:
    """
    Parse and verify an address.

    Raises:
        AddressError: On wrong length, non-base58 characters, bad checksum or
            a prefix from another network
    """
    if len(address) not in (STANDARD_ADDRESS_LENGTH, INTEGRATED_ADDRESS_LENGTH):
        raise AddressError("Address has the wrong length")

    data = base58_decode(address)
    payload, checksum = data[:-CHECKSUM_SIZE], data[-CHECKSUM_SIZE:]
    if keccak256(payload)[:CHECKSUM_SIZE] != checksum:
        raise AddressError("Address checksum mismatch")

    found_prefix, offset = decode_varint(payload)
    if found_prefix != prefix:
        raise AddressError(f"Address prefix {found_prefix} does not match {prefix}")

    body = payload[offset:]
    payment_id = ""
    if len(body) == 2 * KEY_SIZE + PAYMENT_ID_LENGTH:
        try:
            payment_id = validate_payment_id(
                body[:PAYMENT_ID_LENGTH].decode("ascii"), allow_empty=False
            )
        except UnicodeDecodeError as e:
            raise AddressError("Payment ID is not ASCII") from e
        body = body[PAYMENT_ID_LENGTH:]
    elif len(body) != 2 * KEY_SIZE:
        raise AddressError("Address body has the wrong length")

    return Address(
        public_spend_key=body[:KEY_SIZE].hex(),
        public_view_key=body[KEY_SIZE:].hex(),
        payment_id=payment_id,
    )


def validate_address(address: str, integrated_allowed: bool = True) -> Address:
    """Decode the address, rejecting integrated addresses unless allowed."""
    parsed = decode_address(address)
    if parsed.is_integrated and not integrated_allowed:
        raise AddressError("Integrated addresses are not allowed here")
    return parsed
