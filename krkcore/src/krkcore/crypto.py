"""
CryptoNote cryptographic primitives for Kryptokrona.

Point and scalar arithmetic on ed25519 is delegated to libsodium through
PyNaCl. The only piece libsodium does not provide is CryptoNote's
hash-to-point map (``ge_fromfe_frombytes_vartime``), which is computed here
with plain field arithmetic and then handed back to libsodium.

Keys, derivations and key images are 32-byte little-endian encodings.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import nacl.bindings
from Crypto.Hash import keccak
from nacl.exceptions import CryptoError as NaclCryptoError

from krkcore.constants import KEY_SIZE

# Ed25519 group order and field prime
CURVE_ORDER = 2**252 + 27742317777372353535851937790883648493
FIELD_PRIME = 2**255 - 19

# Montgomery curve coefficient of curve25519
_A = 486662
_SQRTM1 = pow(2, (FIELD_PRIME - 1) // 4, FIELD_PRIME)


class CryptoError(Exception):
    pass


def _fe_sqrt(a: int) -> int:
    p = FIELD_PRIME
    root = pow(a, (p + 3) // 8, p)
    if root * root % p == a % p:
        return root
    root = root * _SQRTM1 % p
    if root * root % p == a % p:
        return root
    raise CryptoError("Field element has no square root")


_FE_MA = -_A % FIELD_PRIME
_FE_MA2 = -_A * _A % FIELD_PRIME
_FE_FFFB1 = _fe_sqrt(-2 * _A * (_A + 2) % FIELD_PRIME)
_FE_FFFB2 = _fe_sqrt(2 * _A * (_A + 2) % FIELD_PRIME)
_FE_FFFB3 = _fe_sqrt(-_SQRTM1 * _A * (_A + 2) % FIELD_PRIME)
_FE_FFFB4 = _fe_sqrt(_SQRTM1 * _A * (_A + 2) % FIELD_PRIME)


@contextmanager
def _sodium(operation: str) -> Iterator[None]:
    try:
        yield
    except NaclCryptoError as e:
        raise CryptoError(f"{operation} failed: {e}") from e


def _check_key(name: str, data: bytes) -> None:
    if not isinstance(data, (bytes, bytearray)) or len(data) != KEY_SIZE:
        raise CryptoError(f"{name} must be {KEY_SIZE} bytes")


def _check_scalar(name: str, data: bytes) -> None:
    _check_key(name, data)
    if int.from_bytes(data, "little") >= CURVE_ORDER:
        raise CryptoError(f"{name} is not a reduced scalar")


def keccak256(data: bytes) -> bytes:
    """CryptoNote ``cn_fast_hash`` (original Keccak-256, not SHA3)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def hash_to_scalar(data: bytes) -> bytes:
    """Keccak-256 reduced modulo the group order (``sc_reduce32``)."""
    return nacl.bindings.crypto_core_ed25519_scalar_reduce(keccak256(data) + bytes(KEY_SIZE))


def derivation_to_scalar(derivation: bytes, output_index: int) -> bytes:
    _check_key("derivation", derivation)
    return hash_to_scalar(bytes(derivation) + encode_varint(output_index))


def _mul8(point: bytes) -> bytes:
    with _sodium("Point multiplication by cofactor"):
        for _ in range(3):
            point = nacl.bindings.crypto_core_ed25519_add(point, point)
    return point


def is_valid_point(point: bytes) -> bool:
    if len(point) != KEY_SIZE:
        return False
    return nacl.bindings.crypto_core_ed25519_is_valid_point(point)


def secret_key_to_public_key(secret_key: bytes) -> bytes:
    _check_scalar("secret key", secret_key)
    with _sodium("Public key computation"):
        return nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(bytes(secret_key))


def generate_keys() -> tuple[bytes, bytes]:
    """Return a random (public_key, secret_key) pair."""
    secret_key = nacl.bindings.crypto_core_ed25519_scalar_random()
    return secret_key_to_public_key(secret_key), secret_key


def generate_view_from_spend(private_spend_key: bytes) -> bytes:
    """Deterministic wallets derive the private view key from the private spend key."""
    _check_scalar("private spend key", private_spend_key)
    return hash_to_scalar(bytes(private_spend_key))


def generate_key_derivation(public_key: bytes, secret_key: bytes) -> bytes:
    """
    Compute the shared secret 8·a·R.

    The cofactor is cleared on the point first so torsion components added to
    a transaction public key cannot hide an output from the wallet.
    """
    _check_key("public key", public_key)
    _check_scalar("secret key", secret_key)
    cleared = _mul8(bytes(public_key))
    with _sodium("Key derivation"):
        return nacl.bindings.crypto_scalarmult_ed25519_noclamp(bytes(secret_key), cleared)


def derive_public_key(derivation: bytes, output_index: int, base: bytes) -> bytes:
    """One-time output key: Hs(derivation || index)·G + base."""
    _check_key("base public key", base)
    scalar = derivation_to_scalar(derivation, output_index)
    with _sodium("Public key derivation"):
        point = nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(scalar)
        return nacl.bindings.crypto_core_ed25519_add(bytes(base), point)


def underive_public_key(derivation: bytes, output_index: int, derived_key: bytes) -> bytes:
    """Inverse of derive_public_key: recovers the spend key an output was sent to."""
    _check_key("derived public key", derived_key)
    scalar = derivation_to_scalar(derivation, output_index)
    with _sodium("Public key underivation"):
        point = nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(scalar)
        return nacl.bindings.crypto_core_ed25519_sub(bytes(derived_key), point)


def derive_secret_key(derivation: bytes, output_index: int, base: bytes) -> bytes:
    """One-time output secret: Hs(derivation || index) + base."""
    _check_scalar("base secret key", base)
    scalar = derivation_to_scalar(derivation, output_index)
    return nacl.bindings.crypto_core_ed25519_scalar_add(bytes(base), scalar)


def _fe_divpowm1(u: int, v: int) -> int:
    # (u / v)^((p + 3) / 8) as u·v^3·(u·v^7)^((p - 5) / 8)
    p = FIELD_PRIME
    v3 = v * v * v % p
    uv7 = u * v3 * v3 * v % p
    return u * v3 * pow(uv7, (p - 5) // 8, p) % p


def _ge_fromfe_frombytes(data: bytes) -> bytes:
    p = FIELD_PRIME
    # All 256 bits take part, the top bit is reduced rather than masked
    u = int.from_bytes(data, "little") % p
    v = 2 * u * u % p
    w = (v + 1) % p
    x = (w * w + _FE_MA2 * v) % p
    rx = _fe_divpowm1(w, x)
    x = rx * rx * x % p
    z = _FE_MA

    if (w - x) % p == 0:
        negative = False
        rx = rx * _FE_FFFB2 % p
    elif (w + x) % p == 0:
        negative = False
        rx = rx * _FE_FFFB1 % p
    else:
        negative = True

    if not negative:
        rx = rx * u % p
        z = z * v % p
        sign = 0
    else:
        x = x * _SQRTM1 % p
        rx = rx * (_FE_FFFB3 if (w - x) % p else _FE_FFFB4) % p
        sign = 1

    if (rx & 1) != sign:
        rx = -rx % p

    # Projective (X:Y:Z) = (rx·Z : z - w : z + w)
    denominator = (z + w) % p
    if denominator == 0:
        raise CryptoError("Hash maps to the point at infinity")
    y = (z - w) * pow(denominator, p - 2, p) % p
    return (y | ((rx & 1) << 255)).to_bytes(KEY_SIZE, "little")


def hash_to_ec(public_key: bytes) -> bytes:
    """CryptoNote ``hash_to_ec``: map keccak(key) onto the curve and clear the cofactor."""
    _check_key("public key", public_key)
    return _mul8(_ge_fromfe_frombytes(keccak256(bytes(public_key))))


def generate_key_image(public_key: bytes, secret_key: bytes) -> bytes:
    """Key image x·Hp(P) for the one-time key pair (P, x)."""
    _check_scalar("secret key", secret_key)
    point = hash_to_ec(public_key)
    with _sodium("Key image generation"):
        return nacl.bindings.crypto_scalarmult_ed25519_noclamp(bytes(secret_key), point)


class CryptoOps:
    """
    The three operations the output scanner consumes.

    Every method raises CryptoError on malformed key material so callers can
    skip the affected output.
    """

    def derive_key(self, public_key: bytes, secret_key: bytes) -> bytes:
        return generate_key_derivation(public_key, secret_key)

    def underive_public_key(self, derivation: bytes, output_index: int, base: bytes) -> bytes:
        return underive_public_key(derivation, output_index, base)

    def generate_key_image(
        self, derivation: bytes, output_index: int, secret_spend_key: bytes
    ) -> bytes:
        ephemeral_secret = derive_secret_key(derivation, output_index, secret_spend_key)
        ephemeral_public = secret_key_to_public_key(ephemeral_secret)
        return generate_key_image(ephemeral_public, ephemeral_secret)
