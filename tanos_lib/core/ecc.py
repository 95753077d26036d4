"""
Scalar and point arithmetic on secp256k1.

This module contains the elliptic-curve primitives the swap protocol needs:
- Scalar arithmetic modulo the curve order n
- Point addition, negation and scalar multiplication (including the identity)
- Compressed (33-byte) and x-only (32-byte) serialization
- Y-parity queries and BIP-340 lift_x
- BIP-340 tagged hashing

All functions are pure (no side effects) and use external libraries:
- coincurve for elliptic curve operations
- gmpy2 for fast modular arithmetic
- hashlib for hashing
"""

import hashlib
from typing import Optional, Union

import gmpy2
from coincurve import PublicKey, PrivateKey

from .constants import SECP256K1_ORDER, SECP256K1_FIELD_SIZE
from .errors import InvalidKeyError, InvalidPointError, PointDecodeError


# Curve order as gmpy2 integer for fast modular arithmetic
N = gmpy2.mpz(SECP256K1_ORDER)


# ============================================================================
# Scalars
# ============================================================================

def scalar_add(a: int, b: int) -> int:
    """Return (a + b) mod n."""
    return int(gmpy2.f_mod(gmpy2.mpz(a) + gmpy2.mpz(b), N))


def scalar_sub(a: int, b: int) -> int:
    """Return (a - b) mod n."""
    return int(gmpy2.f_mod(gmpy2.mpz(a) - gmpy2.mpz(b), N))


def scalar_mul(a: int, b: int) -> int:
    """Return (a * b) mod n."""
    return int(gmpy2.f_mod(gmpy2.mpz(a) * gmpy2.mpz(b), N))


def scalar_negate(a: int) -> int:
    """Return (n - a) mod n."""
    return int(gmpy2.f_mod(-gmpy2.mpz(a), N))


def scalar_to_bytes(k: int) -> bytes:
    """Serialize a scalar as 32 big-endian bytes."""
    return int(k).to_bytes(32, 'big')


def int_from_bytes(data: bytes) -> int:
    """Parse big-endian bytes as an unsigned integer."""
    return int.from_bytes(data, 'big')


def validate_private_key(x: int) -> int:
    """
    Check that a private key scalar lies in [1, n).

    Args:
        x: Candidate private key

    Returns:
        The same scalar as a plain int

    Raises:
        InvalidKeyError: If x is zero or not below the curve order
    """
    if not isinstance(x, int) or not 0 < x < SECP256K1_ORDER:
        raise InvalidKeyError("Private key must be an integer in [1, n)")
    return int(x)


# ============================================================================
# Points
# ============================================================================

class Point:
    """
    A secp256k1 point or the point at infinity.

    Wraps a coincurve PublicKey; the identity is represented by an empty
    wrapper since libsecp256k1 cannot hold it as a public key.
    """

    __slots__ = ('_key',)

    def __init__(self, key: Optional[PublicKey] = None):
        self._key = key

    @property
    def is_infinity(self) -> bool:
        return self._key is None

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Point':
        """
        Parse a 33-byte compressed point or a 32-byte x-only point.

        Raises:
            PointDecodeError: If the bytes do not encode a curve point
        """
        if len(data) == 32:
            return lift_x(data)
        if len(data) != 33 or data[0] not in (2, 3):
            raise PointDecodeError(f"Invalid point encoding ({len(data)} bytes)")
        if int_from_bytes(data[1:]) >= SECP256K1_FIELD_SIZE:
            raise PointDecodeError("Point x-coordinate is not below the field size")
        try:
            return cls(PublicKey(bytes(data)))
        except ValueError as e:
            raise PointDecodeError(f"Point is not on the curve: {e}")

    def _uncompressed(self) -> bytes:
        if self._key is None:
            raise InvalidPointError("The point at infinity has no coordinates")
        return self._key.format(compressed=False)

    @property
    def x(self) -> int:
        return int_from_bytes(self._uncompressed()[1:33])

    @property
    def y(self) -> int:
        return int_from_bytes(self._uncompressed()[33:65])

    def has_even_y(self) -> bool:
        if self._key is None:
            raise InvalidPointError("The point at infinity has no Y parity")
        return self._key.format(compressed=True)[0] == 0x02

    def compressed(self) -> bytes:
        """33-byte SEC1 compressed serialization."""
        if self._key is None:
            raise InvalidPointError("Cannot serialize the point at infinity")
        return self._key.format(compressed=True)

    def xonly(self) -> bytes:
        """32-byte x-only serialization (BIP-340)."""
        return self.compressed()[1:]

    def __neg__(self) -> 'Point':
        if self._key is None:
            return self
        # Flip the parity byte: same x, y -> p - y
        data = self._key.format(compressed=True)
        return Point(PublicKey(bytes([data[0] ^ 0x01]) + data[1:]))

    def __add__(self, other: 'Point') -> 'Point':
        if self._key is None:
            return other
        if other._key is None:
            return self
        a = self._key.format(compressed=True)
        b = other._key.format(compressed=True)
        if a[1:] == b[1:]:
            if a[0] != b[0]:
                # P + (-P)
                return INFINITY
            return Point(self._key.multiply(scalar_to_bytes(2)))
        return Point(self._key.combine([other._key]))

    def __sub__(self, other: 'Point') -> 'Point':
        return self + (-other)

    def __mul__(self, k: int) -> 'Point':
        k = int(gmpy2.f_mod(gmpy2.mpz(k), N))
        if self._key is None or k == 0:
            return INFINITY
        return Point(self._key.multiply(scalar_to_bytes(k)))

    __rmul__ = __mul__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        if self._key is None or other._key is None:
            return self._key is None and other._key is None
        return self._key.format(compressed=True) == other._key.format(compressed=True)

    def __hash__(self) -> int:
        return hash(None if self._key is None else self._key.format(compressed=True))

    def __repr__(self) -> str:
        if self._key is None:
            return "Point(INFINITY)"
        return f"Point({self.compressed().hex()})"


INFINITY = Point()


def point_from_scalar(k: int) -> Point:
    """Return k*G (the identity when k is 0 mod n)."""
    k = int(gmpy2.f_mod(gmpy2.mpz(k), N))
    if k == 0:
        return INFINITY
    return Point(PrivateKey(scalar_to_bytes(k)).public_key)


G = point_from_scalar(1)


def point_add(p: Point, q: Point) -> Point:
    """Return P + Q."""
    return p + q


def point_negate(p: Point) -> Point:
    """Return -P (same x, flipped y)."""
    return -p


def point_mul(p: Point, k: int) -> Point:
    """Return k*P."""
    return p * k


def has_even_y(p: Point) -> bool:
    """Return True if P has an even y-coordinate."""
    return p.has_even_y()


def lift_x(x: Union[int, bytes]) -> Point:
    """
    Return the even-Y point with the given x-coordinate (BIP-340 lift_x).

    Args:
        x: x-coordinate as int or 32 bytes

    Returns:
        Point with even y-coordinate

    Raises:
        PointDecodeError: If x is not the x-coordinate of a curve point
    """
    if isinstance(x, (bytes, bytearray)):
        if len(x) != 32:
            raise PointDecodeError(f"x-only key must be 32 bytes, got {len(x)}")
        x = int_from_bytes(x)
    if not 0 <= x < SECP256K1_FIELD_SIZE:
        raise PointDecodeError("x-coordinate is not below the field size")
    try:
        return Point(PublicKey(b'\x02' + x.to_bytes(32, 'big')))
    except ValueError:
        raise PointDecodeError(f"x-coordinate {x:064x} is not on the curve")


def tagged_hash(tag: Union[str, bytes], *chunks: bytes) -> bytes:
    """
    BIP-340 tagged hash: SHA256(SHA256(tag) || SHA256(tag) || chunks...).

    Args:
        tag: Domain separation tag
        *chunks: Data to hash, concatenated in order

    Returns:
        32-byte digest
    """
    if isinstance(tag, str):
        tag = tag.encode()
    tag_hash = hashlib.sha256(tag).digest()
    h = hashlib.sha256(tag_hash + tag_hash)
    for chunk in chunks:
        h.update(chunk)
    return h.digest()
