"""
BIP-341 Taproot key tweaking for the swap output.

This module contains pure functions for:
- Deriving a key-path Taproot output (tweaked key and scriptPubKey)
- Binding the swap output to the Seller's adaptor point (merkle root)
- Computing the effective signing scalar for key-path spends
- Signing key-path spends
- Hex helpers for tweaking public/private keys

Uses coincurve (via core.ecc) for point arithmetic, gmpy2 for scalars and
embit for bech32m address encoding.
"""

import logging
from functools import lru_cache
from typing import Optional, Tuple, Union

from embit import bech32

from .adaptor import AdaptorSignatureEngine
from .constants import (
    SECP256K1_ORDER, TAG_TAPTWEAK, TAG_LOCK, P2TR_SCRIPT_PREFIX, get_network_config,
)
from .ecc import (
    Point, lift_x, point_from_scalar, tagged_hash, scalar_add, scalar_negate,
    int_from_bytes, validate_private_key,
)
from .errors import InvalidKeyError, InvalidPointError
from .models import TaprootOutput

logger = logging.getLogger('tanos.taproot')

KeyLike = Union[Point, bytes]


def _as_point(key: KeyLike) -> Point:
    if isinstance(key, Point):
        if key.is_infinity:
            raise InvalidPointError("Internal key must not be the point at infinity")
        return key
    return Point.from_bytes(bytes(key))


def taptweak(internal_key_x: bytes, merkle_root: Optional[bytes] = None) -> int:
    """
    Compute t = H_TapTweak(P.x || merkle_root) as a scalar.

    Raises:
        InvalidKeyError: If the hash is not below the curve order (BIP-341 failure case)
    """
    if merkle_root is not None and len(merkle_root) != 32:
        raise ValueError(f"Merkle root must be 32 bytes, got {len(merkle_root)}")
    tweak_bytes = tagged_hash(TAG_TAPTWEAK, internal_key_x, merkle_root or b'')
    tweak = int_from_bytes(tweak_bytes)
    if tweak >= SECP256K1_ORDER:
        raise InvalidKeyError("TapTweak hash is not below the curve order")
    return tweak


def derive_output(internal_key: KeyLike, merkle_root: Optional[bytes] = None) -> TaprootOutput:
    """
    Derive the Taproot output for an internal key.

    Q = EvenY(internal_key) + H_TapTweak(P.x || merkle_root)*G, and the
    output script is OP_1 <Q.x>.

    Args:
        internal_key: Point, 33-byte compressed key or 32-byte x-only key
        merkle_root: Optional 32-byte script tree root

    Returns:
        TaprootOutput descriptor (deterministic for identical inputs)

    Raises:
        PointDecodeError: If the key bytes do not decode
        InvalidPointError: If the internal key or Q is the identity
    """
    point = _as_point(internal_key)
    return _derive_output_cached(point.compressed(), merkle_root)


@lru_cache(maxsize=256)
def _derive_output_cached(internal_compressed: bytes, merkle_root: Optional[bytes]) -> TaprootOutput:
    internal = Point.from_bytes(internal_compressed)
    internal_odd = not internal.has_even_y()
    internal_even = -internal if internal_odd else internal
    internal_x = internal_even.xonly()

    tweak = taptweak(internal_x, merkle_root)
    Q = internal_even + point_from_scalar(tweak)
    if Q.is_infinity:
        raise InvalidPointError("Tweaked output key is the point at infinity")

    tweaked_key = Q.xonly()
    logger.debug(f"Derived Taproot output key {tweaked_key.hex()}")

    return TaprootOutput(
        internal_key=internal_x,
        merkle_root=merkle_root,
        tweaked_key=tweaked_key,
        output_script=P2TR_SCRIPT_PREFIX + tweaked_key,
        tweak=tweak,
        internal_key_odd=internal_odd,
        output_key_odd=not Q.has_even_y()
    )


def lock_merkle_root(internal_key: KeyLike, adaptor_point: Point) -> bytes:
    """
    Merkle root committing the swap output to the adaptor point.

    root = H_TANOS/lock(compressed(P + T)); the output stays key-path only,
    the root just makes the locked output unique to this (P, T) pair.

    Raises:
        InvalidPointError: If T is the identity or P + T is the identity
    """
    if adaptor_point.is_infinity:
        raise InvalidPointError("Adaptor point must not be the point at infinity")
    combined = _as_point(internal_key) + adaptor_point
    if combined.is_infinity:
        raise InvalidPointError("Internal key plus adaptor point is the point at infinity")
    return tagged_hash(TAG_LOCK, combined.compressed())


def effective_scalar(private_key: int, output: TaprootOutput) -> int:
    """
    Scalar that signs for the output key Q on the key path.

    Negate x if the internal key had odd Y, add the tweak, then negate the
    sum if Q had odd Y, so that x_eff*G == lift_x(Q.x).

    Args:
        private_key: Internal private key
        output: Output derived from private_key*G

    Raises:
        InvalidKeyError: If the key is invalid or does not belong to the output
    """
    x = validate_private_key(private_key)
    P = point_from_scalar(x)
    if P.xonly() != output.internal_key:
        raise InvalidKeyError("Private key does not match the output's internal key")

    if not P.has_even_y():
        x = scalar_negate(x)
    x_eff = scalar_add(x, output.tweak)
    if output.output_key_odd:
        x_eff = scalar_negate(x_eff)
    if x_eff == 0:
        raise InvalidKeyError("Effective signing scalar is zero")
    return x_eff


def sign_for_spend(
    private_key: int,
    output: TaprootOutput,
    sighash: bytes,
    engine: Optional[AdaptorSignatureEngine] = None
) -> bytes:
    """
    Produce a BIP-340 key-path signature for spending `output`.

    Args:
        private_key: Internal private key
        output: Output being spent
        sighash: 32-byte BIP-341 signature hash from the transaction collaborator
        engine: Signing engine (a fresh one with default randomness if omitted)

    Returns:
        64-byte signature for the witness
    """
    engine = engine or AdaptorSignatureEngine()
    x_eff = effective_scalar(private_key, output)
    return engine.sign(x_eff, sighash)


def output_address(output: TaprootOutput, network: str = 'mainnet') -> str:
    """Encode the output key as a bech32m (witness v1) address."""
    hrp = get_network_config(network)['bech32']
    return bech32.encode(hrp, 1, output.tweaked_key)


def taproot_tweak_pubkey(internal_pubkey_hex: str, merkle_root_hex: str = None) -> Tuple[str, str]:
    """
    Tweak an x-only public key according to BIP-341.

    Args:
        internal_pubkey_hex: Internal public key as x-only coordinate (64 hex chars)
        merkle_root_hex: Optional Merkle root (64 hex chars, None for key-path only)

    Returns:
        Tuple of (tweaked_pubkey_hex, tweak_hex)

    Raises:
        ValueError: If the key is malformed or not on the curve
    """
    try:
        internal_x = bytes.fromhex(internal_pubkey_hex)
        merkle_root = bytes.fromhex(merkle_root_hex) if merkle_root_hex else None
    except ValueError as e:
        raise ValueError(f"Invalid hex input: {e}")

    output = derive_output(lift_x(internal_x), merkle_root)
    return output.tweaked_key.hex(), format(output.tweak, '064x')


def taproot_tweak_privkey(internal_privkey_hex: str, merkle_root_hex: str = None) -> str:
    """
    Tweak a private key according to BIP-341.

    - If has_even_y(P): q = (p + t) mod n
    - If !has_even_y(P): q = (n - p + t) mod n

    Unlike effective_scalar() the result is not negated for an odd-Y output
    key; it is the raw tweaked secret as listed in the BIP-341 vectors.

    Args:
        internal_privkey_hex: Internal private key (64 hex chars)
        merkle_root_hex: Optional Merkle root (64 hex chars)

    Returns:
        Tweaked private key (64 hex chars)

    Raises:
        ValueError: If the key is malformed or out of range
    """
    try:
        p_int = int_from_bytes(bytes.fromhex(internal_privkey_hex))
        merkle_root = bytes.fromhex(merkle_root_hex) if merkle_root_hex else None
    except ValueError as e:
        raise ValueError(f"Invalid hex input: {e}")

    p_int = validate_private_key(p_int)
    P = point_from_scalar(p_int)
    if not P.has_even_y():
        p_int = scalar_negate(p_int)

    tweak = taptweak(P.xonly(), merkle_root)
    return format(scalar_add(p_int, tweak), '064x')
