"""
Adaptor signatures over secp256k1 / BIP-340.

An adaptor signature (R', s) under key P for adaptor point T satisfies

    s*G == (R' - T) + e*P,   e = H_challenge(R'.x || P.x || m)

It is not a valid BIP-340 signature until completed with the discrete log t
of T: s' = s + t gives s'*G == R' + e*P, i.e. the standard signature (R'.x, s').
Anyone holding both s and s' learns t = s' - s.

This module contains:
- AdaptorSignatureEngine: create/verify/complete/extract/finalize
- Plain BIP-340 signing (adaptor point = identity) and verification

Randomness is injected per engine instance; every nonce attempt draws fresh
bytes from it.
"""

import logging
import secrets
from typing import Callable, Optional, Tuple

from .constants import SECP256K1_ORDER, TAG_CHALLENGE, MAX_NONCE_ATTEMPTS
from .ecc import (
    Point, INFINITY, lift_x, point_from_scalar, tagged_hash,
    scalar_add, scalar_sub, scalar_mul, scalar_negate, scalar_to_bytes,
    int_from_bytes, validate_private_key,
)
from .errors import (
    InvalidPointError, NonceExhaustionError,
    ParityError, FairnessViolationError, VerificationFailure,
    PointDecodeError,
)
from .models import AdaptorSignature

logger = logging.getLogger('tanos.adaptor')

# Source of cryptographically secure random bytes: n -> n random bytes
RandomSource = Callable[[int], bytes]


def challenge(nonce_x: bytes, pubkey_x: bytes, message: bytes) -> int:
    """
    Compute the BIP-340 challenge e = H_BIP0340/challenge(R.x || P.x || m) mod n.

    Args:
        nonce_x: x-only nonce point (32 bytes)
        pubkey_x: x-only public key (32 bytes)
        message: Message bytes (any length)

    Returns:
        Challenge scalar
    """
    e_bytes = tagged_hash(TAG_CHALLENGE, nonce_x, pubkey_x, message)
    return int_from_bytes(e_bytes) % SECP256K1_ORDER


def even_y_keypair(private_key: int) -> Tuple[int, Point]:
    """
    Normalize a private key to the BIP-340 even-Y convention.

    Args:
        private_key: Scalar in [1, n)

    Returns:
        Tuple of (x', P) where P = x'*G has even Y and x' is x or n - x

    Raises:
        InvalidKeyError: If the key is zero or out of range
    """
    x = validate_private_key(private_key)
    P = point_from_scalar(x)
    if not P.has_even_y():
        x = scalar_negate(x)
        P = -P
    return x, P


class AdaptorSignatureEngine:
    """
    Creates and checks adaptor signatures.

    Verification methods are pure and stateless; only nonce sampling touches
    the engine's randomness source.

    Example:
        >>> engine = AdaptorSignatureEngine()
        >>> T = point_from_scalar(t)
        >>> sig = engine.create(x, T, msg)
        >>> assert engine.verify(sig, T)
        >>> final = engine.finalize(sig.nonce_point, engine.complete(sig, t))
    """

    def __init__(
        self,
        random_source: Optional[RandomSource] = None,
        max_nonce_attempts: int = MAX_NONCE_ATTEMPTS
    ):
        """
        Initialize the engine.

        Args:
            random_source: Callable returning n secure random bytes
                (default: secrets.token_bytes)
            max_nonce_attempts: Bound on the even-parity nonce retry loop
        """
        self.random_source = random_source or secrets.token_bytes
        self.max_nonce_attempts = max_nonce_attempts

    # ========================================================================
    # Nonce Sampling
    # ========================================================================

    def sample_nonce(self) -> int:
        """
        Sample k uniformly from [1, n) by rejection sampling 32-byte strings.

        Raises:
            NonceExhaustionError: If the source keeps producing out-of-range values
        """
        for _ in range(self.max_nonce_attempts):
            k = int_from_bytes(self.random_source(32))
            if 0 < k < SECP256K1_ORDER:
                return k
        raise NonceExhaustionError("Random source produced no scalar in [1, n)")

    def _nonce_with_even_sum(self, adaptor_point: Point) -> Tuple[int, Point]:
        """
        Resample k until R' = k*G + T has even Y.

        Negating k cannot fix the parity of R + T when T is not the identity,
        so the only correct resolution is to draw a fresh nonce.
        """
        for attempt in range(1, self.max_nonce_attempts + 1):
            k = self.sample_nonce()
            nonce_point = point_from_scalar(k) + adaptor_point
            if not nonce_point.is_infinity and nonce_point.has_even_y():
                logger.debug(f"Nonce accepted after {attempt} attempt(s)")
                return k, nonce_point
        raise NonceExhaustionError(
            f"No even-Y nonce point found in {self.max_nonce_attempts} attempts"
        )

    # ========================================================================
    # Adaptor Signatures
    # ========================================================================

    def create(self, private_key: int, adaptor_point: Point, message: bytes) -> AdaptorSignature:
        """
        Create an adaptor signature over `message` for adaptor point T.

        Args:
            private_key: Signing scalar x in [1, n)
            adaptor_point: Adaptor point T (must not be the identity)
            message: Message bytes

        Returns:
            AdaptorSignature with even-Y nonce point R' = k*G + T

        Raises:
            InvalidKeyError: If x is zero or out of range
            InvalidPointError: If T is the identity
            NonceExhaustionError: If the nonce retry bound is hit
            VerificationFailure: If the freshly created signature does not verify
        """
        if not isinstance(adaptor_point, Point) or adaptor_point.is_infinity:
            raise InvalidPointError("Adaptor point must not be the point at infinity")

        sig = self._sign(private_key, adaptor_point, message)

        if not self.verify(sig, adaptor_point):
            raise VerificationFailure("Adaptor signature failed self-verification")

        return sig

    def _sign(self, private_key: int, adaptor_point: Point, message: bytes) -> AdaptorSignature:
        """Shared signing core; `adaptor_point` may be the identity for plain signatures."""
        x, P = even_y_keypair(private_key)
        pubkey_x = P.xonly()

        k, nonce_point = self._nonce_with_even_sum(adaptor_point)
        e = challenge(nonce_point.xonly(), pubkey_x, message)
        s = scalar_add(k, scalar_mul(e, x))

        return AdaptorSignature(
            nonce_point=nonce_point,
            s=s,
            pubkey=pubkey_x,
            message=bytes(message)
        )

    @staticmethod
    def verify(sig: AdaptorSignature, adaptor_point: Point) -> bool:
        """
        Verify an adaptor signature against adaptor point T.

        Checks s*G == (R' - T) + e*P by exact point equality.

        Args:
            sig: Adaptor signature to check
            adaptor_point: Adaptor point T

        Returns:
            True if the equation holds, False otherwise

        Raises:
            InvalidPointError: If R' - T is the identity
        """
        R = sig.nonce_point - adaptor_point
        if R.is_infinity:
            raise InvalidPointError("R' - T is the point at infinity")

        if not 0 <= sig.s < SECP256K1_ORDER:
            return False

        try:
            P = lift_x(sig.pubkey)
        except PointDecodeError:
            return False

        e = challenge(sig.nonce_point.xonly(), sig.pubkey, sig.message)
        return point_from_scalar(sig.s) == R + P * e

    @staticmethod
    def complete(sig: AdaptorSignature, secret: int) -> int:
        """Complete an adaptor signature: s' = (s + t) mod n."""
        return scalar_add(sig.s, secret)

    @staticmethod
    def extract_secret(
        sig: AdaptorSignature,
        completed_s: int,
        adaptor_point: Optional[Point] = None
    ) -> int:
        """
        Recover t = (s' - s) mod n from an adaptor signature and its completion.

        Args:
            sig: The adaptor signature
            completed_s: Completed scalar s' (e.g. from a broadcast witness)
            adaptor_point: If given, the extracted t must satisfy t*G == T

        Returns:
            Secret scalar t

        Raises:
            FairnessViolationError: If t*G does not reproduce the adaptor point
        """
        t = scalar_sub(completed_s, sig.s)
        if adaptor_point is not None and point_from_scalar(t) != adaptor_point:
            raise FairnessViolationError("Extracted secret does not match the adaptor point")
        return t

    @staticmethod
    def finalize(nonce_point: Point, completed_s: int) -> bytes:
        """
        Serialize a completed signature as BIP-340 bytes R'.x || s'.

        Raises:
            ParityError: If R' has odd Y (or is the identity)
        """
        if nonce_point.is_infinity or not nonce_point.has_even_y():
            raise ParityError("Nonce point must have even Y to form a BIP-340 signature")
        return nonce_point.xonly() + scalar_to_bytes(completed_s % SECP256K1_ORDER)

    # ========================================================================
    # Plain BIP-340
    # ========================================================================

    def sign(self, private_key: int, message: bytes) -> bytes:
        """
        Produce a standard BIP-340 signature using the same nonce discipline.

        Args:
            private_key: Signing scalar in [1, n)
            message: Message bytes

        Returns:
            64-byte signature R.x || s
        """
        sig = self._sign(private_key, INFINITY, message)
        signature = self.finalize(sig.nonce_point, sig.s)

        if not verify_schnorr(sig.pubkey, message, signature):
            raise VerificationFailure("Schnorr signature failed self-verification")

        return signature


def verify_schnorr(pubkey_x: bytes, message: bytes, signature: bytes) -> bool:
    """
    Verify a BIP-340 Schnorr signature.

    Computes R = s*G - e*P and accepts iff R is not the identity, has even Y
    and its x-coordinate equals the signature's r.

    Args:
        pubkey_x: x-only public key (32 bytes)
        message: Message bytes (any length)
        signature: 64-byte signature r || s

    Returns:
        True if signature is valid, False otherwise
    """
    if len(pubkey_x) != 32 or len(signature) != 64:
        return False

    r_bytes = signature[:32]
    s = int_from_bytes(signature[32:])
    if s >= SECP256K1_ORDER:
        return False

    try:
        P = lift_x(pubkey_x)
    except PointDecodeError:
        return False

    e = challenge(r_bytes, pubkey_x, message)

    # R = s*G - e*P
    R = point_from_scalar(s) - P * e
    if R.is_infinity or not R.has_even_y():
        return False

    return R.xonly() == r_bytes
