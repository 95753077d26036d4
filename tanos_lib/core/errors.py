"""
Exception taxonomy for TANOS.

Every error derives from TanosError, which is itself a ValueError so that
callers written against plain ValueError keep working.
"""


class TanosError(ValueError):
    """Base class for all TANOS errors."""


class InvalidKeyError(TanosError):
    """Scalar is zero or outside [1, n)."""


class PointDecodeError(TanosError):
    """Bytes do not encode a valid secp256k1 point (e.g. x not on the curve)."""


class InvalidPointError(TanosError):
    """The point at infinity (or an odd-Y key) was supplied where it is not allowed."""


class NonceExhaustionError(TanosError):
    """The nonce retry loop hit its bound without finding an even-Y nonce."""


class VerificationFailure(TanosError):
    """A cryptographic check returned False."""


class ParityError(TanosError):
    """Finalization was attempted with a nonce point that has odd Y."""


class FairnessViolationError(TanosError):
    """A revealed or extracted secret does not reproduce the published adaptor point."""


class ExternalCollaboratorError(TanosError):
    """A transaction or message-signing collaborator failed."""


class SwapStateError(TanosError):
    """An operation was attempted from a state that does not allow it."""


class SwapExpiredError(TanosError):
    """A phase deadline passed before the counterparty or chain responded."""
