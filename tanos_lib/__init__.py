"""
TANOS - Taproot Adaptor signatures for Nostr-Originated Swaps

An async, event-driven implementation of an atomic swap that binds a Bitcoin
Taproot payment to the reveal of a BIP-340 Schnorr signature over a Nostr event,
using adaptor signatures.
"""

__version__ = "0.1.0"
__author__ = "TANOS contributors"
__license__ = "GPL-3.0"

__all__ = [
    "__version__",
    "__author__",
    "__license__",
]
