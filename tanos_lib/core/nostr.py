"""
Message signing for the Seller's side of the swap.

The Seller's withheld BIP-340 signature covers a message agreed with the
Buyer. Two signers produce that message:
- NostrSigner: the message is the NIP-01 event id (sha256 of the canonical
  event serialization), so the revealed signature is a valid Nostr event sig
- PlainMessageSigner: the message is the UTF-8 content itself
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .adaptor import AdaptorSignatureEngine, verify_schnorr
from .ecc import point_from_scalar, validate_private_key
from .errors import VerificationFailure
from .models import NostrEvent

logger = logging.getLogger('tanos.nostr')

# NIP-01 short text note
KIND_TEXT_NOTE = 1


class MessageSigner(ABC):
    """
    Turns agreed content into the exact bytes the Seller signs.

    Subclasses decide how content maps to message bytes; signing and
    verification are shared BIP-340 operations.
    """

    def __init__(self, engine: Optional[AdaptorSignatureEngine] = None):
        self.engine = engine or AdaptorSignatureEngine()

    @abstractmethod
    def prepare(self, pubkey_x: bytes, content: str) -> Tuple[bytes, Optional[NostrEvent]]:
        """
        Build the message for `content` signed by `pubkey_x`.

        Returns:
            Tuple of (message bytes, unsigned event or None)
        """

    def attach(self, event: Optional[NostrEvent], signature: bytes) -> Optional[NostrEvent]:
        """Return a signed copy of `event` (None passes through)."""
        if event is None:
            return None
        signed = event.unsigned()
        signed.sig = signature.hex()
        return signed

    def sign(self, private_key: int, content: str) -> Tuple[bytes, bytes, Optional[NostrEvent]]:
        """
        Sign `content` directly.

        Returns:
            Tuple of (message bytes, 64-byte signature, signed event or None)
        """
        x = validate_private_key(private_key)
        pubkey_x = point_from_scalar(x).xonly()
        message, event = self.prepare(pubkey_x, content)
        signature = self.engine.sign(x, message)
        return message, signature, self.attach(event, signature)

    @staticmethod
    def verify(pubkey_x: bytes, message: bytes, signature: bytes) -> bool:
        """BIP-340 check of `signature` over `message`."""
        return verify_schnorr(pubkey_x, message, signature)


class PlainMessageSigner(MessageSigner):
    """Signs the UTF-8 encoding of the content with no envelope."""

    def prepare(self, pubkey_x: bytes, content: str) -> Tuple[bytes, Optional[NostrEvent]]:
        return content.encode('utf-8'), None


class NostrSigner(MessageSigner):
    """
    NIP-01 event signer.

    The signed message is the 32-byte event id, so the signature revealed at
    the end of a swap is directly usable as the event's `sig` field.

    Example:
        >>> signer = NostrSigner()
        >>> event = signer.sign_event(private_key, "hello")
        >>> assert NostrSigner.verify_event(event)
    """

    def __init__(
        self,
        engine: Optional[AdaptorSignatureEngine] = None,
        kind: int = KIND_TEXT_NOTE,
        tags: Optional[List[List[str]]] = None,
        created_at: Optional[int] = None
    ):
        """
        Initialize the signer.

        Args:
            engine: Signing engine (default randomness if omitted)
            kind: Event kind for created events
            tags: Event tags for created events
            created_at: Fixed timestamp; the current time is used if omitted
        """
        super().__init__(engine)
        self.kind = kind
        self.tags = tags or []
        self.created_at = created_at

    def create_event(self, pubkey_x: bytes, content: str) -> NostrEvent:
        """Build an unsigned event with its id filled in."""
        event = NostrEvent(
            pubkey=pubkey_x.hex(),
            created_at=self.created_at if self.created_at is not None else int(time.time()),
            kind=self.kind,
            tags=[list(t) for t in self.tags],
            content=content
        )
        event.id = event.compute_id()
        logger.debug(f"Created event {event.id}")
        return event

    def prepare(self, pubkey_x: bytes, content: str) -> Tuple[bytes, Optional[NostrEvent]]:
        event = self.create_event(pubkey_x, content)
        return bytes.fromhex(event.id), event

    def sign_event(self, private_key: int, content: str) -> NostrEvent:
        """Create and sign an event in one step."""
        _, _, event = self.sign(private_key, content)
        return event

    @staticmethod
    def verify_event(event: NostrEvent) -> bool:
        """
        Check an event's id and signature.

        Returns:
            True if the id matches the serialized event and the signature
            verifies under the event's pubkey, False otherwise
        """
        if not event.sig:
            return False
        if event.compute_id() != event.id:
            logger.debug(f"Event id mismatch for {event.id}")
            return False
        try:
            pubkey_x = bytes.fromhex(event.pubkey)
            message = bytes.fromhex(event.id)
            signature = bytes.fromhex(event.sig)
        except ValueError:
            return False
        return verify_schnorr(pubkey_x, message, signature)


def message_for_event(event: NostrEvent) -> bytes:
    """
    Message bytes a signature over `event` must cover.

    Raises:
        VerificationFailure: If the event id does not match its contents
    """
    if event.compute_id() != event.id:
        raise VerificationFailure("Event id does not match the event contents")
    return bytes.fromhex(event.id)
