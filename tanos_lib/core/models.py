"""
Data models for TANOS swaps.

This module contains all dataclasses and enums used throughout the application
for representing adaptor signatures, Taproot outputs, swap messages and
swap session configuration.
"""

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Optional, List, Dict, Any

from .constants import (
    SATS_PER_BTC, SECP256K1_ORDER, DEFAULT_FUNDING_TIMEOUT,
    DEFAULT_REVEAL_TIMEOUT, DEFAULT_BROADCAST_TIMEOUT, DEFAULT_CLAIM_FEE,
    MAX_NONCE_ATTEMPTS,
)
from .ecc import Point, lift_x, scalar_to_bytes, int_from_bytes
from .errors import PointDecodeError, InvalidKeyError, InvalidPointError


class SwapState(Enum):
    """Protocol states shared by both roles."""
    INIT = auto()
    COMMITTED = auto()
    LOCKED = auto()
    PRESIGNED = auto()
    COMPLETED = auto()
    FAILED = auto()
    EXPIRED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (SwapState.COMPLETED, SwapState.FAILED, SwapState.EXPIRED)


class Role(Enum):
    """Swap participant role."""
    SELLER = 'seller'
    BUYER = 'buyer'


@dataclass(frozen=True)
class AdaptorSignature:
    """
    Adaptor signature (R', s, P, m).

    Satisfies s*G == (R' - T) + e*P with e = H_challenge(R'.x || P || m)
    for the adaptor point T it was created against.
    """
    nonce_point: Point  # R' = R + T, always even Y
    s: int
    pubkey: bytes  # x-only public key P (32 bytes)
    message: bytes

    def serialize(self) -> bytes:
        """Wire format: R'.x (32) || s (32) || P compressed (33) || message."""
        return (
            self.nonce_point.xonly()
            + scalar_to_bytes(self.s)
            + b'\x02' + self.pubkey
            + self.message
        )

    @classmethod
    def parse(cls, data: bytes) -> 'AdaptorSignature':
        """
        Parse an adaptor signature from its wire format.

        Raises:
            PointDecodeError: If the data is too short or a point does not decode
            InvalidKeyError: If s is not below the curve order
            InvalidPointError: If the public key is not the even-Y representative
        """
        if len(data) < 97:
            raise PointDecodeError(f"Adaptor signature too short: {len(data)} bytes (minimum 97)")

        nonce_point = lift_x(data[:32])
        s = int_from_bytes(data[32:64])
        if s >= SECP256K1_ORDER:
            raise InvalidKeyError("Adaptor signature s is not below the curve order")

        pubkey_point = Point.from_bytes(data[64:97])
        if not pubkey_point.has_even_y():
            raise InvalidPointError("Adaptor signature public key must have even Y")

        return cls(
            nonce_point=nonce_point,
            s=s,
            pubkey=pubkey_point.xonly(),
            message=bytes(data[97:])
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export adaptor signature as dictionary."""
        return {
            'nonce_point': self.nonce_point.xonly().hex(),
            's': format(self.s, '064x'),
            'pubkey': self.pubkey.hex(),
            'message': self.message.hex()
        }


@dataclass(frozen=True)
class TaprootOutput:
    """BIP-341 key-path output derived from an internal key and optional merkle root."""
    internal_key: bytes  # x-only internal key (32 bytes)
    merkle_root: Optional[bytes]
    tweaked_key: bytes  # x-only output key Q (32 bytes)
    output_script: bytes  # OP_1 <Q>
    tweak: int
    internal_key_odd: bool  # internal key as supplied had odd Y
    output_key_odd: bool  # P_even + tweak*G had odd Y

    @property
    def script_hex(self) -> str:
        return self.output_script.hex()

    def to_dict(self) -> Dict[str, Any]:
        """Export output descriptor as dictionary."""
        return {
            'internal_key': self.internal_key.hex(),
            'merkle_root': self.merkle_root.hex() if self.merkle_root else None,
            'tweaked_key': self.tweaked_key.hex(),
            'output_script': self.output_script.hex(),
            'tweak': format(self.tweak, '064x')
        }


@dataclass
class NostrEvent:
    """NIP-01 event. `sig` is None until the event is signed."""
    pubkey: str  # x-only hex
    created_at: int
    kind: int
    tags: List[List[str]]
    content: str
    id: str = ''
    sig: Optional[str] = None

    def serialize_for_id(self) -> bytes:
        """NIP-01 canonical serialization [0, pubkey, created_at, kind, tags, content]."""
        payload = [0, self.pubkey, self.created_at, self.kind, self.tags, self.content]
        return json.dumps(payload, separators=(',', ':'), ensure_ascii=False).encode('utf-8')

    def compute_id(self) -> str:
        return hashlib.sha256(self.serialize_for_id()).hexdigest()

    def unsigned(self) -> 'NostrEvent':
        """Copy of this event without its signature."""
        return replace(self, tags=[list(t) for t in self.tags], sig=None)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'pubkey': self.pubkey,
            'created_at': self.created_at,
            'kind': self.kind,
            'tags': self.tags,
            'content': self.content
        }
        if self.sig is not None:
            data['sig'] = self.sig
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NostrEvent':
        """Create NostrEvent from dictionary (e.g., from a relay message)."""
        return cls(
            pubkey=data.get('pubkey', ''),
            created_at=data.get('created_at', 0),
            kind=data.get('kind', 1),
            tags=data.get('tags', []),
            content=data.get('content', ''),
            id=data.get('id', ''),
            sig=data.get('sig')
        )


@dataclass(frozen=True)
class Outpoint:
    """Reference to a transaction output, with its value when a collaborator reports it."""
    txid: str
    vout: int
    value: Optional[int] = field(default=None, compare=False)  # satoshis

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class SwapTerms:
    """Parameters both parties agree on before the swap starts."""
    swap_id: str
    content: str  # message content the Seller will sign
    amount: int  # satoshis locked by the Buyer

    def __str__(self) -> str:
        btc_value = self.amount / SATS_PER_BTC
        return f"Swap {self.swap_id}: {btc_value:.8f} BTC ({self.amount:,} sats) for \"{self.content}\""


@dataclass(frozen=True)
class Commitment:
    """Seller's published commitment: adaptor point T and nonce R, never s."""
    swap_id: str
    adaptor_point: Point  # T = s*G
    nonce_point: Point  # R from the withheld signature
    seller_pubkey: bytes  # x-only P_s
    message: bytes  # exact bytes the withheld signature covers
    event: Optional[NostrEvent] = None  # unsigned event, when signing a Nostr event

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'swap_id': self.swap_id,
            'adaptor_point': self.adaptor_point.compressed().hex(),
            'nonce_point': self.nonce_point.xonly().hex(),
            'seller_pubkey': self.seller_pubkey.hex(),
            'message': self.message.hex()
        }
        if self.event is not None:
            data['event'] = self.event.to_dict()
        return data


@dataclass(frozen=True)
class Reveal:
    """Seller's reveal: the full 64-byte signature R || s."""
    swap_id: str
    signature: bytes
    event: Optional[NostrEvent] = None  # signed event, when signing a Nostr event

    @property
    def nonce_x(self) -> bytes:
        return self.signature[:32]

    @property
    def s(self) -> int:
        return int_from_bytes(self.signature[32:64])


@dataclass
class ClaimResult:
    """Outcome of the Buyer's claim broadcast."""
    txid: str
    tx_hex: str
    signature: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            'txid': self.txid,
            'tx_hex': self.tx_hex,
            'signature': self.signature.hex()
        }


@dataclass
class SwapConfig:
    """Per-run swap settings."""
    network: str = 'regtest'
    funding_timeout: float = DEFAULT_FUNDING_TIMEOUT
    reveal_timeout: float = DEFAULT_REVEAL_TIMEOUT
    broadcast_timeout: float = DEFAULT_BROADCAST_TIMEOUT
    claim_fee: int = DEFAULT_CLAIM_FEE  # satoshis
    max_nonce_attempts: int = MAX_NONCE_ATTEMPTS
    claim_script: Optional[bytes] = None  # destination script, defaults to the Buyer's own key-path output
