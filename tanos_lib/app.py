"""
Main application orchestrator for a TANOS swap.

This module drives a Seller and a Buyer session against one transaction
collaborator, wiring their events to the frontend: commitment, locking,
pre-signing, reveal, claim and the Seller's claim audit.
"""

import asyncio
import logging
import secrets
from typing import Optional

from .core.address import privkey_to_wif
from .core.constants import SECP256K1_ORDER
from .core.errors import TanosError
from .core.models import SwapConfig, SwapTerms
from .core.nostr import MessageSigner, NostrSigner, PlainMessageSigner
from .core.taproot import output_address
from .backend.chain import TransactionCollaborator
from .backend.swap import BuyerSession, SellerSession, locked_output
from .frontend.base import FrontendInterface
from .frontend.events import EventBus, Event, EventType

logger = logging.getLogger('tanos.app')


def generate_private_key() -> int:
    """Uniform random scalar in [1, n)."""
    return secrets.randbelow(SECP256K1_ORDER - 1) + 1


class SwapApp:
    """
    Main application orchestrator for one swap.

    Coordinates:
    - SellerSession and BuyerSession
    - The transaction collaborator they share
    - Frontend for user interaction
    - EventBus for reactive updates
    """

    def __init__(
        self,
        chain: TransactionCollaborator,
        frontend: FrontendInterface,
        config: Optional[SwapConfig] = None,
        network_name: str = 'Bitcoin Regtest',
        use_nostr: bool = True
    ):
        """
        Initialize the swap application.

        Args:
            chain: Transaction collaborator (MemoryChain or connected ElectrumChain)
            frontend: Frontend interface for UI
            config: Swap settings
            network_name: Display name for network
            use_nostr: Sign a NIP-01 event (True) or the raw message (False)
        """
        self.chain = chain
        self.frontend = frontend
        self.config = config or SwapConfig()
        self.network_name = network_name
        self.use_nostr = use_nostr

        self.event_bus = EventBus()
        self.seller: Optional[SellerSession] = None
        self.buyer: Optional[BuyerSession] = None

    def _make_signer(self) -> MessageSigner:
        return NostrSigner() if self.use_nostr else PlainMessageSigner()

    async def run(
        self,
        terms: SwapTerms,
        seller_key: Optional[int] = None,
        buyer_key: Optional[int] = None
    ) -> int:
        """
        Run the complete swap.

        Args:
            terms: Agreed swap terms
            seller_key: Seller's signing key (random demo key if omitted)
            buyer_key: Buyer's bitcoin key (random demo key if omitted)

        Returns:
            Exit code (0 for success, 1 for error or cancellation)
        """
        try:
            self._setup_event_handlers()
            self.frontend.show_swap_terms(terms, self.network_name)

            seller_key = seller_key or generate_private_key()
            buyer_key = buyer_key or generate_private_key()

            self.seller = SellerSession(
                terms, seller_key, self.chain, self.config, self.event_bus,
                signer=self._make_signer()
            )
            self.buyer = BuyerSession(terms, buyer_key, self.chain, self.config, self.event_bus)
            self.frontend.show_party_keys('seller', self.seller.pubkey.hex(), privkey_to_wif(seller_key, self.config.network))
            self.frontend.show_party_keys('buyer', self.buyer.pubkey.hex(), privkey_to_wif(buyer_key, self.config.network))

            commitment = await self.seller.commit()
            self.frontend.show_commitment(commitment)
            await self.buyer.receive_commitment(commitment)

            output = locked_output(self.buyer.point, commitment.adaptor_point)
            address = output_address(output, self.config.network)
            self.frontend.show_funding_request(address, terms.amount)
            if not await self.frontend.prompt_confirm_lock(address, terms.amount):
                self.frontend.show_warning("Swap cancelled before locking funds")
                await self._cancel()
                return 1

            await self._lock()

            presignature = await self.buyer.presign()
            await self.seller.receive_presignature(presignature)

            reveal = await self.seller.reveal()
            self.frontend.show_reveal(reveal.signature.hex(), reveal.event.id if reveal.event else None)

            result = await self.buyer.receive_reveal(reveal)
            self.frontend.show_claim(result)

            try:
                self.seller.observe_claim(result.signature)
            except TanosError as e:
                logger.error(f"Claim audit failed: {e}")
                await self._emit_audit(terms.swap_id, False)
                return 1

            await self._emit_audit(terms.swap_id, True)
            return 0

        except TanosError as e:
            logger.error(f"Swap error: {e}")
            self.frontend.show_error(str(e))
            await self._cancel()
            return 1

    async def _lock(self):
        """Buyer funds the output while the Seller watches for it."""
        seller_wait = asyncio.create_task(self.seller.wait_for_lock(self.buyer.pubkey_compressed))
        try:
            await self.buyer.lock()
            await seller_wait
        finally:
            if not seller_wait.done():
                seller_wait.cancel()
            elif not seller_wait.cancelled():
                # already recorded on the seller session
                seller_wait.exception()

    async def _emit_audit(self, swap_id: str, passed: bool):
        await self.event_bus.emit(Event(
            EventType.CLAIM_AUDITED, {'swap_id': swap_id, 'passed': passed}, source='seller'
        ))

    async def _cancel(self):
        for session in (self.seller, self.buyer):
            if session is not None:
                await session.cancel()

    def _setup_event_handlers(self):
        self.event_bus.on(EventType.STATE_CHANGED, self._on_state_changed)
        self.event_bus.on(EventType.FUNDING_CONFIRMED, self._on_funding_confirmed)
        self.event_bus.on(EventType.PRESIGNATURE_CREATED, self._on_presignature_created)
        self.event_bus.on(EventType.CLAIM_AUDITED, self._on_claim_audited)

    async def _on_state_changed(self, event: Event):
        self.frontend.show_state_change(event.source, event.data['old_state'], event.data['new_state'])

    async def _on_funding_confirmed(self, event: Event):
        if event.source == 'buyer':
            self.frontend.show_funding_confirmed(event.data['outpoint'])

    async def _on_presignature_created(self, event: Event):
        self.frontend.show_presignature(event.data['presignature'])

    async def _on_claim_audited(self, event: Event):
        self.frontend.show_audit_result(event.data['passed'])
