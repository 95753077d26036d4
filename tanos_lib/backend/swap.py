"""
Seller and Buyer swap sessions.

The Seller trades a BIP-340 signature over an agreed message for the
Buyer's locked bitcoin:

    Seller                                 Buyer
    ------                                 -----
    sign m -> (R, s), T = s*G
    publish Commitment(T, R)   ------->    check T == R + e*P_s
                                           lock funds to Q = tweak(P_b, T)
    see funding confirmed                  presign claim: adaptor sig for T
    reveal (R, s)              ------->    s' = s_adaptor + s, broadcast claim

Each session is a state machine INIT -> COMMITTED -> LOCKED -> PRESIGNED ->
COMPLETED, with FAILED and EXPIRED reachable from any non-terminal state.
Every wait on a collaborator is bounded by the session's SwapConfig.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Optional

from embit.transaction import Transaction

from ..core.adaptor import AdaptorSignatureEngine, challenge, verify_schnorr
from ..core.ecc import Point, lift_x, point_from_scalar, validate_private_key
from ..core.errors import (
    TanosError, InvalidPointError, VerificationFailure, FairnessViolationError,
    ExternalCollaboratorError, SwapStateError, SwapExpiredError,
)
from ..core.models import (
    AdaptorSignature, ClaimResult, Commitment, Outpoint, Reveal, Role,
    SwapConfig, SwapState, SwapTerms, TaprootOutput,
)
from ..core.nostr import MessageSigner, NostrSigner, message_for_event
from ..core.taproot import derive_output, effective_scalar, lock_merkle_root
from ..core.transaction_builder import serialize_transaction
from ..frontend.events import (
    EventBus, Event, EventType, create_state_changed_event,
    create_funding_requested_event, create_claim_broadcast_event,
    create_swap_failed_event,
)
from .chain import TransactionCollaborator

logger = logging.getLogger('tanos.swap')


class SwapSession:
    """
    State shared by both roles: terms, key, collaborator, state and events.

    Subclasses implement the protocol steps inside `_step()`, which rejects
    calls on finished sessions and turns any TanosError into a recorded
    failure (FAILED, or EXPIRED for deadlines) before re-raising it.
    """

    role: Role

    def __init__(
        self,
        terms: SwapTerms,
        private_key: int,
        chain: TransactionCollaborator,
        config: Optional[SwapConfig] = None,
        event_bus: Optional[EventBus] = None,
        engine: Optional[AdaptorSignatureEngine] = None
    ):
        """
        Initialize a session.

        Args:
            terms: Agreed swap id, message content and amount
            private_key: This party's signing key
            chain: Transaction collaborator
            config: Timeouts, fee and nonce bound (defaults if omitted)
            event_bus: Optional EventBus for progress events
            engine: Adaptor signature engine (built from config if omitted)
        """
        self.terms = terms
        self.config = config or SwapConfig()
        self.chain = chain
        self.event_bus = event_bus or EventBus()
        self.engine = engine or AdaptorSignatureEngine(max_nonce_attempts=self.config.max_nonce_attempts)

        self._private_key: Optional[int] = validate_private_key(private_key)
        self.point = point_from_scalar(self._private_key)
        self.pubkey = self.point.xonly()

        self.state = SwapState.INIT
        self.error: Optional[Exception] = None
        self._lock = asyncio.Lock()
        self._settled = asyncio.Event()  # set once the session is terminal

    @property
    def swap_id(self) -> str:
        return self.terms.swap_id

    # ========================================================================
    # State Handling
    # ========================================================================

    def _require(self, *states: SwapState) -> None:
        if self.state not in states:
            expected = ', '.join(s.name for s in states)
            raise SwapStateError(f"{self.role.value} session is {self.state.name}, expected {expected}")

    async def _transition(self, new_state: SwapState) -> None:
        if self.state.is_terminal:
            raise SwapStateError(f"{self.role.value} session already {self.state.name}")
        old_state = self.state
        self.state = new_state
        if new_state.is_terminal:
            self._settled.set()
        logger.info(f"[{self.role.value} {self.swap_id}] {old_state.name} -> {new_state.name}")
        await self._emit(create_state_changed_event(
            self.role.value, self.swap_id, old_state.name, new_state.name
        ))

    async def _emit(self, event: Event) -> None:
        await self.event_bus.emit(event)

    async def _fail(self, error: Exception) -> None:
        """Record the first failure and move to FAILED or EXPIRED."""
        if self.state.is_terminal:
            return
        if self.error is None:
            self.error = error
        failed_in = self.state
        self.state = SwapState.EXPIRED if isinstance(error, SwapExpiredError) else SwapState.FAILED
        self._discard_secrets()
        self._settled.set()

        logger.error(f"[{self.role.value} {self.swap_id}] {failed_in.name} -> {self.state.name}: {error}")
        await self._emit(create_swap_failed_event(
            self.role.value, self.swap_id, self.state.name, str(error)
        ))

    def _discard_secrets(self) -> None:
        self._private_key = None

    @asynccontextmanager
    async def _step(self, name: str):
        if self.state.is_terminal:
            raise SwapStateError(f"Cannot {name}: {self.role.value} session is {self.state.name}")
        async with self._lock:
            try:
                yield
            except SwapStateError:
                raise
            except TanosError as e:
                await self._fail(e)
                raise

    async def _call(self, awaitable: Awaitable[Any], timeout: Optional[float], what: str) -> Any:
        """Await a collaborator with a deadline, mapping its failures onto the taxonomy."""
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            raise SwapExpiredError(f"Timed out after {timeout}s waiting for {what}")
        except TanosError:
            raise
        except Exception as e:
            raise ExternalCollaboratorError(f"{what} failed: {e}") from e

    def _signing_key(self) -> int:
        if self._private_key is None:
            raise SwapStateError("Session key material has been discarded")
        return self._private_key

    async def cancel(self) -> bool:
        """
        Abandon the session before anything is broadcast.

        Discards key material and moves to EXPIRED.

        Returns:
            True if the session was cancelled, False if it had already finished
        """
        if self.state.is_terminal:
            return False
        await self._fail(SwapExpiredError(f"{self.role.value} session cancelled"))
        return True

    def _check_swap_id(self, swap_id: str, what: str) -> None:
        if swap_id != self.swap_id:
            raise VerificationFailure(f"{what} is for swap {swap_id}, expected {self.swap_id}")


def locked_output(buyer_point: Point, adaptor_point: Point) -> TaprootOutput:
    """Key-path output the Buyer funds: internal key P_b, committed to T."""
    return derive_output(buyer_point, lock_merkle_root(buyer_point, adaptor_point))


class SellerSession(SwapSession):
    """
    Seller side: holds the message-signing key.

    Example:
        >>> seller = SellerSession(terms, x_s, chain)
        >>> commitment = await seller.commit()
        >>> await seller.wait_for_lock(buyer_pubkey)
        >>> reveal = await seller.reveal()
    """

    role = Role.SELLER

    def __init__(
        self,
        terms: SwapTerms,
        private_key: int,
        chain: TransactionCollaborator,
        config: Optional[SwapConfig] = None,
        event_bus: Optional[EventBus] = None,
        engine: Optional[AdaptorSignatureEngine] = None,
        signer: Optional[MessageSigner] = None
    ):
        super().__init__(terms, private_key, chain, config, event_bus, engine)
        self.signer = signer or NostrSigner(engine=self.engine)
        self.commitment: Optional[Commitment] = None
        self.output: Optional[TaprootOutput] = None
        self.outpoint: Optional[Outpoint] = None
        self.presignature: Optional[AdaptorSignature] = None
        self.revealed: Optional[Reveal] = None
        self._signature: Optional[bytes] = None
        self._signed_event = None

    def _discard_secrets(self) -> None:
        super()._discard_secrets()
        self._signature = None
        self._signed_event = None

    async def commit(self) -> Commitment:
        """
        Sign the agreed message, withhold s and publish T = s*G with R.

        Idempotent: a second call returns the same commitment.
        """
        if self.commitment is not None and not self.state.is_terminal:
            return self.commitment

        async with self._step("commit"):
            self._require(SwapState.INIT)
            x = self._signing_key()

            message, event = self.signer.prepare(self.pubkey, self.terms.content)
            signature = self.engine.sign(x, message)
            nonce_point = lift_x(signature[:32])
            adaptor_point = point_from_scalar(int.from_bytes(signature[32:], 'big'))

            # T must be the point every honest verifier derives from (R, P_s, m)
            e = challenge(nonce_point.xonly(), self.pubkey, message)
            if adaptor_point != nonce_point + lift_x(self.pubkey) * e:
                raise VerificationFailure("Adaptor point does not match R + e*P")

            self._signature = signature
            self._signed_event = self.signer.attach(event, signature)
            self.commitment = Commitment(
                swap_id=self.swap_id,
                adaptor_point=adaptor_point,
                nonce_point=nonce_point,
                seller_pubkey=self.pubkey,
                message=message,
                event=event
            )

            await self._transition(SwapState.COMMITTED)
            await self._emit(Event(EventType.COMMITMENT_PUBLISHED, self.commitment.to_dict(), source=self.role.value))
            return self.commitment

    async def wait_for_lock(self, buyer_pubkey: bytes) -> Outpoint:
        """
        Wait until the Buyer's locked output is funded with the agreed amount.

        Args:
            buyer_pubkey: Buyer's compressed (33-byte) public key

        Raises:
            SwapExpiredError: If funding does not confirm within funding_timeout
        """
        async with self._step("wait for lock"):
            self._require(SwapState.COMMITTED)
            self.output = locked_output(Point.from_bytes(buyer_pubkey), self.commitment.adaptor_point)

            self.outpoint = await self._call(
                self.chain.wait_for_funding(self.output.output_script, self.terms.amount),
                self.config.funding_timeout,
                "swap output funding"
            )
            await self._transition(SwapState.LOCKED)
            await self._emit(Event(
                EventType.FUNDING_CONFIRMED,
                {'swap_id': self.swap_id, 'outpoint': str(self.outpoint)},
                source=self.role.value
            ))
            return self.outpoint

    async def receive_presignature(self, presignature: AdaptorSignature) -> None:
        """
        Check the Buyer's adaptor signature before revealing.

        The presignature must be made with the locked output's key and
        verify against this swap's adaptor point.
        """
        if self.presignature is not None and presignature == self.presignature:
            return

        async with self._step("receive presignature"):
            self._require(SwapState.LOCKED)
            if presignature.pubkey != self.output.tweaked_key:
                raise VerificationFailure("Presignature is not made with the locked output key")
            if not self.engine.verify(presignature, self.commitment.adaptor_point):
                raise VerificationFailure("Presignature does not verify against the adaptor point")

            self.presignature = presignature
            await self._transition(SwapState.PRESIGNED)
            await self._emit(Event(
                EventType.PRESIGNATURE_VERIFIED, {'swap_id': self.swap_id}, source=self.role.value
            ))

    async def reveal(self) -> Reveal:
        """
        Publish the full signature (R, s); the session is then COMPLETED.

        Only allowed once the swap output is locked.
        """
        if self.state == SwapState.COMPLETED and self.revealed is not None:
            return self.revealed

        async with self._step("reveal"):
            self._require(SwapState.LOCKED, SwapState.PRESIGNED)
            self.revealed = Reveal(
                swap_id=self.swap_id,
                signature=self._signature,
                event=self._signed_event
            )
            await self._emit(Event(
                EventType.SECRET_REVEALED, {'swap_id': self.swap_id}, source=self.role.value
            ))
            await self._transition(SwapState.COMPLETED)
            return self.revealed

    def observe_claim(self, claim_signature: bytes) -> int:
        """
        Audit the Buyer's broadcast claim.

        Extracts t from the claim's witness signature and the presignature
        and confirms t*G == T.

        Returns:
            The extracted secret (equal to the revealed s)

        Raises:
            SwapStateError: If no presignature was received
            FairnessViolationError: If the claim does not complete the presignature
        """
        if self.presignature is None:
            raise SwapStateError("No presignature to audit the claim against")
        if len(claim_signature) != 64 or claim_signature[:32] != self.presignature.nonce_point.xonly():
            raise FairnessViolationError("Claim signature does not use the presignature's nonce")

        completed_s = int.from_bytes(claim_signature[32:], 'big')
        secret = self.engine.extract_secret(self.presignature, completed_s, self.commitment.adaptor_point)
        logger.info(f"[{self.role.value} {self.swap_id}] Claim audit passed")
        return secret


class BuyerSession(SwapSession):
    """
    Buyer side: holds the bitcoin key, locks funds and claims them once the
    Seller's signature is revealed.

    Example:
        >>> buyer = BuyerSession(terms, x_b, chain)
        >>> await buyer.receive_commitment(commitment)
        >>> await buyer.lock()
        >>> presig = await buyer.presign()
        >>> result = await buyer.receive_reveal(reveal)
    """

    role = Role.BUYER

    def __init__(
        self,
        terms: SwapTerms,
        private_key: int,
        chain: TransactionCollaborator,
        config: Optional[SwapConfig] = None,
        event_bus: Optional[EventBus] = None,
        engine: Optional[AdaptorSignatureEngine] = None
    ):
        super().__init__(terms, private_key, chain, config, event_bus, engine)
        self.commitment: Optional[Commitment] = None
        self.output: Optional[TaprootOutput] = None
        self.outpoint: Optional[Outpoint] = None
        self.claim_tx: Optional[Transaction] = None
        self.sighash: Optional[bytes] = None
        self.presignature: Optional[AdaptorSignature] = None
        self.claim_result: Optional[ClaimResult] = None
        self._pending_reveal: Optional[Reveal] = None

    def _discard_secrets(self) -> None:
        super()._discard_secrets()
        if self.claim_result is None:
            # a witnessed claim must not outlive a failed session
            self.claim_tx = None

    @property
    def locked_amount(self) -> int:
        """Value of the funded output, as reported by the collaborator."""
        if self.outpoint is not None and self.outpoint.value is not None:
            return self.outpoint.value
        return self.terms.amount

    @property
    def pubkey_compressed(self) -> bytes:
        """Compressed public key the Seller derives the locked output from."""
        return self.point.compressed()

    @property
    def is_broadcast(self) -> bool:
        return self.claim_result is not None

    async def receive_commitment(self, commitment: Commitment) -> None:
        """
        Accept the Seller's commitment.

        A duplicate of the accepted commitment is ignored; a different one
        fails the session.

        Raises:
            InvalidPointError: If T is the identity
            VerificationFailure: If the commitment does not bind T to the agreed message
        """
        if self.commitment is not None and commitment == self.commitment:
            return

        async with self._step("receive commitment"):
            if self.commitment is not None:
                raise VerificationFailure("Conflicting commitment for an already committed swap")
            self._require(SwapState.INIT)
            self._check_swap_id(commitment.swap_id, "Commitment")

            if commitment.adaptor_point.is_infinity:
                raise InvalidPointError("Adaptor point must not be the point at infinity")
            self._check_message(commitment)

            # T = s*G for a valid signature (R, s) iff T == R + e*P_s
            if commitment.nonce_point.is_infinity or not commitment.nonce_point.has_even_y():
                raise VerificationFailure("Commitment nonce must have even Y")
            seller_point = lift_x(commitment.seller_pubkey)
            e = challenge(commitment.nonce_point.xonly(), commitment.seller_pubkey, commitment.message)
            if commitment.adaptor_point != commitment.nonce_point + seller_point * e:
                raise VerificationFailure("Adaptor point is not bound to the Seller's signature")

            self.commitment = commitment
            await self._transition(SwapState.COMMITTED)

    def _check_message(self, commitment: Commitment) -> None:
        event = commitment.event
        if event is None:
            if commitment.message != self.terms.content.encode('utf-8'):
                raise VerificationFailure("Committed message is not the agreed content")
            return
        if event.content != self.terms.content:
            raise VerificationFailure("Committed event content is not the agreed content")
        if event.pubkey != commitment.seller_pubkey.hex():
            raise VerificationFailure("Committed event is not authored by the Seller's key")
        if message_for_event(event) != commitment.message:
            raise VerificationFailure("Committed message is not the event id")

    async def lock(self) -> Outpoint:
        """
        Derive the locked output, request funding and wait for it.

        Raises:
            SwapExpiredError: If funding does not confirm within funding_timeout
            ExternalCollaboratorError: If the collaborator fails
        """
        async with self._step("lock"):
            self._require(SwapState.COMMITTED)
            self.output = locked_output(self.point, self.commitment.adaptor_point)
            script = self.output.output_script

            await self._emit(create_funding_requested_event(
                self.role.value, self.swap_id, script.hex(), self.terms.amount
            ))
            await self._call(
                self.chain.request_funding(script, self.terms.amount),
                self.config.broadcast_timeout,
                "funding request"
            )
            self.outpoint = await self._call(
                self.chain.wait_for_funding(script, self.terms.amount),
                self.config.funding_timeout,
                "swap output funding"
            )
            await self._transition(SwapState.LOCKED)
            await self._emit(Event(
                EventType.FUNDING_CONFIRMED,
                {'swap_id': self.swap_id, 'outpoint': str(self.outpoint)},
                source=self.role.value
            ))
            return self.outpoint

    def _claim_script(self) -> bytes:
        if self.config.claim_script is not None:
            return self.config.claim_script
        return derive_output(self.point).output_script

    async def presign(self) -> AdaptorSignature:
        """
        Build the claim transaction and create an adaptor signature over its
        sighash for T, using the locked output's effective key.

        The claim spends the value actually funded, which may exceed the
        agreed amount.

        A reveal buffered earlier is applied right after.
        """
        if self.state in (SwapState.PRESIGNED, SwapState.COMPLETED):
            return self.presignature

        async with self._step("presign"):
            self._require(SwapState.LOCKED)

            try:
                locked_amount = self.locked_amount
                self.claim_tx = self.chain.build_output(
                    self._claim_script(),
                    locked_amount - self.config.claim_fee,
                    self.outpoint
                )
                self.sighash = self.chain.sighash(
                    self.claim_tx, 0, [self.output.output_script], [locked_amount]
                )
            except TanosError:
                raise
            except Exception as e:
                raise ExternalCollaboratorError(f"Building claim transaction failed: {e}") from e

            x_eff = effective_scalar(self._signing_key(), self.output)
            self.presignature = self.engine.create(x_eff, self.commitment.adaptor_point, self.sighash)

            await self._transition(SwapState.PRESIGNED)
            await self._emit(Event(
                EventType.PRESIGNATURE_CREATED,
                {'swap_id': self.swap_id, 'presignature': self.presignature.serialize().hex()},
                source=self.role.value
            ))

            if self._pending_reveal is not None:
                reveal, self._pending_reveal = self._pending_reveal, None
                logger.debug(f"[{self.role.value} {self.swap_id}] Applying buffered reveal")
                await self._apply_reveal(reveal)

            return self.presignature

    async def receive_reveal(self, reveal: Reveal) -> Optional[ClaimResult]:
        """
        Handle the Seller's revealed signature.

        Before PRESIGNED the reveal is buffered; after completion it is a
        no-op. Otherwise the secret is checked, the presignature completed
        and the claim broadcast.

        Returns:
            ClaimResult once broadcast, None if the reveal was buffered

        Raises:
            FairnessViolationError: If s*G != T (nothing is broadcast)
            VerificationFailure: If the signature does not verify over the message
        """
        if reveal.swap_id != self.swap_id:
            logger.warning(f"Ignoring reveal for swap {reveal.swap_id}")
            return None
        if self.state == SwapState.COMPLETED:
            return self.claim_result
        if self.state in (SwapState.INIT, SwapState.COMMITTED, SwapState.LOCKED):
            self._pending_reveal = reveal
            logger.debug(f"[{self.role.value} {self.swap_id}] Buffered reveal in state {self.state.name}")
            return None

        async with self._step("receive reveal"):
            if self.state == SwapState.COMPLETED:
                return self.claim_result
            self._require(SwapState.PRESIGNED)
            await self._apply_reveal(reveal)
            return self.claim_result

    async def await_reveal(self, reveal_source: Awaitable[Reveal]) -> Optional[ClaimResult]:
        """
        Wait for the reveal from `reveal_source` within reveal_timeout, then
        handle it as receive_reveal() does.

        The wait does not hold the session lock, so a reveal pushed through
        receive_reveal() in the meantime completes the session and ends it.

        Raises:
            SwapExpiredError: If no reveal arrives within reveal_timeout
        """
        if self.state == SwapState.COMPLETED:
            return self.claim_result
        self._require(SwapState.PRESIGNED)

        source = asyncio.ensure_future(reveal_source)
        settled = asyncio.ensure_future(self._settled.wait())
        try:
            done, _ = await asyncio.wait(
                {source, settled},
                timeout=self.config.reveal_timeout,
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            source.cancel()
            settled.cancel()

        if self.state == SwapState.COMPLETED:
            return self.claim_result

        if source in done:
            async with self._step("await reveal"):
                reveal = await self._call(source, None, "Seller reveal")
            return await self.receive_reveal(reveal)

        if not done:
            async with self._lock:
                if self.state == SwapState.PRESIGNED:
                    error = SwapExpiredError(
                        f"Timed out after {self.config.reveal_timeout}s waiting for Seller reveal"
                    )
                    await self._fail(error)
                    raise error
            if self.state == SwapState.COMPLETED:
                return self.claim_result

        raise SwapStateError(f"Cannot await reveal: {self.role.value} session is {self.state.name}")

    async def _apply_reveal(self, reveal: Reveal) -> None:
        commitment = self.commitment
        if len(reveal.signature) != 64:
            raise VerificationFailure(f"Revealed signature must be 64 bytes, got {len(reveal.signature)}")

        secret = reveal.s
        if point_from_scalar(secret) != commitment.adaptor_point:
            raise FairnessViolationError("Revealed secret does not match the committed adaptor point")
        if not verify_schnorr(commitment.seller_pubkey, commitment.message, reveal.signature):
            raise VerificationFailure("Revealed signature does not verify over the agreed message")

        completed_s = self.engine.complete(self.presignature, secret)
        claim_signature = self.engine.finalize(self.presignature.nonce_point, completed_s)
        if not verify_schnorr(self.output.tweaked_key, self.sighash, claim_signature):
            raise VerificationFailure("Completed claim signature does not verify under the output key")

        self.chain.set_witness(self.claim_tx, 0, [claim_signature])
        tx_hex, _ = serialize_transaction(self.claim_tx)
        txid = await self._call(
            self.chain.broadcast(self.claim_tx),
            self.config.broadcast_timeout,
            "claim broadcast"
        )

        self.claim_result = ClaimResult(txid=txid, tx_hex=tx_hex, signature=claim_signature)
        self._discard_secrets()
        await self._emit(create_claim_broadcast_event(self.role.value, self.swap_id, txid))
        await self._transition(SwapState.COMPLETED)
