"""
Command-line interface frontend for TANOS swaps.

This module implements the FrontendInterface for terminal-based interaction,
handling all print() and prompt operations with proper formatting.
"""

import sys

import questionary

from .base import FrontendInterface
from ..core.constants import SATS_PER_BTC
from ..core.models import ClaimResult, Commitment, SwapTerms


def format_btc(satoshis: int) -> str:
    """Format satoshis as BTC."""
    return f"{satoshis / SATS_PER_BTC:.8f} BTC"


class CLIFrontend(FrontendInterface):
    """
    Command-line interface frontend implementation.

    Provides terminal output for each protocol step and an interactive
    confirmation before funds are locked.
    """

    def __init__(self, quiet: bool = False, assume_yes: bool = False):
        """
        Initialize CLI frontend.

        Args:
            quiet: If True, suppress non-essential output (e.g., state changes)
            assume_yes: If True, skip interactive confirmations
        """
        self.quiet = quiet
        self.assume_yes = assume_yes

    # ========================================================================
    # Setup Display Methods
    # ========================================================================

    def show_swap_terms(self, terms: SwapTerms, network_name: str):
        print("\n=== TANOS: Taproot Adaptor signatures for Nostr-Originated Swaps ===\n")
        print(f"Network: {network_name}")
        print(f"Swap ID: {terms.swap_id}")
        print(f"Amount:  {format_btc(terms.amount)} ({terms.amount:,} sats)")
        print(f"Message: \"{terms.content}\"")

    def show_connection_info(self, host: str, port: int, protocol: str):
        print(f"Connecting to Electrum server {host}:{port} ({protocol})")

    def show_party_keys(self, role: str, pubkey_hex: str, wif: str):
        if not self.quiet:
            print(f"\n{role.capitalize()} public key: {pubkey_hex}")
            print(f"{role.capitalize()} private key (WIF): {wif}")

    # ========================================================================
    # Progress Display Methods
    # ========================================================================

    def show_state_change(self, role: str, old_state: str, new_state: str):
        if not self.quiet:
            print(f"  [{role}] {old_state} -> {new_state}")

    def show_commitment(self, commitment: Commitment):
        print("\n" + "=" * 70)
        print("SELLER COMMITMENT:")
        print("=" * 70)
        print(f"Adaptor point T: {commitment.adaptor_point.compressed().hex()}")
        print(f"Nonce R:         {commitment.nonce_point.xonly().hex()}")
        if commitment.event is not None:
            print(f"Nostr event id:  {commitment.event.id}")

    def show_funding_request(self, address: str, amount: int):
        print(f"\nLocking {amount:,} sats to {address}")

    def show_funding_confirmed(self, outpoint: str):
        print(f"Swap output funded: {outpoint}")

    def show_presignature(self, presignature_hex: str):
        if not self.quiet:
            print(f"\nBuyer adaptor signature: {presignature_hex[:64]}...")

    def show_reveal(self, signature_hex: str, event_id: str = None):
        print("\n" + "=" * 70)
        print("SELLER REVEAL:")
        print("=" * 70)
        print(f"Signature: {signature_hex}")
        if event_id:
            print(f"Signed Nostr event: {event_id}")

    def show_claim(self, result: ClaimResult):
        print("\n" + "=" * 70)
        print("CLAIM TRANSACTION:")
        print("=" * 70)
        print(f"TXID: {result.txid}")
        print(result.tx_hex)

    def show_audit_result(self, passed: bool):
        if passed:
            print("\nClaim audit: the claim signature reveals the committed secret")
        else:
            print("\nClaim audit: FAILED", file=sys.stderr)

    # ========================================================================
    # Interactive Methods
    # ========================================================================

    async def prompt_confirm_lock(self, address: str, amount: int) -> bool:
        if self.assume_yes:
            return True

        confirm = await questionary.confirm(
            f"Lock {format_btc(amount)} to {address}?",
            default=True
        ).ask_async()

        # None means the user aborted (Ctrl+C)
        return bool(confirm)

    # ========================================================================
    # Error Display Methods
    # ========================================================================

    def show_error(self, message: str):
        print(f"ERROR: {message}", file=sys.stderr)

    def show_warning(self, message: str):
        print(f"WARNING: {message}")
