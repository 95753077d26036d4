"""
Abstract base class defining the frontend interface for TANOS swaps.

This module provides a contract that all frontend implementations must follow,
enabling support for different UI types (CLI, GUI, Web, etc.).
"""

from abc import ABC, abstractmethod

from ..core.models import ClaimResult, Commitment, SwapTerms


class FrontendInterface(ABC):
    """
    Abstract base class defining the contract for all frontend implementations.

    Frontend implementations handle all user interactions including:
    - Swap terms and key display
    - Progress display as sessions change state
    - Confirmation before funds are locked
    - Results presentation
    """

    # ========================================================================
    # Setup Display Methods
    # ========================================================================

    @abstractmethod
    def show_swap_terms(self, terms: SwapTerms, network_name: str):
        """Display the agreed swap terms and network."""
        pass

    @abstractmethod
    def show_connection_info(self, host: str, port: int, protocol: str):
        """Display the Electrum server being used."""
        pass

    @abstractmethod
    def show_party_keys(self, role: str, pubkey_hex: str, wif: str):
        """
        Display a party's demo keys.

        Args:
            role: 'seller' or 'buyer'
            pubkey_hex: x-only public key
            wif: Private key in WIF (demo keys only)
        """
        pass

    # ========================================================================
    # Progress Display Methods
    # ========================================================================

    @abstractmethod
    def show_state_change(self, role: str, old_state: str, new_state: str):
        """Display a session state transition."""
        pass

    @abstractmethod
    def show_commitment(self, commitment: Commitment):
        """Display the Seller's published commitment."""
        pass

    @abstractmethod
    def show_funding_request(self, address: str, amount: int):
        """Display where the Buyer's funds are being locked."""
        pass

    @abstractmethod
    def show_funding_confirmed(self, outpoint: str):
        """Display the funded swap output."""
        pass

    @abstractmethod
    def show_presignature(self, presignature_hex: str):
        """Display the Buyer's adaptor signature."""
        pass

    @abstractmethod
    def show_reveal(self, signature_hex: str, event_id: str = None):
        """Display the Seller's revealed signature."""
        pass

    @abstractmethod
    def show_claim(self, result: ClaimResult):
        """Display the broadcast claim transaction."""
        pass

    @abstractmethod
    def show_audit_result(self, passed: bool):
        """Display the Seller's claim audit outcome."""
        pass

    # ========================================================================
    # Interactive Methods
    # ========================================================================

    @abstractmethod
    async def prompt_confirm_lock(self, address: str, amount: int) -> bool:
        """
        Ask the user to confirm locking funds.

        Returns:
            True to proceed, False to cancel the swap
        """
        pass

    # ========================================================================
    # Error Display Methods
    # ========================================================================

    @abstractmethod
    def show_error(self, message: str):
        """Display error message."""
        pass

    @abstractmethod
    def show_warning(self, message: str):
        """Display warning message."""
        pass
