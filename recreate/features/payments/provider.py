"""
Payment provider protocol.

ReCreate never moves money itself: a provider only hands the requester a
hosted checkout page. Marking a work as paid stays a manual confirmation.
"""
from typing import Protocol, Dict, Optional


class PaymentProvider(Protocol):
    """Protocol for payment providers (Stripe, etc.)."""

    def create_checkout_url(
        self,
        amount: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Create a one-off checkout page for `amount` (minor units of `currency`).

        Args:
            amount: Charge amount in the currency's minor unit
            currency: ISO currency code, lowercase
            description: Line item name shown to the payer
            success_url: URL to redirect on success
            cancel_url: URL to redirect on cancellation
            metadata: Optional metadata to attach

        Returns:
            Checkout URL

        Raises:
            PaymentProviderError: If session creation fails
        """
        ...


class PaymentProviderError(Exception):
    """Base exception for payment provider errors."""
    pass
