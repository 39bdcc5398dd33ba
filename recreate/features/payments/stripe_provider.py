"""
Stripe payment provider implementation.

Implements PaymentProvider with one-off Checkout Sessions (mode=payment).
"""
from typing import Dict, Optional

import stripe

from recreate.features.payments.provider import PaymentProviderError

DEFAULT_LINE_ITEM_NAME = "ReCreate request"


class StripeProvider:
    """Stripe implementation of PaymentProvider protocol."""

    def __init__(self, secret_key: Optional[str], timeout: float = 10.0):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (STRIPE_SECRET_KEY)
            timeout: HTTP timeout for Stripe API calls, in seconds
        """
        if not secret_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY not configured")
        self.client = stripe.StripeClient(
            secret_key,
            http_client=stripe.RequestsClient(timeout=timeout),
        )

    def create_checkout_url(
        self,
        amount: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create Stripe checkout session."""
        if amount <= 0:
            raise PaymentProviderError("Checkout amount must be positive")
        try:
            session = self.client.checkout.sessions.create(
                params={
                    "mode": "payment",
                    "payment_method_types": ["card"],
                    "line_items": [
                        {
                            "quantity": 1,
                            "price_data": {
                                "currency": currency,
                                "unit_amount": amount,
                                "product_data": {"name": description or DEFAULT_LINE_ITEM_NAME},
                            },
                        }
                    ],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": metadata or {},
                }
            )
        except stripe.StripeError as e:
            raise PaymentProviderError(f"Stripe checkout session creation failed: {e}")
        if not session.url:
            raise PaymentProviderError("Stripe checkout session has no URL")
        return session.url
