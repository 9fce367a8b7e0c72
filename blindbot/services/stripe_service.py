"""
Stripe auto-refill collaborator

Charges a tenant for a credit pack when their balance runs low. Crediting
the balance afterwards is handled by the billing webhook, not here.
"""
import logging
from typing import Optional

import stripe

from blindbot.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class StripeError(Exception):
    """Base exception for Stripe operations"""
    pass


class StripeRefillError(StripeError):
    """Auto-refill charge could not be completed"""
    pass


class StripeService:
    """Stripe calls needed by the credit ledger"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.credits_price_id = self.settings.stripe_credits_price_id

        stripe.api_key = self.settings.stripe_secret_key
        if not stripe.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured - auto-refill will be disabled")
            self.enabled = False
        else:
            self.enabled = True

    def is_enabled(self) -> bool:
        return self.enabled

    def charge_credit_pack(self, stripe_customer_id: str) -> str:
        """
        Invoice and immediately charge one credit pack.

        Args:
            stripe_customer_id: Stripe customer to charge

        Returns:
            Paid invoice ID

        Raises:
            StripeRefillError: Stripe is not configured or any API call fails
        """
        if not self.is_enabled():
            raise StripeRefillError("Stripe is not configured")
        if not stripe_customer_id:
            raise StripeRefillError("No Stripe customer ID")

        try:
            stripe.InvoiceItem.create(customer=stripe_customer_id, price=self.credits_price_id)
            invoice = stripe.Invoice.create(
                customer=stripe_customer_id,
                auto_advance=True,
                collection_method="charge_automatically"
            )
            # Without an explicit pay the invoice can sit for up to an hour
            stripe.Invoice.pay(invoice.id)
        except stripe.StripeError as e:
            logger.error(f"Auto-refill failed for customer {stripe_customer_id}: {e}")
            raise StripeRefillError(f"Failed to charge credit pack: {e}") from e

        logger.info(f"Auto-refill invoice {invoice.id} paid for customer {stripe_customer_id}")
        return invoice.id


def get_stripe_service() -> StripeService:
    """Factory function to get Stripe service instance"""
    return StripeService()
