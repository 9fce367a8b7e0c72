"""
Billing tasks

trigger_auto_refill is queued by the credit ledger when a tenant's balance
runs low. The balance itself is topped up later by the billing webhook once
Stripe reports the invoice as paid.
"""

from typing import Any, Dict

from celery import shared_task
from celery.utils.log import get_task_logger

from blindbot.services.stripe_service import StripeRefillError, get_stripe_service

logger = get_task_logger(__name__)


@shared_task(name="trigger_auto_refill")
def trigger_auto_refill(stripe_customer_id: str) -> Dict[str, Any]:
    """
    Charge one credit pack to the tenant's saved payment method.

    Failures are logged and reported in the result; they are not retried
    because a retry could double-charge.
    """
    if not stripe_customer_id:
        return {"status": "skipped", "reason": "missing_customer"}

    logger.info(f"Triggering auto-refill for {stripe_customer_id}")
    try:
        invoice_id = get_stripe_service().charge_credit_pack(stripe_customer_id)
    except StripeRefillError as e:
        logger.error(f"Auto-refill failed for {stripe_customer_id}: {e}")
        return {"status": "failed", "customer": stripe_customer_id, "error": str(e)}

    return {"status": "paid", "customer": stripe_customer_id, "invoice_id": invoice_id}
