"""
Credit Ledger for render gating

Resolves tenants by API key, decides chat access and performs the atomic
credit decrement that pays for each render. A low post-decrement balance
queues an auto-refill for tenants that opted in.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from prometheus_client import Counter
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blindbot.core.config import get_settings
from blindbot.db.models import CreditTransaction, Tenant

logger = logging.getLogger(__name__)

CREDIT_DEDUCTIONS = Counter(
    'credit_deductions_total',
    'Render credit deduction attempts',
    ['result']
)

AUTO_REFILL_TRIGGERS = Counter(
    'credit_auto_refill_triggers_total',
    'Auto-refill requests queued for low balances',
    ['status']
)


@dataclass
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None


def _enqueue_auto_refill(stripe_customer_id: str) -> Any:
    from blindbot.tasks.celery_app import celery_app  # noqa: F401  configures the broker
    from blindbot.tasks.billing_tasks import trigger_auto_refill
    return trigger_auto_refill.delay(stripe_customer_id)


class CreditLedger:
    """
    Per-tenant credit balance operations.

    Tenant state is always read fresh from the database; nothing is cached
    between requests.
    """

    def __init__(
        self,
        db: Session,
        refill_trigger: Optional[Callable[[str], Any]] = None,
        low_balance_threshold: Optional[int] = None
    ):
        self.db = db
        self.refill_trigger = refill_trigger or _enqueue_auto_refill
        self.low_balance_threshold = (
            low_balance_threshold if low_balance_threshold is not None
            else get_settings().low_balance_threshold
        )

    def get_tenant(self, api_key: Optional[str]) -> Optional[Tenant]:
        if not api_key:
            return None
        return self.db.query(Tenant).filter(Tenant.api_key == api_key).first()

    def check_access(self, tenant: Optional[Tenant]) -> AccessDecision:
        """Chat access requires a known, active tenant. Credits are not checked here."""
        if tenant is None:
            return AccessDecision(allowed=False, reason="unknown_api_key")
        if not tenant.is_active():
            return AccessDecision(allowed=False, reason=f"tenant_{tenant.status}")
        return AccessDecision(allowed=True)

    def try_deduct(self, tenant_id: str, reason: str = "render") -> bool:
        """
        Take one credit if the balance is positive.

        The decrement is a single conditional UPDATE, so two concurrent
        renders for the same tenant can never drive the balance below zero.

        Args:
            tenant_id: Tenant to charge
            reason: Label stored on the credit transaction

        Returns:
            True if a credit was taken, False if the balance was exhausted
        """
        stmt = (
            update(Tenant)
            .where(Tenant.id == tenant_id, Tenant.image_credits > 0)
            .values(image_credits=Tenant.image_credits - 1)
            .returning(Tenant.image_credits, Tenant.auto_replenish, Tenant.stripe_customer_id)
            .execution_options(synchronize_session=False)
        )

        try:
            row = self.db.execute(stmt).first()
            if row is None:
                self.db.rollback()
                CREDIT_DEDUCTIONS.labels(result='exhausted').inc()
                logger.info(f"Credit deduction denied for tenant {tenant_id}: balance exhausted")
                return False

            balance_after, auto_replenish, stripe_customer_id = row
            self.db.add(CreditTransaction(
                tenant_id=tenant_id,
                delta=-1,
                balance_after=balance_after,
                reason=reason
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Credit deduction failed for tenant {tenant_id}: {e}")
            self.db.rollback()
            raise

        CREDIT_DEDUCTIONS.labels(result='deducted').inc()
        logger.info(f"Credit deducted for tenant {tenant_id}, balance now {balance_after}")

        self._maybe_trigger_refill(tenant_id, balance_after, auto_replenish, stripe_customer_id)
        return True

    def _maybe_trigger_refill(
        self,
        tenant_id: str,
        balance_after: int,
        auto_replenish: bool,
        stripe_customer_id: Optional[str]
    ) -> None:
        if balance_after > self.low_balance_threshold:
            return
        if not auto_replenish or not stripe_customer_id:
            return

        try:
            self.refill_trigger(stripe_customer_id)
            AUTO_REFILL_TRIGGERS.labels(status='queued').inc()
            logger.info(
                f"Low balance ({balance_after}) for tenant {tenant_id}, auto-refill queued"
            )
        except Exception as e:
            AUTO_REFILL_TRIGGERS.labels(status='failed').inc()
            logger.error(f"Failed to queue auto-refill for tenant {tenant_id}: {e}")
