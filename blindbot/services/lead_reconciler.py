"""
Lead Reconciler

Finds or creates the lead for a chat turn and merges what the turn learned
into it. Lookup is by phone first, then email, within the tenant. Scalar
fields never lose a stored value to a missing one, and the two image lists
only ever grow (deduplicated, in insertion order).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from prometheus_client import Counter
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from blindbot.db.models import Lead
from blindbot.schemas.envelope import LeadData

logger = logging.getLogger(__name__)

LEAD_RECONCILIATIONS = Counter(
    'lead_reconciliations_total',
    'Lead reconciliation results',
    ['result']
)

# LeadFields attribute -> Lead column
SCALAR_FIELDS = {
    "name": "customer_name",
    "phone": "customer_phone",
    "email": "customer_email",
    "address": "customer_address",
    "project_summary": "project_summary",
    "appointment_request": "appointment_request",
    "preferred_method": "preferred_method",
    "quality_score": "quality_score",
    "ai_summary": "ai_summary",
}


@dataclass
class LeadFields:
    """Everything one turn contributes to a lead"""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    project_summary: Optional[str] = None
    appointment_request: Optional[str] = None
    preferred_method: Optional[str] = None
    quality_score: Optional[int] = None
    ai_summary: Optional[str] = None
    new_customer_image: Optional[str] = None
    new_ai_rendering: Optional[str] = None

    @classmethod
    def from_lead_data(
        cls,
        lead_data: LeadData,
        new_customer_image: Optional[str] = None,
        new_ai_rendering: Optional[str] = None
    ) -> "LeadFields":
        return cls(
            name=lead_data.name,
            phone=lead_data.phone,
            email=lead_data.email,
            address=lead_data.address,
            project_summary=lead_data.project_summary,
            appointment_request=lead_data.appointment_request,
            preferred_method=lead_data.preferred_method,
            quality_score=lead_data.quality_score,
            ai_summary=lead_data.ai_summary,
            new_customer_image=new_customer_image,
            new_ai_rendering=new_ai_rendering,
        )

    def is_worth_persisting(self) -> bool:
        return bool(self.name or self.phone or self.email or self.new_customer_image)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def merge_scalar(incoming: Any, existing: Any) -> Any:
    """incoming wins only when it carries a value"""
    if _present(incoming):
        return incoming
    if _present(existing):
        return existing
    return None


def append_unique(existing: Optional[Iterable[str]], *new_urls: Optional[str]) -> List[str]:
    """Existing order kept, new URLs appended once"""
    result: List[str] = []
    for url in list(existing or []) + list(new_urls):
        if url and url not in result:
            result.append(url)
    return result


class LeadReconciler:
    """Tenant-scoped lead upsert for the chat turn path"""

    def __init__(self, db: Session):
        self.db = db

    def find_existing(self, tenant_id: str, phone: Optional[str], email: Optional[str]) -> Optional[Lead]:
        """Phone match first, then email; the row is locked where the database supports it"""
        if _present(phone):
            lead = (
                self.db.query(Lead)
                .filter(Lead.tenant_id == tenant_id, Lead.customer_phone == phone.strip())
                .with_for_update()
                .first()
            )
            if lead:
                return lead

        if _present(email):
            lead = (
                self.db.query(Lead)
                .filter(Lead.tenant_id == tenant_id, func.lower(Lead.customer_email) == email.strip().lower())
                .order_by(Lead.created_at.asc())
                .with_for_update()
                .first()
            )
            if lead:
                return lead

        return None

    def merged_values(self, incoming: LeadFields, existing: Optional[Lead]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for field_name, column in SCALAR_FIELDS.items():
            current = getattr(existing, column) if existing is not None else None
            new_value = getattr(incoming, field_name)
            if isinstance(new_value, str):
                new_value = new_value.strip()
            values[column] = merge_scalar(new_value, current)

        values["customer_images"] = append_unique(
            existing.customer_images if existing is not None else [],
            incoming.new_customer_image
        )
        values["ai_renderings"] = append_unique(
            existing.ai_renderings if existing is not None else [],
            incoming.new_ai_rendering
        )
        return values

    def _apply(self, tenant_id: str, incoming: LeadFields) -> Lead:
        existing = self.find_existing(tenant_id, incoming.phone, incoming.email)
        values = self.merged_values(incoming, existing)

        if existing is not None:
            for column, value in values.items():
                if getattr(existing, column) != value:
                    setattr(existing, column, value)
            self.db.commit()
            LEAD_RECONCILIATIONS.labels(result='updated').inc()
            logger.info(f"Lead {existing.id} updated for tenant {tenant_id}")
            return existing

        lead = Lead(tenant_id=tenant_id, **values)
        self.db.add(lead)
        self.db.commit()
        LEAD_RECONCILIATIONS.labels(result='created').inc()
        logger.info(f"Lead {lead.id} created for tenant {tenant_id}")
        return lead

    def reconcile(self, tenant_id: str, incoming: LeadFields) -> Optional[Lead]:
        """
        Upsert the lead this turn refers to.

        Args:
            tenant_id: Owning tenant
            incoming: Fields extracted this turn plus any new image/render URL

        Returns:
            The persisted lead, or None when the turn carried nothing worth keeping
        """
        if not incoming.is_worth_persisting():
            LEAD_RECONCILIATIONS.labels(result='skipped').inc()
            return None

        try:
            return self._apply(tenant_id, incoming)
        except IntegrityError as e:
            # Another request inserted the same phone first; merge into that row
            self.db.rollback()
            logger.warning(f"Concurrent lead insert for tenant {tenant_id}, retrying merge: {e.orig}")
            LEAD_RECONCILIATIONS.labels(result='retried').inc()
            try:
                return self._apply(tenant_id, incoming)
            except SQLAlchemyError:
                self.db.rollback()
                raise
        except SQLAlchemyError as e:
            logger.error(f"Lead reconciliation failed for tenant {tenant_id}: {e}")
            self.db.rollback()
            raise
