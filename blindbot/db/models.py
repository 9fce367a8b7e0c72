from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from blindbot.db.database import Base
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


class Tenant(Base):
    """
    A business customer of the platform.

    Mutated by the billing webhook (status, credit resets), the visualization
    gate (credit decrements) and the persona/catalog enrichment tasks.
    """
    __tablename__ = "tenants"

    id = Column(String, primary_key=True, default=_uuid)
    api_key = Column(String, unique=True, index=True, nullable=False)
    company_name = Column(String, nullable=False)
    email = Column(String, index=True, nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active, inactive, suspended

    # Persona inputs and output
    bot_persona = Column(Text, nullable=True)  # Generated persona document; null until the persona task runs
    training_pdf = Column(String, nullable=True)
    sales_prompt_override = Column(Text, nullable=True)  # Owner instructions, win over the training document

    # Credits and billing
    image_credits = Column(Integer, nullable=False, default=0)
    auto_replenish = Column(Boolean, nullable=False, default=False)
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    # Widget branding
    logo_url = Column(String, nullable=True)
    primary_color = Column(String(20), nullable=True)
    bot_title = Column(String, nullable=True)
    website_url = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    products = relationship(
        "Product", back_populates="tenant", order_by="Product.position", cascade="all, delete-orphan"
    )
    leads = relationship("Lead", back_populates="tenant")

    __table_args__ = (
        CheckConstraint("image_credits >= 0", name="ck_tenant_credits_non_negative"),
    )

    def is_active(self) -> bool:
        return self.status == "active"


class Product(Base):
    """Catalog entry shown to customers and used as a render style source"""
    __tablename__ = "product_gallery"

    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    ai_description = Column(Text, nullable=True)  # Filled by the product enrichment task
    image_url = Column(String, nullable=True)
    product_file_url = Column(String, nullable=True)  # Spec sheet / brochure PDF
    gallery_urls = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tenant = relationship("Tenant", back_populates="products")

    __table_args__ = (
        Index('idx_product_tenant_position', 'tenant_id', 'position'),
    )

    def render_description(self) -> str:
        """Best available textual description for prompts"""
        return (self.ai_description or self.description or self.name or "").strip()


class KnowledgeDocument(Base):
    """Tenant-scoped grounding snippet with its embedding"""
    __tablename__ = "knowledge_documents"

    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    source = Column(String, nullable=True)  # e.g. "faq", "website", "training_pdf"
    embedding = Column(JSON(none_as_null=True), nullable=True)  # List[float]; null until the embedding task runs
    embedding_model = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_knowledge_tenant', 'tenant_id'),
    )


class Lead(Base):
    """
    Prospective customer captured by the chat widget.

    Keyed by phone, then email, within a tenant. Scalar fields are merge-only
    and the two image lists are append-only.
    """
    __tablename__ = "leads"

    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_address = Column(Text, nullable=True)

    project_summary = Column(Text, nullable=True)
    appointment_request = Column(String, nullable=True)
    preferred_method = Column(String(20), nullable=True)  # phone, email, text
    quality_score = Column(Integer, nullable=True)  # 1-10
    ai_summary = Column(Text, nullable=True)

    customer_images = Column(JSON, nullable=False, default=list)
    ai_renderings = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    tenant = relationship("Tenant", back_populates="leads")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'customer_phone', name='uq_lead_tenant_phone'),
        Index('idx_lead_tenant_email', 'tenant_id', 'customer_email'),
        Index('idx_lead_tenant_created', 'tenant_id', 'created_at'),
    )


class CreditTransaction(Base):
    """One row per credit deduction"""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False, default="render")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        Index('idx_credit_tx_tenant_created', 'tenant_id', 'created_at'),
    )
