"""
Background enrichment tasks

Each task polls for rows whose generated field is still NULL and fills it.
Writes are conditional (``WHERE field IS NULL``), so overlapping or repeated
runs over the same row are harmless and never overwrite a value written by
another run.

Handles:
- Tenant personas from owner instructions and training documents
- Product AI descriptions from product images and spec documents
- Knowledge document embeddings
"""

from typing import Any, Callable, Dict, Optional

from celery import shared_task
from celery.utils.log import get_task_logger
from sqlalchemy import or_
from sqlalchemy.orm import Session

from blindbot.core.config import get_settings
from blindbot.db.models import KnowledgeDocument, Product, Tenant
from blindbot.services.document_text import fetch_document_text
from blindbot.services.llm_service import LLMService, get_llm_service
from blindbot.tasks.db_session_manager import get_celery_db_session

logger = get_task_logger(__name__)
settings = get_settings()


def _fill_if_null(db: Session, model, row_id: str, column, value: Any) -> bool:
    """Write value only if the column is still NULL. Returns True if this call wrote it."""
    updated = (
        db.query(model)
        .filter(model.id == row_id, column.is_(None))
        .update({column: value}, synchronize_session=False)
    )
    db.commit()
    return updated > 0


def run_persona_generation(
    db: Session,
    llm: LLMService,
    fetch_text: Callable[[Optional[str]], Optional[str]] = fetch_document_text,
    batch_size: Optional[int] = None
) -> Dict[str, Any]:
    tenants = (
        db.query(Tenant)
        .filter(
            Tenant.bot_persona.is_(None),
            or_(Tenant.training_pdf.isnot(None), Tenant.sales_prompt_override.isnot(None))
        )
        .limit(batch_size or settings.enrichment_batch_size)
        .all()
    )

    results = {"found": len(tenants), "generated": 0, "skipped": 0, "failed": 0}
    for tenant in tenants:
        tenant_id = tenant.id
        try:
            document_text = fetch_text(tenant.training_pdf) if tenant.training_pdf else None
            persona = llm.generate_persona(tenant.company_name, tenant.sales_prompt_override, document_text)
            if not persona:
                results["failed"] += 1
                continue
            if _fill_if_null(db, Tenant, tenant_id, Tenant.bot_persona, persona):
                results["generated"] += 1
                logger.info(f"Persona saved for tenant {tenant_id}")
            else:
                results["skipped"] += 1
        except Exception as e:
            db.rollback()
            results["failed"] += 1
            logger.error(f"Persona generation failed for tenant {tenant_id}: {e}")

    return results


def run_product_enrichment(
    db: Session,
    llm: LLMService,
    fetch_text: Callable[[Optional[str]], Optional[str]] = fetch_document_text,
    batch_size: Optional[int] = None
) -> Dict[str, Any]:
    products = (
        db.query(Product)
        .filter(
            Product.ai_description.is_(None),
            or_(Product.image_url.isnot(None), Product.product_file_url.isnot(None))
        )
        .limit(batch_size or settings.enrichment_batch_size)
        .all()
    )

    results = {"found": len(products), "described": 0, "skipped": 0, "failed": 0}
    for product in products:
        product_id = product.id
        try:
            document_text = fetch_text(product.product_file_url) if product.product_file_url else None
            description = llm.describe_product(product.name, product.image_url, document_text)
            if not description:
                results["skipped"] += 1
                logger.info(f"No usable image or document for product {product_id}, skipping")
                continue
            if _fill_if_null(db, Product, product_id, Product.ai_description, description):
                results["described"] += 1
            else:
                results["skipped"] += 1
        except Exception as e:
            db.rollback()
            results["failed"] += 1
            logger.error(f"Product enrichment failed for {product_id}: {e}")

    return results


def run_knowledge_embedding(
    db: Session,
    llm: LLMService,
    batch_size: Optional[int] = None
) -> Dict[str, Any]:
    documents = (
        db.query(KnowledgeDocument)
        .filter(KnowledgeDocument.embedding.is_(None))
        .limit(batch_size or settings.enrichment_batch_size)
        .all()
    )
    if not documents:
        return {"found": 0, "embedded": 0, "failed": 0}

    results = {"found": len(documents), "embedded": 0, "failed": 0}
    pending = [(doc.id, doc.content) for doc in documents]
    try:
        vectors = llm.embed_documents([content for _, content in pending])
    except Exception as e:
        results["failed"] = len(pending)
        logger.error(f"Knowledge embedding batch failed: {e}")
        return results

    for (doc_id, _), vector in zip(pending, vectors):
        updated = (
            db.query(KnowledgeDocument)
            .filter(KnowledgeDocument.id == doc_id, KnowledgeDocument.embedding.is_(None))
            .update(
                {KnowledgeDocument.embedding: vector, KnowledgeDocument.embedding_model: llm.embedding_model},
                synchronize_session=False
            )
        )
        if updated:
            results["embedded"] += 1
    db.commit()
    return results


@shared_task(name="generate_missing_personas")
def generate_missing_personas() -> Dict[str, Any]:
    """Generate personas for tenants that have inputs but no persona yet"""
    with get_celery_db_session() as db:
        results = run_persona_generation(db, get_llm_service())
    if results["found"]:
        logger.info(f"Persona generation results: {results}")
    return results


@shared_task(name="enrich_product_descriptions")
def enrich_product_descriptions() -> Dict[str, Any]:
    """Describe catalog products that have an image or document but no AI description"""
    with get_celery_db_session() as db:
        results = run_product_enrichment(db, get_llm_service())
    if results["found"]:
        logger.info(f"Product enrichment results: {results}")
    return results


@shared_task(name="embed_knowledge_documents")
def embed_knowledge_documents() -> Dict[str, Any]:
    """Embed knowledge documents that have no embedding yet"""
    with get_celery_db_session() as db:
        results = run_knowledge_embedding(db, get_llm_service())
    if results["found"]:
        logger.info(f"Knowledge embedding results: {results}")
    return results
