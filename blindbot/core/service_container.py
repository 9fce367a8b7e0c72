"""
Service Container

Process-wide collaborators (OpenAI clients, the media HTTP client, render
storage, the refill trigger and the stats cache) are constructed once at
startup and passed into request-scoped services. Nothing here is a module
level singleton; the FastAPI lifespan owns the container and stores it on
app.state.
"""
import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from blindbot.core.config import Settings, get_settings
from blindbot.core.http_client import HTTPClientConfig, MediaHTTPClient
from blindbot.core.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Holds long-lived collaborators and builds per-request services.

    Every collaborator can be passed in explicitly, which is how tests
    substitute fakes; anything omitted is built from settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm=None,
        image_service=None,
        render_storage=None,
        media_client=None,
        refill_trigger: Optional[Callable[[str], Any]] = None,
        stats_service=None
    ):
        self.settings = settings or get_settings()

        if llm is None:
            from blindbot.services.llm_service import LLMService
            llm = LLMService(self.settings)
        if image_service is None:
            from blindbot.services.image_generation_service import ImageGenerationService
            image_service = ImageGenerationService(self.settings)
        if render_storage is None:
            from blindbot.services.render_storage_service import RenderStorageService
            render_storage = RenderStorageService(self.settings)
        if media_client is None:
            media_client = MediaHTTPClient(HTTPClientConfig(self.settings))
        if stats_service is None:
            from blindbot.services.stats_service import StatsService
            stats_service = StatsService(TTLCache(self.settings.stats_cache_ttl_seconds))

        self.llm = llm
        self.image_service = image_service
        self.render_storage = render_storage
        self.media_client = media_client
        self.refill_trigger = refill_trigger
        self.stats_service = stats_service

        logger.info("Service container initialized")

    def credit_ledger(self, db: Session):
        from blindbot.services.credit_ledger import CreditLedger
        return CreditLedger(
            db,
            refill_trigger=self.refill_trigger,
            low_balance_threshold=self.settings.low_balance_threshold
        )

    def orchestrator(self, db: Session):
        """Turn orchestrator bound to one request's database session"""
        from blindbot.services.knowledge_retriever import KnowledgeRetriever
        from blindbot.services.lead_reconciler import LeadReconciler
        from blindbot.services.turn_orchestrator import TurnOrchestrator
        from blindbot.services.visualization_gate import VisualizationGate

        ledger = self.credit_ledger(db)
        gate = VisualizationGate(
            ledger=ledger,
            media_client=self.media_client,
            image_service=self.image_service,
            render_storage=self.render_storage
        )
        return TurnOrchestrator(
            ledger=ledger,
            retriever=KnowledgeRetriever(
                db,
                embedder=self.llm,
                threshold=self.settings.knowledge_similarity_threshold,
                top_k=self.settings.knowledge_top_k
            ),
            llm=self.llm,
            media_client=self.media_client,
            gate=gate,
            reconciler=LeadReconciler(db),
            max_product_suggestions=self.settings.max_product_suggestions
        )

    async def close(self):
        """Release network resources held by collaborators."""
        try:
            await self.media_client.close()
        except Exception as e:
            logger.warning(f"Failed to close media client: {e}")
        logger.info("Service container closed")
