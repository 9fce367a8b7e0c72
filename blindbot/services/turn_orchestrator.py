"""
Turn Orchestrator

One stateless chat turn, start to finish:

1. resolve the tenant and check access
2. split the replayed history into past turns and the current turn
3. extract media (current photo for vision, most recent photo for rendering)
4. retrieve knowledge and compose the grounding instruction
5. call the chat model and parse its envelope
6. run the visualization gate
7. reconcile the lead
8. assemble the widget response
"""
import logging
import time
from typing import List, Optional, Sequence, Tuple

from prometheus_client import Counter, Histogram
from sqlalchemy.exc import SQLAlchemyError

from blindbot.core.config import get_settings
from blindbot.core.errors import InvalidTenant, MediaDownloadFailed, ModelOutputInvalid
from blindbot.core.http_client import DownloadedMedia
from blindbot.core.logging import get_logger
from blindbot.db.models import Product, Tenant
from blindbot.schemas.chat import ChatRequest, ChatResponse, ConversationTurn, ProductSuggestion
from blindbot.schemas.envelope import ModelResponseEnvelope
from blindbot.services.history_scanner import find_source_image
from blindbot.services.lead_reconciler import LeadFields
from blindbot.services.media_sentinel import MediaKind, MediaSentinelCodec
from blindbot.services.persona_composer import compose
from blindbot.services.response_parser import parse_model_response

logger = logging.getLogger(__name__)

TURNS_PROCESSED = Counter(
    'chat_turns_total',
    'Chat turns by outcome',
    ['outcome']
)

TURN_LATENCY = Histogram(
    'chat_turn_duration_seconds',
    'End-to-end chat turn latency',
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 40.0, 60.0, 90.0, float('inf')]
)

PHOTO_ONLY_TEXT = "[The customer shared a photo of their room.]"


def split_current_turn(turn: ConversationTurn) -> Tuple[str, Optional[str]]:
    """Plain text of the current turn and its first customer image, if any"""
    texts: List[str] = []
    image_url: Optional[str] = None
    for part in turn.parts:
        decoded = MediaSentinelCodec.decode(part.text, kinds=[MediaKind.IMAGE])
        if decoded.has_media and image_url is None:
            image_url = decoded.url
        if decoded.text:
            texts.append(decoded.text)
    return "\n".join(texts).strip(), image_url


class TurnOrchestrator:
    """Composes the turn pipeline from injected collaborators"""

    def __init__(
        self,
        ledger,
        retriever,
        llm,
        media_client,
        gate,
        reconciler,
        max_product_suggestions: Optional[int] = None
    ):
        self.ledger = ledger
        self.retriever = retriever
        self.llm = llm
        self.media_client = media_client
        self.gate = gate
        self.reconciler = reconciler
        self.max_product_suggestions = (
            max_product_suggestions if max_product_suggestions is not None
            else get_settings().max_product_suggestions
        )

    def _resolve_tenant(self, api_key: str) -> Tenant:
        tenant = self.ledger.get_tenant(api_key)
        decision = self.ledger.check_access(tenant)
        if not decision.allowed:
            raise InvalidTenant(decision.reason, tenant_id=tenant.id if tenant is not None else None)
        return tenant

    async def _fetch_for_vision(self, url: Optional[str]) -> Optional[DownloadedMedia]:
        if not url:
            return None
        try:
            return await self.media_client.download(url)
        except MediaDownloadFailed as e:
            logger.warning(f"Continuing without the customer photo: {e}")
            return None

    def _product_suggestions(self, products: Sequence[Product]) -> List[ProductSuggestion]:
        suggestions = [
            ProductSuggestion(name=product.name, image=product.image_url)
            for product in products
            if product.name
        ]
        return suggestions[:self.max_product_suggestions]

    def _persist_lead(
        self,
        tenant_id: str,
        envelope: ModelResponseEnvelope,
        customer_image_url: Optional[str],
        render_url: Optional[str]
    ) -> None:
        fields = LeadFields.from_lead_data(
            envelope.lead_data,
            new_customer_image=customer_image_url,
            new_ai_rendering=render_url
        )
        try:
            self.reconciler.reconcile(tenant_id, fields)
        except SQLAlchemyError as e:
            logger.error(f"Lead persistence failed for tenant {tenant_id}, reply still sent: {e}")

    async def handle_turn(self, request: ChatRequest) -> ChatResponse:
        """
        Process one chat turn.

        Raises:
            InvalidTenant: unknown API key or inactive tenant
            ModelOutputInvalid: the chat model's output could not be parsed
        """
        start = time.time()
        try:
            response = await self._run(request)
        except InvalidTenant:
            TURNS_PROCESSED.labels(outcome='invalid_tenant').inc()
            raise
        except ModelOutputInvalid:
            TURNS_PROCESSED.labels(outcome='model_output_invalid').inc()
            raise
        except Exception:
            TURNS_PROCESSED.labels(outcome='error').inc()
            raise
        finally:
            TURN_LATENCY.observe(time.time() - start)

        TURNS_PROCESSED.labels(outcome='ok').inc()
        return response

    async def _run(self, request: ChatRequest) -> ChatResponse:
        tenant = self._resolve_tenant(request.tenant_api_key)
        tenant_id = tenant.id

        turns = request.history
        current_index = len(turns) - 1
        past_turns = turns[:current_index]
        current_text, current_image_url = split_current_turn(turns[current_index])
        source_image_url = find_source_image(turns, current_index)

        current_image = await self._fetch_for_vision(current_image_url)

        products = list(tenant.products)
        knowledge = await self.retriever.retrieve(current_text, tenant_id) if current_text else []
        if not current_text and current_image_url:
            current_text = PHOTO_ONLY_TEXT
        system_prompt = compose(
            tenant.company_name,
            tenant.bot_persona,
            [product.name for product in products],
            knowledge
        )

        raw_output = await self.llm.generate_turn(system_prompt, past_turns, current_text, current_image)
        envelope = parse_model_response(raw_output)

        prefetched = current_image if source_image_url == current_image_url else None
        outcome = await self.gate.evaluate(tenant, envelope, source_image_url, products, source_media=prefetched)

        # An identified customer's lead picks up the photo from any earlier turn
        customer_image_url = source_image_url if envelope.lead_data.has_identity() else current_image_url
        self._persist_lead(tenant_id, envelope, customer_image_url, outcome.render_url)

        suggestions = self._product_suggestions(products) if envelope.show_products else None
        turn_logger = get_logger(__name__, tenant_id=tenant_id)
        turn_logger.info(
            f"Turn complete for tenant {tenant_id} (gate={outcome.state.value})",
            extra={"gate_state": outcome.state.value}
        )
        return ChatResponse(
            reply=outcome.reply,
            product_suggestions=suggestions or None,
            render_url=outcome.render_url,
            visualize=outcome.visualize
        )
