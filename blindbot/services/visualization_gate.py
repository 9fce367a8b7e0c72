"""
Visualization Gate

Per-turn state machine deciding whether a room render is attempted:

    NO_INTENT -> NEEDS_IMAGE -> NEEDS_PRODUCT -> READY_TO_RENDER -> RENDERED | BLOCKED | FAILED

A credit is only taken once the source photo has been fetched. A credit that
was taken is kept even if rendering then fails.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from prometheus_client import Counter, Histogram

from blindbot.core.errors import MediaDownloadFailed, RenderCollaboratorFailed
from blindbot.core.http_client import DownloadedMedia
from blindbot.db.models import Product, Tenant
from blindbot.schemas.envelope import ModelResponseEnvelope
from blindbot.services.image_generation_service import build_render_prompt
from blindbot.services.media_sentinel import MediaSentinelCodec

logger = logging.getLogger(__name__)

GATE_OUTCOMES = Counter(
    'visualization_gate_outcomes_total',
    'Final visualization gate state per turn',
    ['state']
)

GATE_RENDER_LATENCY = Histogram(
    'visualization_gate_render_seconds',
    'Download, render and upload time for successful renders',
    buckets=[1.0, 5.0, 10.0, 20.0, 30.0, 60.0, 90.0, float('inf')]
)

INSUFFICIENT_CREDITS_NOTE = (
    "(Note: I can't create a visualization right now because this account is out of "
    "visualization credits. Our team can still show you samples in person!)"
)
RENDER_FAILED_NOTE = (
    "(Note: I had trouble creating that visualization. Please try again in a moment.)"
)
SOURCE_UNAVAILABLE_NOTE = (
    "(Note: I couldn't open your photo. Could you try uploading it again?)"
)


class GateState(str, Enum):
    NO_INTENT = "no_intent"
    NEEDS_IMAGE = "needs_image"
    NEEDS_PRODUCT = "needs_product"
    READY_TO_RENDER = "ready_to_render"
    RENDERED = "rendered"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass
class GateOutcome:
    state: GateState
    reply: str
    visualize: bool
    render_url: Optional[str] = None
    product: Optional[Product] = None


def resolve_product(
    products: Sequence[Product],
    product_name: Optional[str],
    style_description: Optional[str] = None
) -> Optional[Product]:
    """
    Match the model's selection against the catalog.

    Order: exact name (case-insensitive), then substring in either direction,
    then a catalog name mentioned in the style description.
    """
    named = [p for p in products if p.name and p.name.strip()]
    if not named:
        return None

    wanted = (product_name or "").strip().lower()
    if wanted:
        for product in named:
            if product.name.strip().lower() == wanted:
                return product
        for product in named:
            candidate = product.name.strip().lower()
            if candidate in wanted or wanted in candidate:
                return product

    style = (style_description or "").lower()
    if style:
        # Longest name first so "Motorized Roller Shade" beats "Roller Shade"
        for product in sorted(named, key=lambda p: len(p.name), reverse=True):
            if product.name.strip().lower() in style:
                return product
    return None


class VisualizationGate:
    """
    Runs the render side effect for one turn.

    Collaborators: the credit ledger (try_deduct), a media client (download),
    the image generation service (render) and render storage (upload_render).
    """

    def __init__(self, ledger, media_client, image_service, render_storage):
        self.ledger = ledger
        self.media_client = media_client
        self.image_service = image_service
        self.render_storage = render_storage

    def _finish(self, outcome: GateOutcome, tenant_id: str) -> GateOutcome:
        GATE_OUTCOMES.labels(state=outcome.state.value).inc()
        logger.info(
            f"Visualization gate for tenant {tenant_id}: {outcome.state.value}",
            extra={"tenant_id": tenant_id, "gate_state": outcome.state.value}
        )
        return outcome

    @staticmethod
    def _with_note(reply: str, note: str) -> str:
        return f"{reply.rstrip()}\n\n{note}"

    async def evaluate(
        self,
        tenant: Tenant,
        envelope: ModelResponseEnvelope,
        source_image_url: Optional[str],
        products: Sequence[Product],
        source_media: Optional[DownloadedMedia] = None
    ) -> GateOutcome:
        """
        Decide and, when allowed, perform this turn's render.

        The returned visualize flag is True only when a render was attached.
        source_media, when given, is the already-fetched photo at source_image_url.
        """
        reply = envelope.reply

        if not envelope.visualize:
            return self._finish(GateOutcome(GateState.NO_INTENT, reply, False), tenant.id)

        if not source_image_url:
            # Asking for the photo is left to the model's reply
            return self._finish(GateOutcome(GateState.NEEDS_IMAGE, reply, False), tenant.id)

        product = resolve_product(products, envelope.product_name, envelope.style_description)
        if product is None:
            return self._finish(GateOutcome(GateState.NEEDS_PRODUCT, reply, False), tenant.id)

        # READY_TO_RENDER
        start = time.time()
        source = source_media
        if source is None:
            try:
                source = await self.media_client.download(source_image_url)
            except MediaDownloadFailed as e:
                logger.warning(f"Render source unavailable for tenant {tenant.id}: {e}")
                return self._finish(
                    GateOutcome(GateState.FAILED, self._with_note(reply, SOURCE_UNAVAILABLE_NOTE), False, product=product),
                    tenant.id
                )

        if not self.ledger.try_deduct(tenant.id):
            return self._finish(
                GateOutcome(GateState.BLOCKED, self._with_note(reply, INSUFFICIENT_CREDITS_NOTE), False, product=product),
                tenant.id
            )

        prompt = build_render_prompt(product.name, product.render_description(), envelope.style_description)
        try:
            image_bytes = await self.image_service.render(source, prompt)
            render_url = await self.render_storage.upload_render(tenant.id, image_bytes)
        except RenderCollaboratorFailed as e:
            logger.error(f"Render failed for tenant {tenant.id} after credit deduction: {e}")
            return self._finish(
                GateOutcome(GateState.FAILED, self._with_note(reply, RENDER_FAILED_NOTE), False, product=product),
                tenant.id
            )

        GATE_RENDER_LATENCY.observe(time.time() - start)
        return self._finish(
            GateOutcome(
                GateState.RENDERED,
                MediaSentinelCodec.append_render(reply, render_url),
                True,
                render_url=render_url,
                product=product
            ),
            tenant.id
        )
