"""
Room visualization rendering

Edits a customer's room photo with OpenAI's image model so the selected
window treatment appears installed. Output is returned as raw PNG bytes.
"""
import base64
import logging
import time
from typing import Optional

from openai import AsyncOpenAI
from prometheus_client import Counter, Histogram

from blindbot.core.config import Settings, get_settings
from blindbot.core.errors import RenderCollaboratorFailed
from blindbot.core.http_client import DownloadedMedia

logger = logging.getLogger(__name__)

RENDER_REQUESTS = Counter(
    'render_requests_total',
    'Room visualization requests',
    ['model', 'status']
)

RENDER_LATENCY = Histogram(
    'render_duration_seconds',
    'Room visualization latency',
    ['model'],
    buckets=[1.0, 2.0, 5.0, 10.0, 15.0, 30.0, 45.0, 60.0, 90.0, float('inf')]
)

RENDER_PROMPT_TEMPLATE = (
    "Photorealistic edit of this room photo. Install {product} on the windows. "
    "{style}"
    "Keep the room layout, furniture, walls, lighting and camera angle unchanged; "
    "only the window treatments change. Match the room's perspective and lighting."
)


def build_render_prompt(product_name: str, product_description: str, style_description: Optional[str]) -> str:
    product = product_name.strip()
    if product_description and product_description.strip() != product:
        product = f"{product} ({product_description.strip()})"
    style = f"Style requested by the customer: {style_description.strip()}. " if style_description else ""
    return RENDER_PROMPT_TEMPLATE.format(product=product, style=style)


class ImageGenerationService:
    """Image-edit collaborator used by the visualization gate"""

    def __init__(self, settings: Optional[Settings] = None, async_client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self.model = self.settings.image_model
        self.size = self.settings.image_size

        if async_client is not None:
            self.async_client = async_client
        elif not self.settings.openai_api_key:
            logger.warning("OpenAI API key not configured. Rendering will be unavailable.")
            self.async_client = None
        else:
            self.async_client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.openai_timeout_seconds
            )

    async def render(self, source: DownloadedMedia, prompt: str) -> bytes:
        """
        Render a style onto the source photo.

        Raises:
            RenderCollaboratorFailed: service unavailable, API error or empty output
        """
        if not self.async_client:
            RENDER_REQUESTS.labels(model=self.model, status='unavailable').inc()
            raise RenderCollaboratorFailed("Image generation service is unavailable")

        start = time.time()
        try:
            response = await self.async_client.images.edit(
                model=self.model,
                image=(source.filename, source.content, source.mime_type),
                prompt=prompt,
                size=self.size
            )
        except Exception as e:
            RENDER_REQUESTS.labels(model=self.model, status='error').inc()
            logger.error(f"Image edit request failed: {e}")
            raise RenderCollaboratorFailed(f"Image generation failed: {e}") from e
        finally:
            RENDER_LATENCY.labels(model=self.model).observe(time.time() - start)

        image_data = response.data[0] if response.data else None
        if not image_data or not getattr(image_data, 'b64_json', None):
            RENDER_REQUESTS.labels(model=self.model, status='empty').inc()
            raise RenderCollaboratorFailed("Image generation returned no image data")

        RENDER_REQUESTS.labels(model=self.model, status='success').inc()
        return base64.b64decode(image_data.b64_json)
