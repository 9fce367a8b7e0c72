"""
OpenAI text, vision and embedding collaborator

Async calls serve the chat turn path; the sync client is used by the Celery
enrichment tasks. Both clients are None when no API key is configured.
"""
import base64
import logging
import time
from typing import List, Optional, Sequence

from openai import AsyncOpenAI, OpenAI
from prometheus_client import Counter, Histogram

from blindbot.core.config import Settings, get_settings
from blindbot.core.errors import KnowledgeRetrievalFailed, SalesAgentError
from blindbot.core.http_client import DownloadedMedia
from blindbot.schemas.chat import ConversationTurn

logger = logging.getLogger(__name__)

LLM_REQUESTS = Counter(
    'llm_requests_total',
    'OpenAI requests by purpose and outcome',
    ['purpose', 'status']
)

LLM_LATENCY = Histogram(
    'llm_request_duration_seconds',
    'OpenAI request latency',
    ['purpose'],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 40.0, float('inf')]
)

PERSONA_ARCHITECT_PROMPT = """You are an expert AI Sales System Architect.

YOUR GOAL:
Write a "System Instruction" block for a sales chatbot.

INPUT DATA:
1. OWNER INSTRUCTIONS (High Priority): "{override}"
2. COMPANY DOCUMENTS: "{document}"

RULES:
- IGNORE visual descriptions (logos, layout).
- EXTRACT policy, discounts, hours and contact info.
- IF owner instructions contradict the documents, owner instructions WIN.
- Output format: "You are the sales assistant for {company_name}..."
"""

PRODUCT_PROMPT_FULL = """You are a technical window treatment specialist.
Create a comprehensive product summary for "{name}".

Source 1 (Document): use strictly for technical specs, available sizes, colors, mount depths and restrictions.
Source 2 (Image): use for the visual description (texture, light filtering appearance).

Write one paragraph covering visual style and material, technical specifications,
available colors or patterns, and functional benefits.
Keep it under 80 words. Focus on facts.

DOCUMENT:
{document}"""

PRODUCT_PROMPT_DOCUMENT = """Read this product document for "{name}".
Summarize the key sales details: available sizes, colors, material types and installation restrictions.
Keep it under 60 words.

DOCUMENT:
{document}"""

PRODUCT_PROMPT_IMAGE = """Analyze this window treatment image for "{name}".
Describe the likely material, light filtering capabilities (sheer vs blackout) and style (roller, zebra, cellular, etc).
Keep it under 50 words."""


def _role_for(turn: ConversationTurn) -> str:
    return "assistant" if turn.role == "model" else "user"


def to_data_url(media: DownloadedMedia) -> str:
    encoded = base64.b64encode(media.content).decode('utf-8')
    return f"data:{media.mime_type};base64,{encoded}"


class LLMService:
    """Thin wrapper over the OpenAI SDK for the calls the sales agent needs"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        async_client: Optional[AsyncOpenAI] = None,
        client: Optional[OpenAI] = None
    ):
        self.settings = settings or get_settings()
        self.chat_model = self.settings.chat_model
        self.enrichment_model = self.settings.enrichment_model
        self.embedding_model = self.settings.embedding_model

        if async_client is not None or client is not None:
            self.async_client = async_client
            self.client = client
        elif not self.settings.openai_api_key:
            logger.warning("OpenAI API key not configured. Chat and enrichment will be unavailable.")
            self.async_client = None
            self.client = None
        else:
            timeout = self.settings.openai_timeout_seconds
            self.async_client = AsyncOpenAI(api_key=self.settings.openai_api_key, timeout=timeout)
            self.client = OpenAI(api_key=self.settings.openai_api_key, timeout=timeout)
            logger.info(f"OpenAI collaborator initialized (chat model {self.chat_model})")

    def build_messages(
        self,
        system_prompt: str,
        past_turns: Sequence[ConversationTurn],
        current_text: str,
        current_image: Optional[DownloadedMedia] = None
    ) -> List[dict]:
        """
        Chat messages for one turn: system prompt, replayed past turns, then the current turn.

        The current turn is passed separately and must not be part of past_turns.
        """
        messages = [{"role": "system", "content": system_prompt}]
        for turn in past_turns:
            text = turn.joined_text()
            if text:
                messages.append({"role": _role_for(turn), "content": text})

        content: List[dict] = [{"type": "text", "text": current_text or "Hello"}]
        if current_image is not None:
            content.append({"type": "image_url", "image_url": {"url": to_data_url(current_image)}})
        messages.append({"role": "user", "content": content})
        return messages

    async def generate_turn(
        self,
        system_prompt: str,
        past_turns: Sequence[ConversationTurn],
        current_text: str,
        current_image: Optional[DownloadedMedia] = None
    ) -> str:
        """
        Run the chat model in JSON mode and return its raw text output.

        Raises:
            SalesAgentError: when the collaborator is not configured
        """
        if not self.async_client:
            LLM_REQUESTS.labels(purpose='chat', status='unavailable').inc()
            raise SalesAgentError("Text generation is unavailable: OpenAI API key not configured")

        messages = self.build_messages(system_prompt, past_turns, current_text, current_image)
        start = time.time()
        try:
            response = await self.async_client.chat.completions.create(
                model=self.chat_model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=0.4
            )
        except Exception as e:
            LLM_REQUESTS.labels(purpose='chat', status='error').inc()
            logger.error(f"Chat completion failed: {e}")
            raise
        finally:
            LLM_LATENCY.labels(purpose='chat').observe(time.time() - start)

        LLM_REQUESTS.labels(purpose='chat', status='success').inc()
        return response.choices[0].message.content or ""

    async def embed(self, text: str) -> List[float]:
        """Embed one query string for similarity search"""
        if not self.async_client:
            raise KnowledgeRetrievalFailed("Embeddings are unavailable: OpenAI API key not configured")
        try:
            response = await self.async_client.embeddings.create(model=self.embedding_model, input=text)
        except Exception as e:
            LLM_REQUESTS.labels(purpose='embedding', status='error').inc()
            raise KnowledgeRetrievalFailed(f"Embedding request failed: {e}") from e
        LLM_REQUESTS.labels(purpose='embedding', status='success').inc()
        return list(response.data[0].embedding)

    def _require_sync_client(self) -> OpenAI:
        if not self.client:
            raise SalesAgentError("OpenAI API key not configured")
        return self.client

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed a batch of knowledge documents (worker side)"""
        if not texts:
            return []
        client = self._require_sync_client()
        response = client.embeddings.create(model=self.embedding_model, input=list(texts))
        LLM_REQUESTS.labels(purpose='embedding_batch', status='success').inc()
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]

    def generate_persona(
        self,
        company_name: str,
        owner_instructions: Optional[str],
        document_text: Optional[str]
    ) -> str:
        """Persona document from owner instructions and training document text"""
        client = self._require_sync_client()
        prompt = PERSONA_ARCHITECT_PROMPT.format(
            override=owner_instructions or "No specific owner instructions.",
            document=document_text or "No Training Document provided.",
            company_name=company_name
        )
        response = client.chat.completions.create(
            model=self.enrichment_model,
            messages=[{"role": "user", "content": prompt}]
        )
        LLM_REQUESTS.labels(purpose='persona', status='success').inc()
        return (response.choices[0].message.content or "").strip()

    def describe_product(
        self,
        name: str,
        image_url: Optional[str] = None,
        document_text: Optional[str] = None
    ) -> Optional[str]:
        """
        Sales description of a catalog product from its image and/or spec document.

        Returns None when neither input is available.
        """
        if image_url and document_text:
            prompt = PRODUCT_PROMPT_FULL.format(name=name, document=document_text)
        elif document_text:
            prompt = PRODUCT_PROMPT_DOCUMENT.format(name=name, document=document_text)
        elif image_url:
            prompt = PRODUCT_PROMPT_IMAGE.format(name=name)
        else:
            return None

        client = self._require_sync_client()
        content: List[dict] = [{"type": "text", "text": prompt}]
        if image_url:
            content.append({"type": "image_url", "image_url": {"url": image_url}})

        response = client.chat.completions.create(
            model=self.enrichment_model,
            messages=[{"role": "user", "content": content}]
        )
        LLM_REQUESTS.labels(purpose='product_description', status='success').inc()
        return (response.choices[0].message.content or "").strip()


def get_llm_service() -> LLMService:
    return LLMService()
