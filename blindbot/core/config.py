"""
Application settings

Loaded from environment variables (and an optional .env file) through
pydantic-settings. Modules obtain the shared instance with get_settings().
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the sales agent API and its workers."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Blind Bot Sales Agent"
    environment: str = Field("development", description="development, test or production")
    log_level: str = "INFO"
    use_json_logging: bool = False
    cors_origins: str = Field("*", description="Comma separated list of allowed origins")

    # Database
    database_url: str = Field("sqlite:///./blindbot.db", description="SQLAlchemy database URL")
    database_echo: bool = False
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Redis / Celery
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None

    # OpenAI collaborators
    openai_api_key: Optional[str] = None
    chat_model: str = "gpt-4o-mini"
    enrichment_model: str = "gpt-4o-mini"
    image_model: str = "gpt-image-1"
    image_size: str = "1024x1024"
    embedding_model: str = "text-embedding-3-small"
    openai_timeout_seconds: float = 60.0

    # Media downloads
    media_download_timeout: float = 20.0
    media_download_retries: int = 0
    media_max_bytes: int = 15 * 1024 * 1024

    # Render storage (S3)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_render_bucket: str = "blindbot-renders"
    s3_render_prefix: str = "renders"
    s3_public_base_url: Optional[str] = None

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_credits_price_id: str = "price_credits_300"

    # Credits
    low_balance_threshold: int = 5

    # Knowledge grounding
    knowledge_similarity_threshold: float = 0.5
    knowledge_top_k: int = 3

    # Chat response
    max_product_suggestions: int = 6

    # Background enrichment (seconds)
    persona_poll_interval: float = 60.0
    product_poll_interval: float = 60.0
    knowledge_poll_interval: float = 120.0
    enrichment_batch_size: int = 20
    training_document_max_chars: int = 30000

    # Public stats
    stats_cache_ttl_seconds: int = 60 * 60

    def get_celery_broker_url(self) -> str:
        """Broker URL, defaulting to the Redis URL"""
        return self.celery_broker_url or self.redis_url

    def get_celery_result_backend(self) -> str:
        """Result backend URL, defaulting to the Redis URL"""
        return self.celery_result_backend or self.redis_url

    def get_cors_origins(self) -> list:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
