"""
FastAPI application factory

Builds the chat API with its middleware, routers, widget-safe error handlers
and health/metrics endpoints. The service container is created in the
lifespan unless one is passed in.
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from blindbot.core.config import Settings, get_settings
from blindbot.core.logging import setup_logging
from blindbot.core.service_container import ServiceContainer

logger = logging.getLogger(__name__)

GENERIC_FAILURE_REPLY = "I'm having trouble connecting. Please try again."


class AppConfig:
    """Configuration for FastAPI application."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        environment: str = None,
        title: str = None,
        description: str = "Multi-tenant sales assistant chat API",
        version: str = "1.0.0",
        enable_docs: bool = None,
        cors_origins: List[str] = None
    ):
        self.settings = settings or get_settings()
        self.environment = (environment or self.settings.environment).lower()
        self.title = title or self.settings.app_name
        self.description = description
        self.version = version

        self.enable_docs = enable_docs if enable_docs is not None else (self.environment != "production")
        self.docs_url = "/docs" if self.enable_docs else None
        self.redoc_url = "/redoc" if self.enable_docs else None

        # The widget is embedded on tenant sites, so origins default to "*"
        self.cors_origins = cors_origins or self.settings.get_cors_origins() or ["*"]


def setup_middleware(app: FastAPI, config: AppConfig) -> None:
    """Setup application middleware."""
    logger.info("CORS allowed origins: {}".format(config.cors_origins))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials="*" not in config.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", "Authorization", "X-Requested-With"]
    )


def setup_routers(app: FastAPI) -> List[str]:
    """Setup API routers."""
    from blindbot.api._registry import ROUTERS

    loaded_routers = []
    for router in ROUTERS:
        app.include_router(router)
        loaded_routers.append(",".join(sorted({route.path for route in router.routes})))
    logger.info("Loaded routes: {}".format("; ".join(loaded_routers)))
    return loaded_routers


def setup_exception_handlers(app: FastAPI) -> None:
    """Every failure still returns a body the widget can display."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"reply": GENERIC_FAILURE_REPLY, "detail": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on {} {}: {}".format(request.method, request.url.path, exc), exc_info=exc)
        return JSONResponse(status_code=500, content={"reply": GENERIC_FAILURE_REPLY})


def setup_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Setup health check and metrics endpoints."""

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": config.title,
            "version": config.version,
            "environment": config.environment
        }

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(config: Optional[AppConfig] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the chat API application.

    Args:
        config: Optional configuration object
        container: Prebuilt service container; built in the lifespan when omitted

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = AppConfig()

    setup_logging(
        level=config.settings.log_level,
        format_type='json' if config.settings.use_json_logging else 'standard'
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_container = getattr(app.state, "container", None) is None
        if owns_container:
            app.state.container = ServiceContainer(config.settings)
        try:
            yield
        finally:
            if owns_container:
                await app.state.container.close()

    app = FastAPI(
        title=config.title,
        description=config.description,
        version=config.version,
        docs_url=config.docs_url,
        redoc_url=config.redoc_url,
        lifespan=lifespan
    )
    if container is not None:
        app.state.container = container

    setup_middleware(app, config)
    setup_routers(app)
    setup_exception_handlers(app)
    setup_health_endpoints(app, config)

    logger.info("FastAPI application created ({} environment)".format(config.environment))
    return app
