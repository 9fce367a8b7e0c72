"""
Shared fixtures: an in-memory SQLite database, tenant/product factories and
a TestClient wired to fake collaborators.
"""
import uuid
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from blindbot.core.app_factory import AppConfig, create_app
from blindbot.core.config import Settings
from blindbot.core.http_client import DownloadedMedia
from blindbot.core.service_container import ServiceContainer
from blindbot.core.ttl_cache import TTLCache
from blindbot.db import models  # noqa: F401
from blindbot.db.database import Base, get_db, get_session_factory
from blindbot.db.models import KnowledgeDocument, Product, Tenant
from blindbot.services.stats_service import StatsService
from blindbot.tests.helpers import model_output


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_tenant(db_session):
    """Factory for committed tenants; products are given as names or dicts"""
    def _make(products=(), **overrides) -> Tenant:
        values = {
            "api_key": f"key-{uuid.uuid4().hex[:12]}",
            "company_name": "The Window Valet",
            "status": "active",
            "image_credits": 10,
        }
        values.update(overrides)
        tenant = Tenant(**values)
        db_session.add(tenant)
        db_session.flush()

        for position, product in enumerate(products):
            product_fields = {"name": product} if isinstance(product, str) else dict(product)
            product_fields.setdefault("image_url", f"https://cdn.example.com/{product_fields['name'].lower().replace(' ', '-')}.jpg")
            db_session.add(Product(tenant_id=tenant.id, position=position, **product_fields))

        db_session.commit()
        db_session.refresh(tenant)
        return tenant
    return _make


@pytest.fixture
def add_knowledge(db_session):
    def _add(tenant_id: str, content: str, embedding=None, source: str = "faq") -> KnowledgeDocument:
        doc = KnowledgeDocument(tenant_id=tenant_id, content=content, embedding=embedding, source=source)
        db_session.add(doc)
        db_session.commit()
        return doc
    return _add


@pytest.fixture
def test_settings():
    return Settings(
        environment="test",
        database_url="sqlite://",
        openai_api_key=None,
        stripe_secret_key=None,
        low_balance_threshold=5,
        max_product_suggestions=6,
    )


@pytest.fixture
def fake_llm():
    llm = Mock()
    llm.generate_turn = AsyncMock(return_value=model_output())
    llm.embed = AsyncMock(return_value=[1.0, 0.0, 0.0])
    llm.embedding_model = "text-embedding-3-small"
    return llm


@pytest.fixture
def fake_media_client():
    client = Mock()

    async def _download(url: str) -> DownloadedMedia:
        return DownloadedMedia(url=url, content=b"\x89PNG fake", mime_type="image/png")

    client.download = AsyncMock(side_effect=_download)
    client.close = AsyncMock()
    return client


@pytest.fixture
def fake_image_service():
    service = Mock()
    service.render = AsyncMock(return_value=b"rendered-png")
    return service


@pytest.fixture
def fake_render_storage():
    storage = Mock()
    storage.upload_render = AsyncMock(return_value="https://renders.example.com/r/1.png")
    return storage


@pytest.fixture
def refill_trigger():
    return Mock()


@pytest.fixture
def container(test_settings, fake_llm, fake_media_client, fake_image_service, fake_render_storage, refill_trigger):
    return ServiceContainer(
        settings=test_settings,
        llm=fake_llm,
        image_service=fake_image_service,
        render_storage=fake_render_storage,
        media_client=fake_media_client,
        refill_trigger=refill_trigger,
        stats_service=StatsService(TTLCache(3600)),
    )


@pytest.fixture
def app(test_settings, container, session_factory):
    app = create_app(AppConfig(settings=test_settings, environment="test"), container=container)

    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
