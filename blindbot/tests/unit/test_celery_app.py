"""
Worker wiring: beat schedule, routing and task registration
"""
import pytest

from blindbot.db.models import Tenant
from blindbot.tasks import billing_tasks, enrichment_tasks  # noqa: F401
from blindbot.tasks.celery_app import celery_app
from blindbot.tasks.db_session_manager import get_celery_db_session


class TestCeleryApp:

    def test_enrichment_tasks_are_scheduled(self):
        schedule = celery_app.conf.beat_schedule

        assert {entry["task"] for entry in schedule.values()} == {
            "generate_missing_personas",
            "enrich_product_descriptions",
            "embed_knowledge_documents",
        }
        for entry in schedule.values():
            assert entry["options"]["queue"] == "enrichment"
            assert entry["schedule"] > 0

    def test_tasks_are_registered(self):
        for name in (
            "trigger_auto_refill",
            "generate_missing_personas",
            "enrich_product_descriptions",
            "embed_knowledge_documents",
        ):
            assert name in celery_app.tasks

    def test_refill_is_routed_to_billing_queue(self):
        routes = celery_app.conf.task_routes

        assert routes["trigger_auto_refill"]["queue"] == "billing"
        assert routes["embed_knowledge_documents"]["queue"] == "enrichment"

    def test_json_only(self):
        assert celery_app.conf.task_serializer == "json"
        assert celery_app.conf.accept_content == ["json"]


class TestCeleryDbSession:

    def test_commits_on_clean_exit(self, session_factory, make_tenant):
        tenant_id = make_tenant(bot_persona=None).id

        with get_celery_db_session(session_factory) as db:
            db.query(Tenant).filter(Tenant.id == tenant_id).update({Tenant.bot_persona: "Saved"})

        with get_celery_db_session(session_factory) as db:
            assert db.get(Tenant, tenant_id).bot_persona == "Saved"

    def test_rolls_back_and_reraises(self, session_factory, make_tenant):
        tenant_id = make_tenant().id

        with pytest.raises(RuntimeError):
            with get_celery_db_session(session_factory) as db:
                db.query(Tenant).filter(Tenant.id == tenant_id).update({Tenant.bot_persona: "Lost"})
                raise RuntimeError("task crashed")

        with get_celery_db_session(session_factory) as db:
            assert db.get(Tenant, tenant_id).bot_persona is None
