import os
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from blindbot.core.config import get_settings
from blindbot.core.logging import setup_worker_logging

settings = get_settings()


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Workers log through the same formatter as the API"""
    setup_worker_logging()

celery_app = Celery(
    "blindbot_sales_agent",
    broker=settings.get_celery_broker_url(),
    backend=settings.get_celery_result_backend(),
    include=[
        "blindbot.tasks.billing_tasks",  # Auto-refill charges
        "blindbot.tasks.enrichment_tasks",  # Persona, catalog and knowledge enrichment
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=1800,  # 30 minutes
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes

    worker_concurrency=int(os.getenv('CELERY_WORKER_CONCURRENCY', '4')),
    worker_prefetch_multiplier=int(os.getenv('CELERY_WORKER_PREFETCH', '1')),
    worker_max_tasks_per_child=int(os.getenv('CELERY_MAX_TASKS_PER_CHILD', '100')),

    # Enrichment tasks are idempotent, so late acks only risk a redundant rerun
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    broker_transport_options={
        'visibility_timeout': 3600,  # 1 hour visibility timeout
    },

    task_routes={
        'trigger_auto_refill': {'queue': 'billing', 'priority': 9},
        'generate_missing_personas': {'queue': 'enrichment', 'priority': 5},
        'enrich_product_descriptions': {'queue': 'enrichment', 'priority': 5},
        'embed_knowledge_documents': {'queue': 'enrichment', 'priority': 5},
    },

    task_default_queue='default',
    task_create_missing_queues=True,
)

# Level-triggered enrichment: each run picks up whatever rows are still NULL
celery_app.conf.beat_schedule = {
    'generate-missing-personas': {
        'task': 'generate_missing_personas',
        'schedule': settings.persona_poll_interval,
        'options': {'queue': 'enrichment'},
    },

    'enrich-product-descriptions': {
        'task': 'enrich_product_descriptions',
        'schedule': settings.product_poll_interval,
        'options': {'queue': 'enrichment'},
    },

    'embed-knowledge-documents': {
        'task': 'embed_knowledge_documents',
        'schedule': settings.knowledge_poll_interval,
        'options': {'queue': 'enrichment'},
    },
}
