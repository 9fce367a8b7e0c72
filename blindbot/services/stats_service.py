"""
Public marketing stats

Aggregate counts for the landing page, padded with a fixed baseline and
served from a one-hour TTL cache.
"""
import logging
import math
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blindbot.core.ttl_cache import TTLCache
from blindbot.db.models import Lead, Tenant
from blindbot.schemas.chat import PublicStats

logger = logging.getLogger(__name__)

BASELINE_CLIENTS = 42
BASELINE_CHATS = 1200
CHATS_PER_LEAD = 15
HOURS_SAVED_PER_CHAT = 0.2

FALLBACK_STATS = PublicStats(clients=50, chats=1500, saved_hours=300)


def build_stats(client_count: int, lead_count: int) -> PublicStats:
    chats = (lead_count or 0) * CHATS_PER_LEAD + BASELINE_CHATS
    return PublicStats(
        clients=(client_count or 0) + BASELINE_CLIENTS,
        chats=chats,
        saved_hours=math.floor(chats * HOURS_SAVED_PER_CHAT)
    )


class StatsService:
    """Owns the stats cache; one instance lives on the service container"""

    def __init__(self, cache: TTLCache):
        self.cache = cache

    @staticmethod
    def load(db: Session) -> PublicStats:
        client_count = db.query(func.count(Tenant.id)).scalar()
        lead_count = db.query(func.count(Lead.id)).scalar()
        return build_stats(client_count, lead_count)

    def get_stats(self, session_factory: Callable[[], Session]) -> PublicStats:
        """Cached stats; database failures return the fallback numbers without caching them"""
        def loader() -> PublicStats:
            db = session_factory()
            try:
                return self.load(db)
            finally:
                db.close()

        try:
            return self.cache.get(loader)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load public stats: {e}")
            return FALLBACK_STATS
