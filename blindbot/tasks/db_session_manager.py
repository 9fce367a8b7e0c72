"""
Worker-side database sessions

Celery tasks run outside FastAPI's dependency injection, so each task run
borrows a session here and hands it back when its block exits.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session

from blindbot.db.database import get_session_factory

logger = logging.getLogger(__name__)


@contextmanager
def get_celery_db_session(session_factory: Optional[Callable[[], Session]] = None) -> Iterator[Session]:
    """
    Session for one task run.

        with get_celery_db_session() as db:
            run_knowledge_embedding(db, get_llm_service())

    Pending work is committed when the block finishes cleanly. Any exception
    rolls the session back before propagating; the session is always closed.
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        logger.exception("Task session rolled back")
        session.rollback()
        raise
    finally:
        session.close()
