"""
Shared FastAPI dependencies
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from blindbot.core.service_container import ServiceContainer
from blindbot.db.database import get_db


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_orchestrator(
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container)
):
    """Turn orchestrator bound to this request's session"""
    return container.orchestrator(db)
