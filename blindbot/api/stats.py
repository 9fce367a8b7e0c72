"""
Public stats API for the marketing site
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import sessionmaker

from blindbot.api.dependencies import get_container
from blindbot.core.service_container import ServiceContainer
from blindbot.db.database import get_session_factory
from blindbot.schemas.chat import PublicStats

router = APIRouter(tags=["Stats"])


@router.get("/public-stats", response_model=PublicStats, response_model_by_alias=True)
async def public_stats(
    container: ServiceContainer = Depends(get_container),
    session_factory: sessionmaker = Depends(get_session_factory)
):
    return container.stats_service.get_stats(session_factory)
