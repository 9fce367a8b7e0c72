"""
Chat widget API

POST /chat runs one conversational turn; GET /init returns the tenant's
widget branding.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from blindbot.api.dependencies import get_orchestrator
from blindbot.core.errors import InvalidTenant, ModelOutputInvalid
from blindbot.db.database import get_db
from blindbot.db.models import Tenant
from blindbot.schemas.chat import ChatRequest, ChatResponse, WidgetConfig

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Chat"])

SERVICE_SUSPENDED_REPLY = "Service Suspended."
GENERIC_FAILURE_REPLY = "I'm having trouble connecting. Please try again."


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True
)
async def chat(request: ChatRequest, orchestrator=Depends(get_orchestrator)):
    """
    Run one chat turn.

    Inactive or unknown tenants get a fixed suspension reply with HTTP 200 so
    the widget can display it. Unparseable model output returns the generic
    failure reply with HTTP 502.
    """
    try:
        return await orchestrator.handle_turn(request)
    except InvalidTenant as e:
        logger.info(f"Chat rejected: {e.reason}", extra={"tenant_id": e.tenant_id})
        return ChatResponse(reply=SERVICE_SUSPENDED_REPLY)
    except ModelOutputInvalid as e:
        logger.error(f"Model output invalid: {e}")
        return JSONResponse(status_code=502, content={"reply": GENERIC_FAILURE_REPLY})


@router.get("/init", response_model=WidgetConfig)
async def init_widget(
    api_key: Optional[str] = Query(None, alias="apiKey"),
    db: Session = Depends(get_db)
):
    """Branding for the embedded widget"""
    if not api_key:
        raise HTTPException(status_code=400, detail="Missing API Key")

    tenant = db.query(Tenant).filter(Tenant.api_key == api_key).first()
    if tenant is None:
        raise HTTPException(status_code=404, detail="Client not found")

    return WidgetConfig(
        name=tenant.company_name,
        logo=tenant.logo_url or "",
        color=tenant.primary_color or "#007bff",
        title=tenant.bot_title or "Sales Assistant",
        website=tenant.website_url
    )
