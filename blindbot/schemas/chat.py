"""
Chat widget wire models

The widget replays the full conversation on every request; the last turn is
always the current user turn.
"""
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TurnPart(BaseModel):
    """One part of a turn: plain text, optionally carrying an inline media sentinel"""
    model_config = ConfigDict(extra="ignore")

    text: str = ""


class ConversationTurn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "model"]
    parts: List[TurnPart] = Field(default_factory=list)

    def joined_text(self) -> str:
        return "\n".join(part.text for part in self.parts if part.text)


class ChatRequest(BaseModel):
    """Inbound turn request"""
    model_config = ConfigDict(populate_by_name=True)

    history: List[ConversationTurn] = Field(..., min_length=1)
    tenant_api_key: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("clientApiKey", "tenantApiKey", "tenant_api_key"),
        description="Opaque per-tenant API key embedded in the widget"
    )


class ProductSuggestion(BaseModel):
    name: str
    image: Optional[str] = None


class ChatResponse(BaseModel):
    """Outbound turn response; `reply` is the only field the widget depends on"""
    model_config = ConfigDict(populate_by_name=True)

    reply: str
    product_suggestions: Optional[List[ProductSuggestion]] = Field(None, alias="productSuggestions")
    render_url: Optional[str] = Field(None, alias="renderUrl")
    visualize: bool = False


class WidgetConfig(BaseModel):
    """Branding returned to the widget on load"""
    name: str
    logo: str = ""
    color: str = "#007bff"
    title: str = "Sales Assistant"
    website: Optional[str] = None


class PublicStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    clients: int
    chats: int
    saved_hours: int = Field(..., alias="savedHours")
