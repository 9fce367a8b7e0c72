"""
Structured envelope returned by the text-generation collaborator.

The model output is untrusted: every field is coerced here so downstream
code never has to check presence or types.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_NULL_STRINGS = {"", "null", "none", "n/a", "na", "unknown", "undefined"}
_TRUE_STRINGS = {"true", "yes", "y", "1"}

# Field names older prompt revisions emitted at the top level
_FLAT_LEAD_KEYS = {
    "customer_name": "name",
    "customer_phone": "phone",
    "customer_email": "email",
    "customer_address": "address",
    "summary": "project_summary",
}


def _clean_optional_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return None
    text = str(value).strip()
    if text.lower() in _NULL_STRINGS:
        return None
    return text


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


class LeadData(BaseModel):
    """Lead fields extracted by the model this turn"""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    project_summary: Optional[str] = None
    appointment_request: Optional[str] = None
    preferred_method: Optional[str] = None
    quality_score: Optional[int] = None
    ai_summary: Optional[str] = None

    @field_validator(
        "name", "phone", "email", "address", "project_summary",
        "appointment_request", "preferred_method", "ai_summary",
        mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value):
        return _clean_optional_text(value)

    @field_validator("email", mode="after")
    @classmethod
    def _normalize_email(cls, value):
        return value.lower() if value else value

    @field_validator("preferred_method", mode="after")
    @classmethod
    def _normalize_method(cls, value):
        return value.lower() if value else value

    @field_validator("quality_score", mode="before")
    @classmethod
    def _coerce_score(cls, value):
        if value is None or isinstance(value, bool):
            return None
        try:
            score = int(round(float(str(value).strip())))
        except (TypeError, ValueError):
            return None
        return max(1, min(10, score))

    def has_identity(self) -> bool:
        return bool(self.name or self.phone or self.email)


class ModelResponseEnvelope(BaseModel):
    """Typed view of one model turn"""
    model_config = ConfigDict(extra="ignore")

    reply: str
    show_products: bool = False
    product_name: Optional[str] = None
    visualize: bool = False
    style_description: Optional[str] = None
    lead_data: LeadData = Field(default_factory=LeadData)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_lead_fields(cls, data: Any):
        if not isinstance(data, dict):
            return data
        lead = data.get("lead_data")
        if isinstance(lead, dict):
            return data
        lifted: Dict[str, Any] = {}
        for flat_key, lead_key in _FLAT_LEAD_KEYS.items():
            if flat_key in data:
                lifted[lead_key] = data[flat_key]
        data = dict(data)
        data["lead_data"] = lifted
        return data

    @field_validator("reply", mode="before")
    @classmethod
    def _require_reply(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError("reply must be a non-empty string")
        return value.strip()

    @field_validator("show_products", "visualize", mode="before")
    @classmethod
    def _coerce_flags(cls, value):
        return _coerce_flag(value)

    @field_validator("product_name", "style_description", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return _clean_optional_text(value)
