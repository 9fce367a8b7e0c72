"""
Model output parsing

Turns raw text-generation output into a ModelResponseEnvelope. Markdown code
fences around the JSON are tolerated; anything that still is not a JSON
object with a reply is a hard per-turn failure.
"""
import json
import logging
import re

from pydantic import ValidationError

from blindbot.core.errors import ModelOutputInvalid
from blindbot.schemas.envelope import ModelResponseEnvelope

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(?P<body>.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fence(raw: str) -> str:
    """Remove one leading/trailing fenced-code wrapper if present"""
    match = _FENCE_PATTERN.match(raw)
    if match:
        return match.group("body").strip()
    return raw.strip()


def parse_model_response(raw: str) -> ModelResponseEnvelope:
    """
    Parse model output into the typed envelope.

    Args:
        raw: Text returned by the text-generation collaborator

    Returns:
        ModelResponseEnvelope with optional fields defaulted

    Raises:
        ModelOutputInvalid: non-JSON output, a non-object payload or a missing reply
    """
    if raw is None or not raw.strip():
        raise ModelOutputInvalid("Model returned empty output", raw_output=raw)

    body = strip_code_fence(raw)
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        logger.error(f"Model output is not valid JSON: {e}")
        raise ModelOutputInvalid(f"Model output is not valid JSON: {e}", raw_output=raw) from e

    if not isinstance(payload, dict):
        raise ModelOutputInvalid(
            f"Model output must be a JSON object, got {type(payload).__name__}", raw_output=raw
        )

    try:
        return ModelResponseEnvelope.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Model output failed envelope validation: {e.errors()}")
        raise ModelOutputInvalid(f"Model output failed validation: {e}", raw_output=raw) from e
