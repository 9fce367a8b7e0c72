"""Payload builders shared by the test modules"""
import json
from typing import Any, Dict, Optional


def model_output(reply: str = "Happy to help!", **fields: Any) -> str:
    """JSON the chat model would return for a turn"""
    payload: Dict[str, Any] = {"reply": reply}
    payload.update(fields)
    return json.dumps(payload)


def chat_body(api_key: Optional[str], *texts: str, key_field: str = "clientApiKey") -> Dict[str, Any]:
    """Request body where texts alternate user/model, ending on a user turn"""
    history = []
    count = len(texts)
    for index, text in enumerate(texts):
        role = "user" if (count - 1 - index) % 2 == 0 else "model"
        history.append({"role": role, "parts": [{"text": text}]})
    return {"history": history, key_field: api_key}
