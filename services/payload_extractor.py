"""Normalize arbitrary webhook response bodies into reply text.

Webhooks answer with whatever shape their author chose: plain text, a bare
number, ``{"output": ...}``, ``[{"text": ...}]`` and so on. The helpers here
treat the body as a JSON value (``None``, ``str``, ``bool``, ``int``,
``float``, list or mapping) and never raise.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence, Union


JsonValue = Union[None, str, bool, int, float, Sequence[Any], Mapping[str, Any]]

REPLY_FIELDS: tuple[str, ...] = (
    "output",
    "text",
    "message",
    "reply",
    "result",
    "response",
    "content",
    "data.output",
    "data.text",
    "data.message",
)

FALLBACK_REPLY = "No content returned from the webhook."


def _lookup(payload: Mapping[str, Any], dotted: str) -> Any:
    current: Any = payload
    for part in dotted.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def extract_reply(payload: JsonValue) -> str:
    """Return the most plausible reply text contained in ``payload``."""

    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, bool):
        return "true" if payload else "false"
    if isinstance(payload, float) and payload.is_integer():
        return str(int(payload))
    if isinstance(payload, (int, float)):
        return str(payload)
    if isinstance(payload, Mapping):
        for name in REPLY_FIELDS:
            value = _lookup(payload, name)
            if isinstance(value, str):
                return value
        if len(payload) == 1:
            (only,) = payload.values()
            if isinstance(only, str):
                return only
        return ""
    if isinstance(payload, (list, tuple)):
        for item in payload:
            text = extract_reply(item)
            if text:
                return text
        return ""
    return ""


def resolve_reply(payload: JsonValue, *, fallback: str = FALLBACK_REPLY) -> str:
    """Extract reply text, substituting ``fallback`` when nothing usable is found."""

    return extract_reply(payload) or fallback


def parse_body(text: str | None, content_type: str | None = None) -> JsonValue:
    """Decode a response body into a JSON value.

    JSON content types are decoded; anything else is kept as plain text.
    Malformed JSON degrades to the raw text.
    """

    if text is None:
        return None
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type == "application/json" or media_type.endswith("+json"):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


__all__ = [
    "FALLBACK_REPLY",
    "JsonValue",
    "REPLY_FIELDS",
    "extract_reply",
    "parse_body",
    "resolve_reply",
]
