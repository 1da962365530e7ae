"""Clients for the two reply backends: a raw webhook and the assistant service."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence

import requests

from api_client import extract_error_message
from models import Attachment, ImageAttachment, Message, format_timestamp
from services.payload_extractor import parse_body, resolve_reply


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_IMAGE_COMMAND = "/image"
DEFAULT_ASSISTANT_REPLY = "No response generated."
GENERATED_IMAGE_REPLY = "Here is your generated image."

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)

Transport = Callable[[Mapping[str, Any], str], tuple[int, Mapping[str, Any]]]


class AssistantServiceError(RuntimeError):
    """The assistant service answered with an error indicator."""


@dataclass(frozen=True)
class DispatchRequest:
    """Everything a backend needs to answer one user message."""

    chat_id: str
    text: str
    timestamp: datetime
    attachment: Attachment | None = None
    history: tuple[Message, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Reply:
    text: str
    image: ImageAttachment | None = None


def describe_error(exc: BaseException) -> str:
    """Return a human-readable description of a dispatch failure."""

    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        response = exc.response
        return f"API request failed ({response.status_code}): {extract_error_message(response)}"
    if isinstance(exc, requests.Timeout):
        return "The request timed out."
    if isinstance(exc, requests.ConnectionError):
        return "Could not reach the server."
    return str(exc) or exc.__class__.__name__


def build_webhook_payload(request: DispatchRequest, *, triggered_from: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "message": request.text,
        "timestamp": format_timestamp(request.timestamp),
        "sender": "user",
        "chat_id": request.chat_id,
        "triggered_from": triggered_from,
    }
    if request.attachment is not None:
        payload[request.attachment.kind] = request.attachment.asdict()
    return payload


@dataclass
class WebhookClient:
    """POSTs each message to a caller-configured webhook.

    The webhook may answer with JSON of any shape or with plain text; the reply
    is pulled out by :func:`services.payload_extractor.resolve_reply`.
    """

    url: str
    triggered_from: str = ""
    timeout: float = DEFAULT_TIMEOUT

    def reply(self, request: DispatchRequest) -> Reply:
        payload = build_webhook_payload(request, triggered_from=self.triggered_from)
        try:
            response = requests.post(
                self.url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("Webhook request to %s failed", self.url)
            raise
        if not response.ok:
            logger.error(
                "Webhook error (%s): %s",
                response.status_code,
                extract_error_message(response),
            )
            response.raise_for_status()
        body = parse_body(response.text, response.headers.get("Content-Type"))
        return Reply(text=resolve_reply(body))


def _history_messages(history: Sequence[Message]) -> list[dict[str, str]]:
    return [
        {"role": message.sender, "content": message.display_text}
        for message in history
        if message.display_text
    ]


def image_from_data_uri(data_uri: str, *, stem: str = "generated-image") -> ImageAttachment | None:
    """Wrap a base64 ``data:`` URI as an image attachment."""

    match = _DATA_URI_PATTERN.match(data_uri.strip())
    if not match:
        return None
    try:
        raw = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError):
        return None
    extension = match.group("mime").split("/", 1)[1].split("+", 1)[0]
    return ImageAttachment(url=data_uri, filename=f"{stem}.{extension}", size=len(raw))


@dataclass
class AssistantClient:
    """Calls the authenticated assistant RPC (chat or image generation).

    ``transport`` replaces the HTTP call with an in-process handler taking the
    request body and ``Authorization`` header value.
    """

    url: str | None = None
    token: str | None = None
    image_command: str = DEFAULT_IMAGE_COMMAND
    timeout: float = DEFAULT_TIMEOUT
    transport: Transport | None = None

    def build_body(self, request: DispatchRequest) -> dict[str, Any]:
        text = request.text.strip()
        command = self.image_command
        if command and (text == command or text.startswith(f"{command} ")):
            prompt = text[len(command):].strip()
            return {
                "messages": [{"role": "user", "content": prompt}],
                "action": "generate-image",
            }
        return {"messages": _history_messages(request.history), "action": "chat"}

    def _authorization(self) -> str:
        return f"Bearer {self.token}" if self.token else ""

    def _post(self, body: Mapping[str, Any]) -> Mapping[str, Any]:
        if self.transport is not None:
            status, payload = self.transport(body, self._authorization())
            if status >= 400:
                detail = payload.get("error") if isinstance(payload, Mapping) else None
                raise AssistantServiceError(str(detail or f"Assistant service error ({status})"))
            return payload
        if not self.url:
            raise AssistantServiceError("Assistant service URL is not configured")
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = self._authorization()
        try:
            response = requests.post(self.url, json=dict(body), headers=headers, timeout=self.timeout)
        except requests.RequestException:
            logger.exception("Assistant request to %s failed", self.url)
            raise
        if not response.ok:
            logger.error(
                "Assistant error (%s): %s",
                response.status_code,
                extract_error_message(response),
            )
            response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, Mapping):
            raise ValueError("Assistant service returned a malformed response")
        return payload

    def reply(self, request: DispatchRequest) -> Reply:
        payload = self._post(self.build_body(request))
        error = payload.get("error")
        if error:
            raise AssistantServiceError(str(error))
        text = payload.get("reply")
        image_field = payload.get("image")
        image = image_from_data_uri(image_field) if isinstance(image_field, str) else None
        if not isinstance(text, str) or not text.strip():
            text = GENERATED_IMAGE_REPLY if image is not None else DEFAULT_ASSISTANT_REPLY
        return Reply(text=text, image=image)


__all__ = [
    "AssistantClient",
    "AssistantServiceError",
    "DEFAULT_ASSISTANT_REPLY",
    "DEFAULT_IMAGE_COMMAND",
    "DEFAULT_TIMEOUT",
    "DispatchRequest",
    "GENERATED_IMAGE_REPLY",
    "Reply",
    "WebhookClient",
    "build_webhook_payload",
    "describe_error",
    "image_from_data_uri",
]
