"""Authenticated assistant RPC: text chat and image generation.

``AssistantService.handle`` receives the request body and the raw
``Authorization`` header and answers with ``(status, payload)`` where the
payload is ``{"reply": ...}``, ``{"reply": ..., "image": <data URI>}`` or
``{"error": ...}``. Gemini is the default provider; OpenAI serves text chat.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Mapping, Optional, Sequence

import google.generativeai as genai
from openai import OpenAI


logger = logging.getLogger(__name__)

GEMINI_PROVIDER = "gemini"
OPENAI_PROVIDER = "openai"

GEMINI_CHAT_MODEL = "gemini-2.0-flash"
GEMINI_IMAGE_MODEL = "gemini-2.0-flash-exp-image-generation"
OPENAI_CHAT_MODEL = "gpt-3.5-turbo"

SYSTEM_INSTRUCTION = (
    "You are a helpful, smart, and friendly assistant. Keep answers clear and "
    "concise. Use markdown formatting when helpful."
)
NO_RESPONSE = "No response generated."

Response = tuple[int, dict[str, Any]]
ModelFactory = Callable[[str, Optional[str]], Any]
TokenVerifier = Callable[[str], Optional[str]]


def _gemini_model_factory(api_key: str) -> ModelFactory:
    genai.configure(api_key=api_key)

    def build(model_name: str, system_instruction: str | None) -> Any:
        if system_instruction:
            return genai.GenerativeModel(model_name, system_instruction=system_instruction)
        return genai.GenerativeModel(model_name)

    return build


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def _parts(response: Any) -> Sequence[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def _first_text(parts: Sequence[Any]) -> str:
    for part in parts:
        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            return text
    return ""


def _first_image(parts: Sequence[Any]) -> str | None:
    for part in parts:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if not data:
            continue
        mime_type = getattr(inline, "mime_type", None) or "image/png"
        if isinstance(data, str):
            encoded = data
        else:
            encoded = base64.b64encode(data).decode("ascii")
        return f"data:{mime_type};base64,{encoded}"
    return None


class AssistantService:
    """Validates the caller, then forwards chat turns to the configured model."""

    def __init__(
        self,
        provider: str = GEMINI_PROVIDER,
        *,
        genai_api_key: str | None = None,
        openai_api_key: str | None = None,
        verify_token: TokenVerifier,
        model_factory: ModelFactory | None = None,
        openai_client: Any | None = None,
    ) -> None:
        self.provider = provider if provider in (GEMINI_PROVIDER, OPENAI_PROVIDER) else GEMINI_PROVIDER
        self._genai_api_key = genai_api_key
        self._openai_api_key = openai_api_key
        self._verify_token = verify_token
        self._model_factory = model_factory
        self._openai_client = openai_client

    # Provider plumbing ---------------------------------------------------
    def _configured(self) -> str | None:
        if self.provider == OPENAI_PROVIDER:
            if not (self._openai_api_key or self._openai_client):
                return "OPENAI_API_KEY is not configured"
        elif not (self._genai_api_key or self._model_factory):
            return "GOOGLE_AI_API_KEY is not configured"
        return None

    def _model(self, model_name: str, system_instruction: str | None = None) -> Any:
        if self._model_factory is None:
            self._model_factory = _gemini_model_factory(self._genai_api_key or "")
        return self._model_factory(model_name, system_instruction)

    def _openai(self) -> Any:
        if self._openai_client is None:
            self._openai_client = OpenAI(api_key=self._openai_api_key)
        return self._openai_client

    # Entry point ---------------------------------------------------------
    def handle(self, body: Mapping[str, Any] | None, authorization: str | None) -> Response:
        missing = self._configured()
        if missing:
            return 500, {"error": missing}

        token = _bearer_token(authorization)
        if token is None or not self._verify_token(token):
            return 401, {"error": "Unauthorized"}

        payload = body if isinstance(body, Mapping) else {}
        messages = payload.get("messages")
        if not isinstance(messages, list):
            messages = []
        action = payload.get("action") or "chat"

        try:
            if action == "chat":
                return 200, {"reply": self.chat(messages)}
            if action == "generate-image":
                if self.provider != GEMINI_PROVIDER:
                    return 400, {"error": "Image generation requires the Gemini provider"}
                prompt = ""
                if messages and isinstance(messages[0], Mapping):
                    prompt = str(messages[0].get("content") or messages[0].get("prompt") or "")
                reply, image = self.generate_image(prompt)
                return 200, {"reply": reply, "image": image}
        except Exception as exc:
            logger.exception("Assistant %s request failed", action)
            return 500, {"error": str(exc) or "Unknown error"}
        return 400, {"error": "Unknown action"}

    # Actions -------------------------------------------------------------
    def chat(self, messages: Sequence[Mapping[str, Any]]) -> str:
        turns = [
            (str(item.get("role") or "user"), str(item.get("content") or ""))
            for item in messages
            if isinstance(item, Mapping)
        ]
        if self.provider == OPENAI_PROVIDER:
            completion = self._openai().chat.completions.create(
                model=OPENAI_CHAT_MODEL,
                messages=[{"role": "system", "content": SYSTEM_INSTRUCTION}]
                + [
                    {"role": "assistant" if role == "assistant" else "user", "content": content}
                    for role, content in turns
                ],
            )
            choices = getattr(completion, "choices", None) or []
            content = choices[0].message.content if choices else None
            return content.strip() if isinstance(content, str) and content.strip() else NO_RESPONSE

        contents = [
            {"role": "model" if role == "assistant" else "user", "parts": [content]}
            for role, content in turns
        ]
        response = self._model(GEMINI_CHAT_MODEL, SYSTEM_INSTRUCTION).generate_content(contents)
        return _first_text(_parts(response)) or NO_RESPONSE

    def generate_image(self, prompt: str) -> tuple[str, str | None]:
        response = self._model(GEMINI_IMAGE_MODEL).generate_content(
            prompt or "Generate an image",
            generation_config={"response_modalities": ["TEXT", "IMAGE"]},
        )
        parts = _parts(response)
        return _first_text(parts), _first_image(parts)


def static_token_verifier(*tokens: str | None) -> TokenVerifier:
    """Accept exactly the given bearer tokens, returning the token as caller id."""

    allowed = {token for token in tokens if token}

    def verify(token: str) -> str | None:
        return token if token in allowed else None

    return verify


__all__ = [
    "AssistantService",
    "GEMINI_PROVIDER",
    "NO_RESPONSE",
    "OPENAI_PROVIDER",
    "static_token_verifier",
]
