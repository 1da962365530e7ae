"""Application configuration helpers for the chat client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import streamlit as st


BACKEND_WEBHOOK = "webhook"
BACKEND_ASSISTANT = "assistant"
STORAGE_LOCAL = "local"
STORAGE_REMOTE = "remote"

DEFAULT_STORAGE_PATH = ".chat-data"
DEFAULT_STORAGE_KEY = "chat-history"
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class AppSettings:
    """Immutable configuration bundle for the chat client."""

    backend_mode: str
    webhook_url: str | None
    triggered_from: str
    assistant_url: str | None
    assistant_token: str | None
    llm_provider: str
    genai_api_key: str | None
    openai_api_key: str | None
    storage_mode: str
    storage_path: str
    storage_key: str
    datastore_url: str | None
    datastore_key: str | None
    user_id: str | None
    upload_dir: str
    request_timeout: float
    image_command: str

    @property
    def uses_remote_storage(self) -> bool:
        return self.storage_mode == STORAGE_REMOTE


def _safe_secret(key: str) -> Any:
    """Return a Streamlit secret when available."""

    try:
        return st.secrets.get(key)
    except Exception:
        return None


def _setting(key: str, default: str | None = None) -> str | None:
    value = _safe_secret(key)
    if value is None or value == "":
        value = os.getenv(key)
    if value is None or value == "":
        return default
    return str(value).strip()


def _coerce_choice(value: str | None, choices: tuple[str, ...], default: str) -> str:
    text = (value or "").strip().lower()
    return text if text in choices else default


def _coerce_float(value: Any, default: float) -> float:
    """Parse a positive float, falling back to ``default``."""

    if value is None:
        return default
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def load_settings() -> AppSettings:
    """Collect runtime configuration from environment and secrets."""

    storage_path = _setting("CHAT_STORAGE_PATH", DEFAULT_STORAGE_PATH) or DEFAULT_STORAGE_PATH
    datastore_url = _setting("SUPABASE_URL")
    return AppSettings(
        backend_mode=_coerce_choice(
            _setting("CHAT_BACKEND"),
            (BACKEND_WEBHOOK, BACKEND_ASSISTANT),
            BACKEND_WEBHOOK,
        ),
        webhook_url=_setting("WEBHOOK_URL"),
        triggered_from=_setting("TRIGGERED_FROM", "chat-client") or "chat-client",
        assistant_url=_setting("ASSISTANT_URL"),
        assistant_token=_setting("ASSISTANT_TOKEN"),
        llm_provider=_coerce_choice(_setting("LLM_PROVIDER"), ("gemini", "openai"), "gemini"),
        genai_api_key=_setting("GOOGLE_AI_API_KEY"),
        openai_api_key=_setting("OPENAI_API_KEY"),
        storage_mode=_coerce_choice(
            _setting("CHAT_STORAGE"),
            (STORAGE_LOCAL, STORAGE_REMOTE),
            STORAGE_LOCAL,
        ),
        storage_path=storage_path,
        storage_key=_setting("CHAT_STORAGE_KEY", DEFAULT_STORAGE_KEY) or DEFAULT_STORAGE_KEY,
        datastore_url=datastore_url.rstrip("/") if datastore_url else None,
        datastore_key=_setting("SUPABASE_KEY"),
        user_id=_setting("CHAT_USER_ID"),
        upload_dir=_setting("UPLOAD_DIR", os.path.join(storage_path, "uploads")) or storage_path,
        request_timeout=_coerce_float(_setting("REQUEST_TIMEOUT"), DEFAULT_REQUEST_TIMEOUT),
        image_command=_setting("IMAGE_COMMAND", "/image") or "/image",
    )


__all__ = [
    "AppSettings",
    "BACKEND_ASSISTANT",
    "BACKEND_WEBHOOK",
    "STORAGE_LOCAL",
    "STORAGE_REMOTE",
    "load_settings",
]
