"""Helpers for choosing between Gemini and OpenAI for in-process assistant replies."""

from __future__ import annotations

from typing import List

import streamlit as st

from services.assistant_service import GEMINI_PROVIDER, OPENAI_PROVIDER

GENAI_LABEL = "Gemini Flash"
OPENAI_LABEL = "OpenAI (GPT-3.5)"

_PROVIDER_BY_LABEL = {GENAI_LABEL: GEMINI_PROVIDER, OPENAI_LABEL: OPENAI_PROVIDER}
_LABEL_BY_PROVIDER = {value: key for key, value in _PROVIDER_BY_LABEL.items()}


def provider_options(openai_ready: bool, gemini_ready: bool) -> List[str]:
    options: List[str] = []
    if gemini_ready:
        options.append(GENAI_LABEL)
    if openai_ready:
        options.append(OPENAI_LABEL)
    if not options:
        options = [GENAI_LABEL]
    return options


def init_llm_provider(*, default: str, openai_ready: bool, gemini_ready: bool) -> None:
    """Ensure the session tracks which provider is active."""

    if "llm_provider" in st.session_state:
        return
    options = provider_options(openai_ready, gemini_ready)
    label = _LABEL_BY_PROVIDER.get(default)
    st.session_state.llm_provider = label if label in options else options[0]


def render_llm_selector(*, openai_ready: bool, gemini_ready: bool) -> bool:
    """Render the sidebar provider picker; return True when the choice changed."""

    options = provider_options(openai_ready, gemini_ready)
    current = st.session_state.get("llm_provider")
    if current not in options:
        current = options[0]
    selection = st.sidebar.selectbox(
        "Response model",
        options,
        index=options.index(current),
        help="Switch between Gemini and OpenAI for assistant replies.",
    )
    if selection != st.session_state.get("llm_provider"):
        st.session_state.llm_provider = selection
        st.toast(f"LLM switched to {selection}", icon="🤖")
        return True
    return False


def selected_provider() -> str:
    """Return the provider id chosen in this session."""

    return _PROVIDER_BY_LABEL.get(st.session_state.get("llm_provider"), GEMINI_PROVIDER)


__all__ = [
    "GENAI_LABEL",
    "OPENAI_LABEL",
    "init_llm_provider",
    "provider_options",
    "render_llm_selector",
    "selected_provider",
]
