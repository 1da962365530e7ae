"""Streamlit multi-conversation chat client."""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Any, MutableMapping

import streamlit as st

from agent_selector import init_llm_provider, render_llm_selector, selected_provider
from app_settings import BACKEND_ASSISTANT, AppSettings, load_settings
from chat_runtime import build_blob_store, build_dispatcher, build_store
from models import Attachment
from services.conversation_store import PersistenceError
from services.dispatch import DispatchResult, DispatchStatus, MessageDispatcher
from services.search import SearchHighlight
from services.uploads import UploadError, upload_document, upload_image, upload_voice, wav_duration
from tabs.chat import render_tab as render_chat_tab
from tabs.history import render_sidebar
from tabs.search import render_search
from ui_components import attachment_caption
from utils_streamlit import notify, trigger_rerun


logger = logging.getLogger(__name__)

PENDING_ATTACHMENT_KEY = "pending_attachment"


def _init_session(settings: AppSettings) -> bool:
    """Build the store once per session; return False when it cannot load."""

    if "chat_store" in st.session_state:
        return True
    try:
        st.session_state.chat_store = build_store(settings)
    except (ValueError, PersistenceError) as exc:
        logger.exception("Could not load chats")
        st.error(f"Could not load chats: {exc}")
        return False
    st.session_state.dispatcher = None
    st.session_state.search_highlight = None
    st.session_state.last_upload_digest = None
    st.session_state.last_audio_digest = None
    return True


def _dispatcher(settings: AppSettings) -> MessageDispatcher | None:
    provider = selected_provider() if settings.backend_mode == BACKEND_ASSISTANT else None
    current = st.session_state.get("dispatcher")
    if current is not None and st.session_state.get("dispatcher_provider") == provider:
        return current
    try:
        dispatcher = build_dispatcher(
            settings,
            st.session_state.chat_store,
            notifier=notify,
            provider=provider,
        )
    except ValueError as exc:
        st.error(str(exc))
        return None
    st.session_state.dispatcher = dispatcher
    st.session_state.dispatcher_provider = provider
    return dispatcher


def _digest(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def _upload_file(uploaded, settings: AppSettings) -> Attachment | None:
    data = uploaded.getvalue()
    digest = _digest(data)
    if digest == st.session_state.last_upload_digest:
        return None
    st.session_state.last_upload_digest = digest
    blob_store = build_blob_store(settings)
    content_type = uploaded.type or ""
    try:
        if content_type.startswith("image/"):
            return upload_image(data, uploaded.name, content_type, blob_store=blob_store)
        return upload_document(data, uploaded.name, content_type, blob_store=blob_store)
    except UploadError as exc:
        notify("error", str(exc))
        return None


def _upload_audio(audio, settings: AppSettings) -> Attachment | None:
    data = audio.getvalue()
    digest = _digest(data)
    if digest == st.session_state.last_audio_digest:
        return None
    st.session_state.last_audio_digest = digest
    try:
        return upload_voice(
            data,
            wav_duration(data),
            blob_store=build_blob_store(settings),
            extension="wav",
        )
    except UploadError as exc:
        notify("error", str(exc))
        return None


def submit_message(
    dispatcher: MessageDispatcher,
    text: str | None,
    state: MutableMapping[str, Any],
) -> DispatchResult:
    """Send ``text`` together with the pending attachment, if any.

    A rejected send keeps the attachment pending so it can be sent again.
    """

    attachment = state.pop(PENDING_ATTACHMENT_KEY, None)
    result = dispatcher.send(text, attachment)
    if result.status is DispatchStatus.REJECTED and attachment is not None:
        state[PENDING_ATTACHMENT_KEY] = attachment
    return result


def _send(dispatcher: MessageDispatcher, text: str | None) -> None:
    with st.spinner("Waiting for a reply…"):
        result = submit_message(dispatcher, text, st.session_state)
    if result.status is DispatchStatus.REJECTED:
        notify("warning", result.error or "Message not sent")
    trigger_rerun()


def _render_pending_attachment(dispatcher: MessageDispatcher) -> None:
    attachment = st.session_state.get(PENDING_ATTACHMENT_KEY)
    if attachment is None:
        return
    st.caption(f"Attached: {attachment_caption(attachment)}. Type a caption below or send it as is.")
    send_col, remove_col = st.columns(2)
    with send_col:
        if st.button("Send attachment", key="send_attachment", disabled=dispatcher.is_sending):
            _send(dispatcher, "")
    with remove_col:
        if st.button("Remove attachment", key="remove_attachment"):
            st.session_state.pop(PENDING_ATTACHMENT_KEY, None)
            trigger_rerun()


def _open_search_result(result) -> None:
    store = st.session_state.chat_store
    if store.select_chat(result.chat_id):
        st.session_state.search_highlight = SearchHighlight.start(result.message.id)
        trigger_rerun()


def _expire_highlight() -> None:
    """Wait out an active search highlight, then rerun so it disappears."""

    highlight = st.session_state.get("search_highlight")
    if highlight is None:
        return
    time.sleep(highlight.remaining())
    st.session_state.search_highlight = None
    trigger_rerun()


def _render_app() -> None:
    st.set_page_config(page_title="Chat", layout="wide")
    settings = load_settings()
    if not _init_session(settings):
        return

    store = st.session_state.chat_store
    if settings.backend_mode == BACKEND_ASSISTANT and not settings.assistant_url:
        init_llm_provider(
            default=settings.llm_provider,
            openai_ready=bool(settings.openai_api_key),
            gemini_ready=bool(settings.genai_api_key),
        )
        render_llm_selector(
            openai_ready=bool(settings.openai_api_key),
            gemini_ready=bool(settings.genai_api_key),
        )

    if render_sidebar(store):
        trigger_rerun()
    chosen = render_search(store)
    if chosen is not None:
        _open_search_result(chosen)

    dispatcher = _dispatcher(settings)
    render_chat_tab(
        store.active_chat,
        st.session_state.search_highlight,
        sending=bool(dispatcher and dispatcher.is_sending),
    )
    if dispatcher is None:
        return

    with st.expander("Attach a file or voice message"):
        uploaded = st.file_uploader("Attach a file", key="attachment_input", label_visibility="collapsed")
        audio = st.audio_input("Record a voice message", key="voice_input")

    if uploaded is not None:
        attachment = _upload_file(uploaded, settings)
        if attachment is not None:
            st.session_state[PENDING_ATTACHMENT_KEY] = attachment
    if audio is not None:
        attachment = _upload_audio(audio, settings)
        if attachment is not None:
            st.session_state[PENDING_ATTACHMENT_KEY] = attachment
    _render_pending_attachment(dispatcher)

    prompt = st.chat_input(
        f"Message (type {settings.image_command} <prompt> for an image)"
        if settings.backend_mode == BACKEND_ASSISTANT
        else "Type a message",
        key="chat_input",
        disabled=dispatcher.is_sending,
    )
    if prompt:
        _send(dispatcher, prompt)
    _expire_highlight()


def main() -> None:
    """Entry point for ``streamlit run chat_app.py``."""

    _render_app()


if __name__ == "__main__":
    main()
