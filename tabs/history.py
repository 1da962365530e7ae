"""Sidebar chat history: create, select, rename and delete chats."""

from __future__ import annotations

import streamlit as st

from models import Chat, format_timestamp
from services.conversation_store import ConversationStore, PersistenceError
from utils_streamlit import notify


def _chat_label(chat: Chat, active_id: str) -> str:
    marker = "▶ " if chat.id == active_id else ""
    summary = chat.last_message or "No messages yet"
    return f"{marker}{chat.name} · {summary}"


def _rename(store: ConversationStore, chat: Chat) -> bool:
    new_name = st.sidebar.text_input("Chat name", value=chat.name, key=f"rename_{chat.id}")
    if new_name == chat.name or not st.sidebar.button("Rename", key=f"rename_btn_{chat.id}"):
        return False
    try:
        renamed = store.rename_chat(chat.id, new_name)
    except PersistenceError as exc:
        notify("error", f"Could not rename chat: {exc}")
        return False
    if not renamed:
        notify("warning", "Chat names cannot be empty.")
    return renamed


def _delete(store: ConversationStore, chat: Chat) -> bool:
    disabled = len(store) <= 1
    if not st.sidebar.button("Delete chat", key=f"delete_{chat.id}", disabled=disabled):
        return False
    try:
        return store.delete_chat(chat.id)
    except PersistenceError as exc:
        notify("error", f"Could not delete chat: {exc}")
        return False


def render_sidebar(store: ConversationStore) -> bool:
    """Render the chat list; return True when the store changed."""

    st.sidebar.header("Chats")
    changed = False
    if st.sidebar.button("➕ New chat", key="new_chat"):
        try:
            store.create_chat()
            changed = True
        except PersistenceError as exc:
            notify("error", f"Could not create chat: {exc}")

    active_id = store.active_chat_id
    for chat in store.chats:
        if st.sidebar.button(
            _chat_label(chat, active_id),
            key=f"chat_{chat.id}",
            help=f"Updated {format_timestamp(chat.updated_at)}",
            use_container_width=True,
        ):
            changed = store.select_chat(chat.id) or changed

    active = store.active_chat
    if active is not None:
        with st.sidebar.expander("Manage chat"):
            changed = _rename(store, active) or changed
            changed = _delete(store, active) or changed
    return changed


__all__ = ["render_sidebar"]
