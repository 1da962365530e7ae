"""Chat tab renderer."""

from __future__ import annotations

import streamlit as st

from models import Chat
from services.search import SearchHighlight
from ui_components import render_message


def render_tab(chat: Chat | None, highlight: SearchHighlight | None = None, *, sending: bool = False) -> None:
    """Render the active chat's messages, oldest first."""

    if chat is None:
        st.info("Select a chat from the sidebar to start.")
        return

    st.subheader(chat.name)
    if not chat.messages:
        st.caption("No messages yet. Say hello!")
    active_id = highlight.message_id if highlight is not None and highlight.is_active() else None
    for message in chat.messages:
        render_message(message, highlighted=message.id == active_id)
    if sending:
        st.caption("Assistant is typing…")
