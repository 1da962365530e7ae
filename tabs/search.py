"""Sidebar search across every chat."""

from __future__ import annotations

import streamlit as st

from models import SearchResult
from services.conversation_store import ConversationStore
from services.search import highlight_segments, search_messages
from ui_components import highlight_markdown, sender_label

MAX_RESULTS = 20


def render_search(store: ConversationStore) -> SearchResult | None:
    """Render the search box and results; return the result the user opened."""

    query = st.sidebar.text_input("Search messages", key="search_query", placeholder="Search all chats")
    if not (query or "").strip():
        return None

    results = search_messages(store.chats, query)
    if not results:
        st.sidebar.caption("No messages found.")
        return None

    st.sidebar.caption(f"{len(results)} result(s)")
    chosen: SearchResult | None = None
    for result in results[:MAX_RESULTS]:
        snippet = highlight_markdown(highlight_segments(result.message.text, query))
        st.sidebar.markdown(f"**{result.chat_name}** · {sender_label(result.message)}: {snippet}")
        if st.sidebar.button("Open", key=f"open_{result.chat_id}_{result.message.id}"):
            chosen = result
    return chosen


__all__ = ["render_search"]
