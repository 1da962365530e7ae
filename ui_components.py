"""Reusable Streamlit UI primitives for chat messages and attachments."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

import streamlit as st

from models import Attachment, DocumentAttachment, ImageAttachment, Message, VoiceAttachment
from services.uploads import document_icon, format_size


def sender_label(message: Message) -> str:
    return "You" if message.sender == "user" else "Assistant"


def format_message_time(value: datetime) -> str:
    """Render a message timestamp in local time, e.g. ``2024-05-01 at 14:03``."""

    local = value.astimezone()
    return f"{local:%Y-%m-%d} at {local:%H:%M}"


def attachment_caption(attachment: Attachment) -> str:
    """Return the one-line caption shown under an attachment preview."""

    if isinstance(attachment, DocumentAttachment):
        return f"{document_icon(attachment.mime_type)} {attachment.filename} · {format_size(attachment.size)}"
    if isinstance(attachment, VoiceAttachment):
        return f"🎤 Voice message · {round(attachment.duration)}s"
    return f"{attachment.filename} · {format_size(attachment.size)}"


def highlight_markdown(segments: Sequence[tuple[str, bool]]) -> str:
    """Join highlight segments into markdown, marking matches in bold."""

    parts: list[str] = []
    for text, matched in segments:
        if matched and text.strip():
            parts.append(f"**{text}**")
        else:
            parts.append(text)
    return "".join(parts)


def render_attachment(attachment: Attachment, *, st_module=st) -> None:
    """Render an attachment preview with consistent styling."""

    if isinstance(attachment, ImageAttachment):
        st_module.image(attachment.url, caption=attachment_caption(attachment))
    elif isinstance(attachment, VoiceAttachment):
        st_module.audio(attachment.url)
        st_module.caption(attachment_caption(attachment))
    else:
        st_module.markdown(f"[{attachment_caption(attachment)}]({attachment.url})")


def render_message(message: Message, *, highlighted: bool = False, st_module=st) -> None:
    """Render a single chat bubble."""

    role = "user" if message.sender == "user" else "assistant"
    with st_module.chat_message(role):
        if highlighted:
            st_module.info(message.text or attachment_caption(message.attachment))
        elif message.text:
            st_module.markdown(message.text)
        if message.attachment is not None:
            render_attachment(message.attachment, st_module=st_module)
        st_module.caption(format_message_time(message.created_at))


__all__ = [
    "attachment_caption",
    "format_message_time",
    "highlight_markdown",
    "render_attachment",
    "render_message",
    "sender_label",
]
