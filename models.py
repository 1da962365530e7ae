"""Shared dataclasses for chats, messages and their attachments."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Union


SUMMARY_LIMIT = 50
SUMMARY_ELLIPSIS = "..."

Sender = Literal["user", "assistant"]
SENDERS: tuple[str, ...] = ("user", "assistant")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Rebuild a timezone-aware ``datetime`` from an ISO-8601 string."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return utcnow()
    else:
        return utcnow()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ImageAttachment:
    """Uploaded (or generated) image descriptor."""

    url: str
    filename: str
    size: int

    kind = "image"

    @property
    def placeholder(self) -> str:
        return f"[Image: {self.filename}]"

    @property
    def summary(self) -> str:
        return "📷 Image"

    def asdict(self) -> dict[str, Any]:
        return {"url": self.url, "filename": self.filename, "size": self.size}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ImageAttachment":
        return cls(
            url=str(payload["url"]),
            filename=str(payload.get("filename") or "image"),
            size=_coerce_int(payload.get("size")),
        )


@dataclass(frozen=True)
class DocumentAttachment:
    """Uploaded document descriptor."""

    url: str
    filename: str
    size: int
    mime_type: str

    kind = "document"

    @property
    def placeholder(self) -> str:
        return f"[Document: {self.filename}]"

    @property
    def summary(self) -> str:
        return f"📄 {self.filename}"

    def asdict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "filename": self.filename,
            "size": self.size,
            "mimeType": self.mime_type,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DocumentAttachment":
        mime_type = payload.get("mimeType") or payload.get("mime_type") or "application/octet-stream"
        return cls(
            url=str(payload["url"]),
            filename=str(payload.get("filename") or "document"),
            size=_coerce_int(payload.get("size")),
            mime_type=str(mime_type),
        )


@dataclass(frozen=True)
class VoiceAttachment:
    """Recorded voice message descriptor. ``duration`` is in seconds."""

    url: str
    filename: str
    size: int
    duration: float

    kind = "voice"

    @property
    def placeholder(self) -> str:
        return f"[Voice message: {round(self.duration)}s]"

    @property
    def summary(self) -> str:
        return "🎤 Voice message"

    def asdict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "filename": self.filename,
            "size": self.size,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "VoiceAttachment":
        return cls(
            url=str(payload["url"]),
            filename=str(payload.get("filename") or "voice"),
            size=_coerce_int(payload.get("size")),
            duration=_coerce_float(payload.get("duration")),
        )


Attachment = Union[ImageAttachment, DocumentAttachment, VoiceAttachment]

ATTACHMENT_TYPES: dict[str, type] = {
    ImageAttachment.kind: ImageAttachment,
    DocumentAttachment.kind: DocumentAttachment,
    VoiceAttachment.kind: VoiceAttachment,
}


def attachment_from_dict(kind: str | None, payload: Any) -> Attachment | None:
    """Rebuild an attachment variant, returning ``None`` for unusable payloads."""

    attachment_type = ATTACHMENT_TYPES.get(kind or "")
    if attachment_type is None or not isinstance(payload, Mapping) or not payload.get("url"):
        return None
    return attachment_type.from_dict(payload)


def summarize(text: str, attachment: Attachment | None = None) -> str:
    """Return the sidebar preview for a message."""

    preview = text or (attachment.summary if attachment else "")
    if len(preview) > SUMMARY_LIMIT:
        return f"{preview[:SUMMARY_LIMIT]}{SUMMARY_ELLIPSIS}"
    return preview


@dataclass(frozen=True)
class Message:
    """A single chat message. Immutable once created."""

    id: str
    text: str
    sender: Sender
    created_at: datetime
    attachment: Attachment | None = None

    def __post_init__(self) -> None:
        if self.sender not in SENDERS:
            raise ValueError(f"Unknown sender: {self.sender!r}")
        if not self.text and self.attachment is None:
            raise ValueError("Message text may only be empty when an attachment is present")

    @property
    def display_text(self) -> str:
        """Text forwarded to backends; attachment placeholder when empty."""

        if self.text:
            return self.text
        return self.attachment.placeholder if self.attachment else ""

    def asdict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "sender": self.sender,
            "timestamp": format_timestamp(self.created_at),
        }
        if self.attachment is not None:
            payload[self.attachment.kind] = self.attachment.asdict()
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Message":
        attachment: Attachment | None = None
        for kind in ATTACHMENT_TYPES:
            attachment = attachment_from_dict(kind, payload.get(kind))
            if attachment is not None:
                break
        sender = payload.get("sender")
        return cls(
            id=str(payload.get("id") or ""),
            text=str(payload.get("text") or ""),
            sender=sender if sender in SENDERS else "assistant",
            created_at=parse_timestamp(payload.get("timestamp") or payload.get("created_at")),
            attachment=attachment,
        )


@dataclass(frozen=True)
class Chat:
    """A named conversation.

    ``last_message`` and ``updated_at`` are derived from the message list and
    only change through :meth:`with_message`.
    """

    id: str
    name: str
    messages: tuple[Message, ...] = field(default_factory=tuple)
    last_message: str = ""
    updated_at: datetime = field(default_factory=utcnow)

    def with_message(self, message: Message, now: datetime) -> "Chat":
        return replace(
            self,
            messages=self.messages + (message,),
            last_message=summarize(message.text, message.attachment),
            updated_at=now,
        )

    def renamed(self, name: str) -> "Chat":
        return replace(self, name=name)

    def asdict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "messages": [message.asdict() for message in self.messages],
            "lastMessage": self.last_message,
            "timestamp": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Chat":
        messages_field = payload.get("messages") or []
        messages: list[Message] = []
        if isinstance(messages_field, list):
            for entry in messages_field:
                if not isinstance(entry, Mapping):
                    continue
                try:
                    messages.append(Message.from_dict(entry))
                except ValueError:
                    continue
        last = messages[-1] if messages else None
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or "Chat"),
            messages=tuple(messages),
            last_message=summarize(last.text, last.attachment) if last else "",
            updated_at=parse_timestamp(payload.get("timestamp") or payload.get("updated_at")),
        )


@dataclass(frozen=True)
class SearchResult:
    """A message matching a search query, addressed by chat and position."""

    chat_id: str
    chat_name: str
    message: Message
    position: int


__all__ = [
    "ATTACHMENT_TYPES",
    "Attachment",
    "Chat",
    "DocumentAttachment",
    "ImageAttachment",
    "Message",
    "SUMMARY_LIMIT",
    "SearchResult",
    "Sender",
    "VoiceAttachment",
    "attachment_from_dict",
    "format_timestamp",
    "parse_timestamp",
    "summarize",
    "utcnow",
]
