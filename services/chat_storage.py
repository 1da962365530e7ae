"""Persistence backends for :class:`services.conversation_store.ConversationStore`.

Two interchangeable storages share one duck-typed contract:

``load_chats()``
    Return the persisted chats in display order.
``create_chat(name, now)`` / ``add_message(chat_id, text, sender, attachment, now)``
    Allocate and write a single record, returning it.
``rename_chat(chat_id, name)`` / ``delete_chat(chat_id)``
    Write through a single record change.

The local storage allocates ids itself and keeps the collection as one JSON
document; the remote storage writes rows and takes ids from the datastore.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Mapping

import requests

from api_client import DatastoreClient, eq_filter, in_filter
from local_store import KV
from models import (
    ATTACHMENT_TYPES,
    Attachment,
    Chat,
    Message,
    attachment_from_dict,
    format_timestamp,
    parse_timestamp,
    summarize,
)


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "chat-history"

CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "messages"


class LocalChatStorage:
    """Keeps the whole chat list as one JSON string under ``storage_key``.

    Every write re-reads the stored list under the store's lock and applies a
    single change to it, so sessions sharing the key never overwrite each
    other's records.
    """

    def __init__(self, kv: KV, storage_key: str = DEFAULT_STORAGE_KEY) -> None:
        self._kv = kv
        self.storage_key = storage_key

    def load_chats(self) -> list[Chat]:
        raw = self._kv.get(self.storage_key)
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable chat history under %r", self.storage_key)
            return []
        if not isinstance(payload, list):
            return []
        return [Chat.from_dict(entry) for entry in payload if isinstance(entry, Mapping)]

    def create_chat(self, name: str, now: datetime) -> Chat:
        chat = Chat(id=uuid.uuid4().hex, name=name, updated_at=now)
        self._update(lambda chats: chats + [chat])
        return chat

    def add_message(
        self,
        chat_id: str,
        text: str,
        sender: str,
        attachment: Attachment | None,
        now: datetime,
    ) -> Message:
        message = Message(
            id=uuid.uuid4().hex,
            text=text,
            sender=sender,  # type: ignore[arg-type]
            created_at=now,
            attachment=attachment,
        )
        self._update(lambda chats: _replace_chat(chats, chat_id, lambda chat: chat.with_message(message, now)))
        return message

    def rename_chat(self, chat_id: str, name: str) -> None:
        self._update(lambda chats: _replace_chat(chats, chat_id, lambda chat: chat.renamed(name)))

    def delete_chat(self, chat_id: str) -> None:
        self._update(lambda chats: [chat for chat in chats if chat.id != chat_id])

    def _update(self, change: Callable[[list[Chat]], list[Chat]]) -> None:
        with self._kv.lock:
            chats = change(self.load_chats())
            payload = json.dumps([chat.asdict() for chat in chats], ensure_ascii=False)
            self._kv.put(self.storage_key, payload)


def _replace_chat(chats: list[Chat], chat_id: str, change: Callable[[Chat], Chat]) -> list[Chat]:
    if not any(chat.id == chat_id for chat in chats):
        raise ValueError(f"Chat {chat_id} is no longer stored")
    return [change(chat) if chat.id == chat_id else chat for chat in chats]


def _attachment_columns(attachment: Attachment | None) -> dict[str, Any]:
    columns: dict[str, Any] = {f"{kind}_data": None for kind in ATTACHMENT_TYPES}
    if attachment is not None:
        columns[f"{attachment.kind}_data"] = attachment.asdict()
    return columns


def _message_from_row(row: Mapping[str, Any]) -> Message:
    attachment: Attachment | None = None
    for kind in ATTACHMENT_TYPES:
        attachment = attachment_from_dict(kind, row.get(f"{kind}_data"))
        if attachment is not None:
            break
    sender = row.get("sender")
    return Message(
        id=str(row.get("id") or ""),
        text=str(row.get("text") or ""),
        sender=sender if sender in ("user", "assistant") else "assistant",
        created_at=parse_timestamp(row.get("created_at")),
        attachment=attachment,
    )


class RemoteChatStorage:
    """Writes each record through to the ``conversations``/``messages`` tables."""

    def __init__(self, client: DatastoreClient, user_id: str) -> None:
        if not user_id:
            raise ValueError("Remote chat storage requires a user id")
        self._client = client
        self.user_id = user_id

    def load_chats(self) -> list[Chat]:
        conversations = self._client.select(
            CONVERSATIONS_TABLE,
            filters={"user_id": eq_filter(self.user_id)},
            order="created_at.asc",
        )
        if not conversations:
            return []

        conversation_ids = [str(row.get("id")) for row in conversations]
        rows = self._client.select(
            MESSAGES_TABLE,
            filters={"conversation_id": in_filter(conversation_ids)},
            order="created_at.asc",
        )
        messages_by_chat: dict[str, list[Message]] = {}
        for row in rows:
            try:
                message = _message_from_row(row)
            except ValueError:
                logger.warning("Skipping malformed message row %s", row.get("id"))
                continue
            messages_by_chat.setdefault(str(row.get("conversation_id")), []).append(message)

        chats: list[Chat] = []
        for row in conversations:
            chat_id = str(row.get("id"))
            messages = messages_by_chat.get(chat_id, [])
            last = messages[-1] if messages else None
            chats.append(
                Chat(
                    id=chat_id,
                    name=str(row.get("name") or "Chat"),
                    messages=tuple(messages),
                    last_message=summarize(last.text, last.attachment) if last else "",
                    updated_at=parse_timestamp(row.get("updated_at") or row.get("created_at")),
                )
            )
        return chats

    def create_chat(self, name: str, now: datetime) -> Chat:
        row = self._client.insert(CONVERSATIONS_TABLE, {"user_id": self.user_id, "name": name})
        return Chat(
            id=str(row["id"]),
            name=str(row.get("name") or name),
            updated_at=parse_timestamp(row.get("created_at") or now),
        )

    def add_message(
        self,
        chat_id: str,
        text: str,
        sender: str,
        attachment: Attachment | None,
        now: datetime,
    ) -> Message:
        row = self._client.insert(
            MESSAGES_TABLE,
            {
                "conversation_id": chat_id,
                "text": text,
                "sender": sender,
                **_attachment_columns(attachment),
            },
        )
        # The message row is already stored; a stale conversation timestamp
        # must not make the caller treat the message as unsent.
        try:
            self._client.update(
                CONVERSATIONS_TABLE,
                {"updated_at": format_timestamp(now)},
                filters={"id": eq_filter(chat_id)},
            )
        except requests.RequestException as exc:
            logger.warning("Could not bump updated_at for conversation %s: %s", chat_id, exc)
        return _message_from_row(row)

    def rename_chat(self, chat_id: str, name: str) -> None:
        self._client.update(CONVERSATIONS_TABLE, {"name": name}, filters={"id": eq_filter(chat_id)})

    def delete_chat(self, chat_id: str) -> None:
        self._client.delete(CONVERSATIONS_TABLE, filters={"id": eq_filter(chat_id)})


__all__ = ["DEFAULT_STORAGE_KEY", "LocalChatStorage", "RemoteChatStorage"]
