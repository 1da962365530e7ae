"""In-memory conversation collection with write-through persistence."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

import requests

from models import Attachment, Chat, Message, utcnow


logger = logging.getLogger(__name__)

DEFAULT_CHAT_PREFIX = "Chat"


class ChatNotFoundError(KeyError):
    """Raised when an operation targets a chat that does not exist."""


class PersistenceError(RuntimeError):
    """Raised when the backing storage rejects a write."""


class ConversationStore:
    """Holds every chat, the active chat pointer and their derived summaries.

    Each mutation first asks the storage to persist the change and only then
    swaps the in-memory state, so a failed write leaves the store exactly as it
    was. New chats are appended at the end of the display order.
    """

    def __init__(
        self,
        storage: Any,
        *,
        clock: Callable[[], datetime] | None = None,
        chat_prefix: str = DEFAULT_CHAT_PREFIX,
    ) -> None:
        self._storage = storage
        self._clock = clock or utcnow
        self._chat_prefix = chat_prefix
        self._chats: dict[str, Chat] = {}
        self._active_chat_id: str = ""

    # Accessors -----------------------------------------------------------
    @property
    def chats(self) -> list[Chat]:
        return list(self._chats.values())

    @property
    def active_chat_id(self) -> str:
        return self._active_chat_id

    @property
    def active_chat(self) -> Optional[Chat]:
        return self._chats.get(self._active_chat_id)

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        return self._chats.get(chat_id)

    def __len__(self) -> int:
        return len(self._chats)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._chats

    # Lifecycle -----------------------------------------------------------
    def load(self) -> "ConversationStore":
        """Populate from storage, creating a first chat when none exist."""

        chats = self._persist("load chats", self._storage.load_chats)
        self._chats = {chat.id: chat for chat in chats}
        self._active_chat_id = next(iter(self._chats), "")
        if not self._chats:
            self.create_chat(f"{self._chat_prefix} 1")
        logger.info("Loaded %d chat(s)", len(self._chats))
        return self

    # Mutations -----------------------------------------------------------
    def create_chat(self, name: str | None = None) -> Chat:
        cleaned = (name or "").strip() or f"{self._chat_prefix} {len(self._chats) + 1}"
        chat = self._persist("create chat", self._storage.create_chat, cleaned, self._clock())
        self._chats = {**self._chats, chat.id: chat}
        self._active_chat_id = chat.id
        return chat

    def rename_chat(self, chat_id: str, new_name: str) -> bool:
        cleaned = (new_name or "").strip()
        chat = self._chats.get(chat_id)
        if not cleaned or chat is None:
            return False
        self._persist("rename chat", self._storage.rename_chat, chat_id, cleaned)
        self._chats = {**self._chats, chat_id: chat.renamed(cleaned)}
        return True

    def delete_chat(self, chat_id: str) -> bool:
        if chat_id not in self._chats or len(self._chats) <= 1:
            return False
        self._persist("delete chat", self._storage.delete_chat, chat_id)
        chats = {key: chat for key, chat in self._chats.items() if key != chat_id}
        self._chats = chats
        if self._active_chat_id == chat_id:
            self._active_chat_id = next(iter(chats), "")
        return True

    def select_chat(self, chat_id: str) -> bool:
        if chat_id not in self._chats:
            return False
        self._active_chat_id = chat_id
        return True

    def append_message(
        self,
        chat_id: str,
        text: str,
        sender: str,
        attachment: Attachment | None = None,
    ) -> Message:
        """Append a message and refresh the chat's derived summary."""

        chat = self._chats.get(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        if not text and attachment is None:
            raise ValueError("Message text may only be empty when an attachment is present")
        now = self._clock()
        message = self._persist(
            "append message",
            self._storage.add_message,
            chat_id,
            text,
            sender,
            attachment,
            now,
        )
        self._chats = {**self._chats, chat_id: chat.with_message(message, now)}
        return message

    # Internal helpers ----------------------------------------------------
    def _persist(self, action: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except (OSError, ValueError, requests.RequestException) as exc:
            logger.warning("Failed to %s: %s", action, exc)
            raise PersistenceError(f"Failed to {action}: {exc}") from exc


__all__ = ["ChatNotFoundError", "ConversationStore", "PersistenceError"]
