"""Send pipeline: optimistic user append, backend call, assistant append."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from backend_client import (
    DEFAULT_ASSISTANT_REPLY,
    AssistantServiceError,
    DispatchRequest,
    Reply,
    describe_error,
)
from models import Attachment, Message

from .conversation_store import ChatNotFoundError, ConversationStore, PersistenceError


logger = logging.getLogger(__name__)

ERROR_REPLY_PREFIX = "Sorry, an error occurred"

Notifier = Callable[[str, str], None]


class DispatchState(enum.Enum):
    IDLE = "idle"
    SENDING = "sending"


class DispatchStatus(enum.Enum):
    REJECTED = "rejected"
    ABORTED = "aborted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DROPPED = "dropped"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one :meth:`MessageDispatcher.send` call."""

    status: DispatchStatus
    chat_id: str | None = None
    user_message: Message | None = None
    reply_message: Message | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.SUCCEEDED


def error_reply_text(detail: str | None) -> str:
    if detail:
        return f"{ERROR_REPLY_PREFIX}: {detail}"
    return f"{ERROR_REPLY_PREFIX}. Please try again."


def _silent(level: str, message: str) -> None:
    return None


class MessageDispatcher:
    """Drives one input surface through ``IDLE -> SENDING -> IDLE``.

    ``backend`` is any object with ``reply(DispatchRequest) -> Reply``.
    ``notifier(level, message)`` surfaces transient notifications; levels are
    ``"error"`` and ``"warning"``.
    """

    def __init__(
        self,
        store: ConversationStore,
        backend: Any,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self._notify = notifier or _silent
        self._state = DispatchState.IDLE

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def is_sending(self) -> bool:
        return self._state is DispatchState.SENDING

    def send(self, text: str | None, attachment: Optional[Attachment] = None) -> DispatchResult:
        cleaned = (text or "").strip()
        if not cleaned and attachment is None:
            return DispatchResult(DispatchStatus.REJECTED, error="Nothing to send")
        if self.is_sending:
            return DispatchResult(DispatchStatus.REJECTED, error="A message is already being sent")
        chat_id = self.store.active_chat_id
        if not chat_id or chat_id not in self.store:
            return DispatchResult(DispatchStatus.REJECTED, error="No active chat")

        self._state = DispatchState.SENDING
        try:
            return self._dispatch(chat_id, cleaned, attachment)
        finally:
            self._state = DispatchState.IDLE

    # Internal helpers ----------------------------------------------------
    def _dispatch(self, chat_id: str, text: str, attachment: Optional[Attachment]) -> DispatchResult:
        try:
            user_message = self.store.append_message(chat_id, text, "user", attachment)
        except PersistenceError as exc:
            self._notify("error", f"Could not save your message: {exc}")
            return DispatchResult(DispatchStatus.ABORTED, chat_id=chat_id, error=str(exc))

        chat = self.store.get_chat(chat_id)
        request = DispatchRequest(
            chat_id=chat_id,
            text=user_message.display_text,
            timestamp=user_message.created_at,
            attachment=attachment,
            history=chat.messages if chat is not None else (user_message,),
        )

        try:
            reply: Reply = self.backend.reply(request)
        except (requests.RequestException, AssistantServiceError, ValueError) as exc:
            detail = describe_error(exc)
            logger.warning("Dispatch to chat %s failed: %s", chat_id, detail)
            self._notify("error", f"Failed to get a response: {detail}")
            reply_message = self._append_reply(chat_id, error_reply_text(detail), None)
            return DispatchResult(
                DispatchStatus.FAILED,
                chat_id=chat_id,
                user_message=user_message,
                reply_message=reply_message,
                error=detail,
            )

        if chat_id not in self.store:
            logger.warning("Discarding reply for deleted chat %s", chat_id)
            return DispatchResult(DispatchStatus.DROPPED, chat_id=chat_id, user_message=user_message)

        try:
            reply_text = reply.text or ("" if reply.image else DEFAULT_ASSISTANT_REPLY)
            reply_message = self.store.append_message(chat_id, reply_text, "assistant", reply.image)
        except ChatNotFoundError:
            logger.warning("Discarding reply for deleted chat %s", chat_id)
            return DispatchResult(DispatchStatus.DROPPED, chat_id=chat_id, user_message=user_message)
        except PersistenceError as exc:
            self._notify("error", f"Could not save the reply: {exc}")
            return DispatchResult(
                DispatchStatus.FAILED,
                chat_id=chat_id,
                user_message=user_message,
                error=str(exc),
            )
        return DispatchResult(
            DispatchStatus.SUCCEEDED,
            chat_id=chat_id,
            user_message=user_message,
            reply_message=reply_message,
        )

    def _append_reply(self, chat_id: str, text: str, attachment: Optional[Attachment]) -> Message | None:
        try:
            return self.store.append_message(chat_id, text, "assistant", attachment)
        except ChatNotFoundError:
            logger.warning("Discarding error reply for deleted chat %s", chat_id)
        except PersistenceError as exc:
            self._notify("error", f"Could not save the reply: {exc}")
        return None


__all__ = [
    "DispatchResult",
    "DispatchState",
    "DispatchStatus",
    "ERROR_REPLY_PREFIX",
    "MessageDispatcher",
    "error_reply_text",
]
