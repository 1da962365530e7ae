"""Builds the store, reply backend and blob store described by :class:`AppSettings`."""

from __future__ import annotations

import logging

from api_client import DatastoreClient
from app_settings import BACKEND_ASSISTANT, AppSettings
from backend_client import AssistantClient, WebhookClient
from local_store import open_kv
from services.assistant_service import AssistantService, static_token_verifier
from services.chat_storage import LocalChatStorage, RemoteChatStorage
from services.conversation_store import ConversationStore
from services.dispatch import MessageDispatcher, Notifier
from services.uploads import LocalBlobStore, RemoteBlobStore


logger = logging.getLogger(__name__)

LOCAL_ASSISTANT_TOKEN = "local-session"


def _datastore_client(settings: AppSettings) -> DatastoreClient:
    if not settings.datastore_url:
        raise ValueError("SUPABASE_URL is required for remote storage")
    return DatastoreClient(
        settings.datastore_url,
        api_key=settings.datastore_key,
        timeout=int(settings.request_timeout),
    )


def local_storage_key(settings: AppSettings) -> str:
    """History key for local storage, scoped to ``CHAT_USER_ID`` when set."""

    if settings.user_id:
        return f"{settings.storage_key}:{settings.user_id}"
    return settings.storage_key


def build_chat_storage(settings: AppSettings):
    if settings.uses_remote_storage:
        if not settings.user_id:
            raise ValueError("CHAT_USER_ID is required for remote storage")
        return RemoteChatStorage(_datastore_client(settings), settings.user_id)
    return LocalChatStorage(open_kv(settings.storage_path), local_storage_key(settings))


def build_store(settings: AppSettings) -> ConversationStore:
    return ConversationStore(build_chat_storage(settings)).load()


def build_backend(settings: AppSettings, *, provider: str | None = None):
    """Return the configured reply backend.

    The assistant backend calls ``ASSISTANT_URL`` when set and otherwise runs
    :class:`AssistantService` in-process with a session-local bearer token.
    """

    if settings.backend_mode == BACKEND_ASSISTANT:
        if settings.assistant_url:
            return AssistantClient(
                settings.assistant_url,
                settings.assistant_token,
                image_command=settings.image_command,
                timeout=settings.request_timeout,
            )
        token = settings.assistant_token or LOCAL_ASSISTANT_TOKEN
        service = AssistantService(
            provider or settings.llm_provider,
            genai_api_key=settings.genai_api_key,
            openai_api_key=settings.openai_api_key,
            verify_token=static_token_verifier(token),
        )
        return AssistantClient(
            token=token,
            image_command=settings.image_command,
            timeout=settings.request_timeout,
            transport=service.handle,
        )
    if not settings.webhook_url:
        raise ValueError("WEBHOOK_URL is required for the webhook backend")
    return WebhookClient(
        settings.webhook_url,
        triggered_from=settings.triggered_from,
        timeout=settings.request_timeout,
    )


def build_blob_store(settings: AppSettings):
    if settings.uses_remote_storage:
        return RemoteBlobStore(_datastore_client(settings))
    return LocalBlobStore(settings.upload_dir)


def build_dispatcher(
    settings: AppSettings,
    store: ConversationStore,
    *,
    notifier: Notifier | None = None,
    provider: str | None = None,
) -> MessageDispatcher:
    backend = build_backend(settings, provider=provider)
    logger.info("Dispatching via %s", type(backend).__name__)
    return MessageDispatcher(store, backend, notifier=notifier)


__all__ = [
    "build_backend",
    "build_blob_store",
    "build_chat_storage",
    "build_dispatcher",
    "build_store",
    "local_storage_key",
]
