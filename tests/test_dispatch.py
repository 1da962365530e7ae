from __future__ import annotations

from types import SimpleNamespace

import requests

from backend_client import AssistantServiceError, Reply
from local_store import open_kv
from models import ImageAttachment
from services.chat_storage import LocalChatStorage
from services.conversation_store import ConversationStore
from services.dispatch import DispatchState, DispatchStatus, MessageDispatcher


def _setup(tmp_path, reply):
    store = ConversationStore(LocalChatStorage(open_kv(tmp_path))).load()
    notices: list[tuple[str, str]] = []
    backend = SimpleNamespace(reply=reply)
    dispatcher = MessageDispatcher(store, backend, notifier=lambda level, msg: notices.append((level, msg)))
    return store, dispatcher, notices


def test_successful_dispatch_appends_both_messages(tmp_path) -> None:
    seen = []

    def reply(request):
        seen.append(request)
        return Reply(text="Hi back")

    store, dispatcher, notices = _setup(tmp_path, reply)
    result = dispatcher.send("  Hello  ")

    assert result.status is DispatchStatus.SUCCEEDED
    assert [m.text for m in store.active_chat.messages] == ["Hello", "Hi back"]
    assert [m.sender for m in store.active_chat.messages] == ["user", "assistant"]
    assert seen[0].text == "Hello"
    assert seen[0].chat_id == store.active_chat_id
    assert dispatcher.state is DispatchState.IDLE
    assert notices == []


def test_blank_input_is_rejected(tmp_path) -> None:
    store, dispatcher, _ = _setup(tmp_path, lambda request: Reply(text="x"))

    assert dispatcher.send("   ").status is DispatchStatus.REJECTED
    assert store.active_chat.messages == ()


def test_attachment_only_message_sends_placeholder(tmp_path) -> None:
    seen = []

    def reply(request):
        seen.append(request)
        return Reply(text="Nice picture")

    image = ImageAttachment(url="file:///cat.png", filename="cat.png", size=3)
    store, dispatcher, _ = _setup(tmp_path, reply)
    result = dispatcher.send("", image)

    assert result.ok
    assert seen[0].text == "[Image: cat.png]"
    assert seen[0].attachment == image
    assert store.active_chat.messages[0].attachment == image


def test_second_send_while_sending_is_rejected(tmp_path) -> None:
    nested = []

    def reply(request):
        nested.append(dispatcher.send("again"))
        return Reply(text="done")

    store, dispatcher, _ = _setup(tmp_path, reply)
    result = dispatcher.send("first")

    assert result.status is DispatchStatus.SUCCEEDED
    assert nested[0].status is DispatchStatus.REJECTED
    assert [m.text for m in store.active_chat.messages] == ["first", "done"]


def test_transport_failure_appends_error_reply(tmp_path) -> None:
    def reply(request):
        raise requests.ConnectionError("refused")

    store, dispatcher, notices = _setup(tmp_path, reply)
    result = dispatcher.send("Hello")

    assert result.status is DispatchStatus.FAILED
    messages = store.active_chat.messages
    assert len(messages) == 2
    assert messages[0].text == "Hello"
    assert messages[-1].sender == "assistant"
    assert messages[-1].text == "Sorry, an error occurred: Could not reach the server."
    assert notices[0][0] == "error"
    assert dispatcher.state is DispatchState.IDLE


def test_assistant_error_surfaces_detail(tmp_path) -> None:
    def reply(request):
        raise AssistantServiceError("Unauthorized")

    store, dispatcher, _ = _setup(tmp_path, reply)
    dispatcher.send("Hello")

    assert store.active_chat.messages[-1].text == "Sorry, an error occurred: Unauthorized"


def test_reply_for_deleted_chat_is_dropped(tmp_path) -> None:
    def reply(request):
        store.delete_chat(request.chat_id)
        return Reply(text="too late")

    store, dispatcher, _ = _setup(tmp_path, reply)
    doomed = store.create_chat()
    result = dispatcher.send("Hello")

    assert result.status is DispatchStatus.DROPPED
    assert doomed.id not in store
    assert all(not chat.messages for chat in store.chats)


def test_image_reply_is_attached(tmp_path) -> None:
    image = ImageAttachment(url="data:image/png;base64,AAAA", filename="generated-image.png", size=3)
    store, dispatcher, _ = _setup(tmp_path, lambda request: Reply(text="", image=image))

    dispatcher.send("/image a cat")

    assert store.active_chat.messages[-1].attachment == image


def test_persistence_failure_aborts_before_backend(tmp_path, monkeypatch) -> None:
    calls = []
    store, dispatcher, notices = _setup(tmp_path, lambda request: calls.append(request))

    def broken_add_message(*args):
        raise OSError("quota exceeded")

    monkeypatch.setattr(store._storage, "add_message", broken_add_message)
    result = dispatcher.send("Hello")

    assert result.status is DispatchStatus.ABORTED
    assert calls == []
    assert store.active_chat.messages == ()
    assert notices[0][0] == "error"
    assert dispatcher.state is DispatchState.IDLE


def test_reply_lands_in_originating_chat_after_switch(tmp_path) -> None:
    def reply(request):
        store.select_chat(other.id)
        return Reply(text="Hi back")

    store, dispatcher, _ = _setup(tmp_path, reply)
    origin_id = store.active_chat_id
    other = store.create_chat("Other")
    store.select_chat(origin_id)

    result = dispatcher.send("Hello")

    assert result.status is DispatchStatus.SUCCEEDED
    assert [m.text for m in store.get_chat(origin_id).messages] == ["Hello", "Hi back"]
    assert store.get_chat(other.id).messages == ()
    assert store.active_chat_id == other.id
