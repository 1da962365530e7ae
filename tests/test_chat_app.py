from __future__ import annotations

from types import SimpleNamespace

from chat_app import PENDING_ATTACHMENT_KEY, submit_message
from models import ImageAttachment
from services.dispatch import DispatchResult, DispatchStatus

IMAGE = ImageAttachment(url="file:///cat.png", filename="cat.png", size=3)


def _dispatcher(status: DispatchStatus):
    sent = []

    def send(text, attachment=None):
        sent.append((text, attachment))
        return DispatchResult(status)

    return SimpleNamespace(send=send), sent


def test_caption_is_sent_with_pending_attachment() -> None:
    dispatcher, sent = _dispatcher(DispatchStatus.SUCCEEDED)
    state = {PENDING_ATTACHMENT_KEY: IMAGE}

    result = submit_message(dispatcher, "look at this", state)

    assert result.status is DispatchStatus.SUCCEEDED
    assert sent == [("look at this", IMAGE)]
    assert PENDING_ATTACHMENT_KEY not in state


def test_text_without_attachment_is_sent_alone() -> None:
    dispatcher, sent = _dispatcher(DispatchStatus.SUCCEEDED)

    submit_message(dispatcher, "hello", {})

    assert sent == [("hello", None)]


def test_rejected_send_keeps_attachment_pending() -> None:
    dispatcher, sent = _dispatcher(DispatchStatus.REJECTED)
    state = {PENDING_ATTACHMENT_KEY: IMAGE}

    submit_message(dispatcher, "", state)

    assert sent == [("", IMAGE)]
    assert state[PENDING_ATTACHMENT_KEY] is IMAGE
