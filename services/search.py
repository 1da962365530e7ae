"""Cross-chat message search."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Iterable

from models import Chat, SearchResult


HIGHLIGHT_SECONDS = 2.0


def search_messages(chats: Iterable[Chat], query: str | None) -> list[SearchResult]:
    """Return messages containing ``query`` (case-insensitive).

    Results follow store order for chats and chronological order within each
    chat. A blank query matches nothing.
    """

    needle = (query or "").lower()
    if not needle.strip():
        return []
    results: list[SearchResult] = []
    for chat in chats:
        for position, message in enumerate(chat.messages):
            if needle in message.text.lower():
                results.append(
                    SearchResult(
                        chat_id=chat.id,
                        chat_name=chat.name,
                        message=message,
                        position=position,
                    )
                )
    return results


def highlight_segments(text: str, query: str | None) -> list[tuple[str, bool]]:
    """Split ``text`` into ``(segment, matched)`` pairs around ``query`` hits."""

    needle = query or ""
    if not needle.strip() or not text:
        return [(text, False)] if text else []
    pattern = re.compile(re.escape(needle), re.IGNORECASE)
    segments: list[tuple[str, bool]] = []
    cursor = 0
    for match in pattern.finditer(text):
        if match.start() > cursor:
            segments.append((text[cursor:match.start()], False))
        segments.append((match.group(0), True))
        cursor = match.end()
    if cursor < len(text):
        segments.append((text[cursor:], False))
    return segments


@dataclass(frozen=True)
class SearchHighlight:
    """Transient marker on the message a search result jumped to."""

    message_id: str
    expires_at: float

    @classmethod
    def start(cls, message_id: str, now: float | None = None) -> "SearchHighlight":
        started = time.time() if now is None else now
        return cls(message_id=message_id, expires_at=started + HIGHLIGHT_SECONDS)

    def is_active(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current < self.expires_at

    def remaining(self, now: float | None = None) -> float:
        """Seconds until the highlight clears, never negative."""

        current = time.time() if now is None else now
        return max(0.0, self.expires_at - current)


__all__ = ["HIGHLIGHT_SECONDS", "SearchHighlight", "highlight_segments", "search_messages"]
