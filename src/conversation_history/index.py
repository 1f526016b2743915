"""Summaries (title/preview/counts) for the conversation browser.

The index is a single JSON array under ``conversations/index``, most recently
updated first, capped at ``max_conversations`` entries. Each upsert replaces
the entry for its id and moves it to the head.

Concurrent writers (two open sessions sharing one store) are not coordinated:
whoever writes last wins.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from .boundary import now_millis
from .errors import HistoryError, MalformedPersistedData, StorageUnavailable
from .kv import KeyValueStore, read_json, write_json
from .models import ROLE_ASSISTANT, Conversation, Message

logger = logging.getLogger(__name__)

INDEX_KEY = "conversations/index"
MAX_CONVERSATIONS = 50
TITLE_CHARS = 50
PREVIEW_CHARS = 100
PLACEHOLDER_TITLE = "New Chat"
ELLIPSIS = "..."


# -----------------------------
# Pure helpers
# -----------------------------
def truncate_text(text: str, limit: int, marker: str = ELLIPSIS) -> str:
    """First ``limit`` characters of ``text``, plus ``marker`` if anything was cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def derive_title(messages: Sequence[Message], limit: int = TITLE_CHARS, placeholder: str = PLACEHOLDER_TITLE) -> str:
    for m in messages:
        if m.role != ROLE_ASSISTANT and m.content:
            return truncate_text(m.content, limit)
    return placeholder


def derive_preview(messages: Sequence[Message], limit: int = PREVIEW_CHARS) -> str:
    if not messages:
        return ""
    return truncate_text(messages[-1].content, limit)


def describe_age(timestamp: int, now: Optional[int] = None) -> str:
    """Short relative label for a summary timestamp (epoch millis)."""
    now = now_millis() if now is None else now
    diff_ms = max(0, now - timestamp)
    mins = diff_ms // 60_000
    hours = diff_ms // 3_600_000
    days = diff_ms // 86_400_000
    if mins < 1:
        return "Just now"
    if mins < 60:
        return f"{mins}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days}d ago"
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).date().isoformat()


# -----------------------------
# ConversationIndex
# -----------------------------
class ConversationIndex:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_conversations: int = MAX_CONVERSATIONS,
        title_chars: int = TITLE_CHARS,
        preview_chars: int = PREVIEW_CHARS,
        placeholder_title: str = PLACEHOLDER_TITLE,
        clock: Callable[[], int] = now_millis,
        on_evict: Optional[Callable[[List[Conversation]], None]] = None,
    ) -> None:
        self.store = store
        self.max_conversations = max_conversations
        self.title_chars = title_chars
        self.preview_chars = preview_chars
        self.placeholder_title = placeholder_title
        self._clock = clock
        self.on_evict = on_evict

    # --------- core API ----------
    def summarize(self, conversation_id: str, messages: Sequence[Message]) -> Conversation:
        return Conversation(
            id=conversation_id,
            title=derive_title(messages, self.title_chars, self.placeholder_title),
            timestamp=self._clock(),
            message_count=len(messages),
            preview=derive_preview(messages, self.preview_chars),
        )

    def upsert(self, conversation_id: str, messages: Sequence[Message]) -> Conversation:
        summary = self.summarize(conversation_id, messages)
        try:
            existing = self._read()
        except StorageUnavailable as e:
            # an unreadable index is never overwritten
            logger.warning("conversation index not updated for %s: %s", conversation_id, e)
            return summary
        rows = [c for c in existing if c.id != conversation_id]
        rows.insert(0, summary)
        kept, evicted = rows[: self.max_conversations], rows[self.max_conversations :]
        if self._save(kept) and evicted and self.on_evict is not None:
            self.on_evict(evicted)
        return summary

    def remove(self, conversation_id: str) -> bool:
        try:
            rows = self._read()
        except StorageUnavailable as e:
            logger.warning("conversation %s not removed from index: %s", conversation_id, e)
            return False
        kept = [c for c in rows if c.id != conversation_id]
        if len(kept) == len(rows):
            return False
        return self._save(kept)

    def list(self) -> List[Conversation]:
        try:
            return self._read()
        except StorageUnavailable as e:
            logger.warning("conversation index unreadable: %s", e)
            return []

    def _read(self) -> List[Conversation]:
        """Parsed rows; a malformed index reads as empty, StorageUnavailable propagates."""
        try:
            raw = read_json(self.store, INDEX_KEY)
            if raw is None:
                return []
            if not isinstance(raw, list):
                raise MalformedPersistedData(INDEX_KEY, f"expected a list, got {type(raw).__name__}")
        except MalformedPersistedData as e:
            logger.warning("conversation index malformed: %s", e)
            return []

        out: List[Conversation] = []
        seen = set()
        for item in raw:
            try:
                conv = Conversation.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("skipping malformed index entry %r: %s", item, e)
                continue
            if conv.id in seen:
                continue
            seen.add(conv.id)
            out.append(conv)
        return out[: self.max_conversations]

    # --------- convenience ----------
    def get(self, conversation_id: str) -> Optional[Conversation]:
        for c in self.list():
            if c.id == conversation_id:
                return c
        return None

    def most_recent(self) -> Optional[Conversation]:
        rows = self.list()
        return rows[0] if rows else None

    # --------- internals ----------
    def _save(self, rows: List[Conversation]) -> bool:
        try:
            write_json(self.store, INDEX_KEY, [c.to_dict() for c in rows])
        except HistoryError as e:
            logger.warning("conversation index not saved: %s", e)
            return False
        return True
