"""Bounded, durable message log on top of a key-value store."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from .errors import HistoryError, MalformedPersistedData
from .kv import KeyValueStore, read_json, write_json
from .models import Message

logger = logging.getLogger(__name__)

CURRENT_KEY = "history/current"
CONVERSATION_KEY_PREFIX = "history/conversation/"
MAX_HISTORY = 50

WarningHook = Callable[[str, Exception], None]


def conversation_key(conversation_id: str) -> str:
    return f"{CONVERSATION_KEY_PREFIX}{conversation_id}"


def _tail(messages: Sequence[Message], limit: Optional[int]) -> List[Message]:
    items = list(messages)
    if limit is None or len(items) <= limit:
        return items
    return items[-limit:] if limit > 0 else []


class HistoryStore:
    """Message arrays keyed by the "current" slot and per-conversation snapshots.

    Every read and write is wrapped: storage faults and unparseable values are
    logged, reported to ``on_warning`` and then treated as "nothing stored" /
    "not saved". Nothing raised by the underlying store escapes.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_entries: int = MAX_HISTORY,
        snapshot_limit: Optional[int] = None,
        on_warning: Optional[WarningHook] = None,
    ) -> None:
        self.store = store
        self.max_entries = max_entries
        self.snapshot_limit = snapshot_limit
        self.on_warning = on_warning

    # --------- core API ----------
    def load(self, key: str) -> List[Message]:
        try:
            raw = read_json(self.store, key)
            if raw is None:
                return []
            if not isinstance(raw, list):
                raise MalformedPersistedData(key, f"expected a list, got {type(raw).__name__}")
            try:
                return [Message.from_dict(item) for item in raw]
            except (KeyError, TypeError, ValueError) as e:
                raise MalformedPersistedData(key, f"bad message entry: {e}") from e
        except HistoryError as e:
            self._warn("load", key, e)
            return []

    def save(self, key: str, messages: Sequence[Message]) -> bool:
        """Persist the most recent ``max_entries`` of ``messages``; True when accepted."""
        return self._write(key, messages, self.max_entries)

    def _write(self, key: str, messages: Sequence[Message], limit: Optional[int]) -> bool:
        payload = [m.to_dict() for m in _tail(messages, limit)]
        try:
            write_json(self.store, key, payload)
        except HistoryError as e:
            self._warn("save", key, e)
            return False
        return True

    def remove(self, key: str) -> bool:
        try:
            self.store.remove(key)
        except HistoryError as e:
            self._warn("remove", key, e)
            return False
        return True

    def exists(self, key: str) -> bool:
        try:
            return self.store.get(key) is not None
        except HistoryError as e:
            self._warn("exists", key, e)
            return False

    # --------- convenience ----------
    def load_current(self) -> List[Message]:
        return self.load(CURRENT_KEY)

    def save_current(self, messages: Sequence[Message]) -> bool:
        return self.save(CURRENT_KEY, messages)

    def clear_current(self) -> bool:
        return self.remove(CURRENT_KEY)

    def load_conversation(self, conversation_id: str) -> List[Message]:
        return self.load(conversation_key(conversation_id))

    def save_conversation(self, conversation_id: str, messages: Sequence[Message]) -> bool:
        return self._write(conversation_key(conversation_id), messages, self.snapshot_limit)

    def remove_conversation(self, conversation_id: str) -> bool:
        return self.remove(conversation_key(conversation_id))

    def has_conversation(self, conversation_id: str) -> bool:
        return self.exists(conversation_key(conversation_id))

    # --------- internals ----------
    def _warn(self, op: str, key: str, err: Exception) -> None:
        logger.warning("history %s failed for %s: %s", op, key, err)
        if self.on_warning is not None:
            try:
                self.on_warning(key, err)
            except Exception:
                logger.exception("history warning hook failed")
