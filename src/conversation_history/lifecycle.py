"""Create / select / delete / clear transitions over the active conversation id.

Each transition leaves the history store and the index consistent with each
other: an index entry always has a snapshot behind it, and a snapshot with
messages always has an index entry (the index entry is written by the session
right after the snapshot).
"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Set

from .boundary import now_millis
from .errors import HistoryError, UnknownConversation
from .history import HistoryStore
from .index import ConversationIndex
from .kv import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)

ACTIVE_KEY = "conversations/active"
ID_PREFIX = "conversation_"


class ConversationLifecycle:
    def __init__(
        self,
        history: HistoryStore,
        index: ConversationIndex,
        *,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self.history = history
        self.index = index
        self.store = store if store is not None else history.store
        self._clock = clock
        self._active_id: Optional[str] = None
        self._minted: Set[str] = set()

    @property
    def active_id(self) -> str:
        if self._active_id is None:
            return self.restore()
        return self._active_id

    # --------- transitions ----------
    def restore(self) -> str:
        """Resume the conversation that was active last time, or start a new one."""
        try:
            stored = read_json(self.store, ACTIVE_KEY)
        except HistoryError as e:
            logger.warning("active conversation id unreadable: %s", e)
            stored = None
        if isinstance(stored, str) and stored:
            self._active_id = stored
            return stored
        return self.create_new()

    def create_new(self) -> str:
        new_id = self._mint_id()
        self.history.clear_current()
        self._set_active(new_id)
        logger.info("started conversation %s", new_id)
        return new_id

    def select(self, conversation_id: str) -> str:
        """Make ``conversation_id`` active; raises UnknownConversation without a snapshot.

        A summary left without a snapshot is dropped from the index first.
        """
        messages = self.history.load_conversation(conversation_id)
        if not messages:
            if self.index.remove(conversation_id):
                logger.warning("dropped index entry %s with no snapshot", conversation_id)
            raise UnknownConversation(conversation_id)
        self.history.save_current(messages)
        self._set_active(conversation_id)
        logger.info("selected conversation %s (%d messages)", conversation_id, len(messages))
        return conversation_id

    def delete(self, conversation_id: str) -> str:
        """Remove snapshot and summary; returns the active id afterwards."""
        was_active = conversation_id == self.active_id
        if not self.history.remove_conversation(conversation_id):
            logger.warning("conversation %s not deleted; storage refused", conversation_id)
            return self.active_id
        self.index.remove(conversation_id)

        if not was_active:
            return self.active_id

        for candidate in self.index.list():
            try:
                return self.select(candidate.id)
            except UnknownConversation:
                # select already dropped the stale summary
                continue
        return self.create_new()

    def clear(self) -> str:
        """Drop everything stored for the active conversation, keeping its id."""
        active = self.active_id
        self.history.remove_conversation(active)
        self.index.remove(active)
        self.history.clear_current()
        return active

    # --------- internals ----------
    def _mint_id(self) -> str:
        base = f"{ID_PREFIX}{self._clock()}"
        candidate, n = base, 1
        while candidate in self._minted or self.history.has_conversation(candidate):
            candidate = f"{base}_{n}"
            n += 1
        self._minted.add(candidate)
        return candidate

    def _set_active(self, conversation_id: str) -> None:
        self._active_id = conversation_id
        try:
            write_json(self.store, ACTIVE_KEY, conversation_id)
        except HistoryError as e:
            logger.warning("active conversation id not persisted: %s", e)
