"""Exception types raised inside the package.

None of these are allowed to escape a live session: storage errors are caught
by :class:`~conversation_history.history.HistoryStore` and
:class:`~conversation_history.index.ConversationIndex`, and
``UnknownConversation`` is recovered by the session facade.
"""
from __future__ import annotations


class HistoryError(Exception):
    """Base class for conversation history errors."""


class StorageUnavailable(HistoryError):
    """The backing key-value store refused a read or write (disabled, quota)."""


class MalformedPersistedData(HistoryError):
    """A stored value is not the structured record we expect."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"malformed value under {key!r}: {reason}")
        self.key = key
        self.reason = reason


class UnknownConversation(HistoryError):
    """No durable snapshot exists for the requested conversation id."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"no stored conversation with id {conversation_id!r}")
        self.conversation_id = conversation_id
