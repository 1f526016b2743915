"""Conversation history: merge live transcription and chat into one persisted log.

The core (merger, history store, index, lifecycle, session) has no web
dependency. The HTTP surface lives in ``conversation_history/server.py`` and is
reached through :func:`create_app`.

Typical usage
-------------
from conversation_history import build_session, DiskStore
session = build_session(store=DiskStore("data"))

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

from .boundary import SessionBoundaryTracker, is_historical
from .errors import HistoryError, MalformedPersistedData, StorageUnavailable, UnknownConversation
from .history import HistoryStore
from .index import ConversationIndex, truncate_text
from .kv import DiskStore, InMemoryStore, KeyValueStore
from .lifecycle import ConversationLifecycle
from .merger import StreamMerger
from .models import ChatEvent, Conversation, Message, TranscriptionEvent
from .session import ConversationSession, build_session
from .sources import ChatFeed, TranscriptionFeed

__all__ = [
    "ChatEvent",
    "ChatFeed",
    "Conversation",
    "ConversationIndex",
    "ConversationLifecycle",
    "ConversationSession",
    "DiskStore",
    "HistoryError",
    "HistoryStore",
    "InMemoryStore",
    "KeyValueStore",
    "MalformedPersistedData",
    "Message",
    "SessionBoundaryTracker",
    "StorageUnavailable",
    "StreamMerger",
    "TranscriptionEvent",
    "TranscriptionFeed",
    "UnknownConversation",
    "build_session",
    "create_app",
    "get_version",
    "is_historical",
    "truncate_text",
    "__version__",
]

# ---------------------------------------------------------------------
# Version handling
# ---------------------------------------------------------------------
__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


# ---------------------------------------------------------------------
# App factory export (imported lazily so the core works without FastAPI)
# ---------------------------------------------------------------------
def create_app(*args, **kwargs):
    """Return a configured FastAPI application.

    This forwards to :func:`conversation_history.server.create_app`.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
