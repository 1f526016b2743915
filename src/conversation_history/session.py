"""Live conversation session: upstream feeds in, ordered and persisted log out.

Typical wiring
--------------
store = DiskStore("data")
session = build_session({"history": {"max_entries": 50}}, store=store)
session.transcription.push("seg-1", "hello", timestamp=..., speaker="alice")
session.get_merged_messages()
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .boundary import SessionBoundaryTracker, now_millis
from .errors import UnknownConversation
from .history import MAX_HISTORY, HistoryStore
from .index import MAX_CONVERSATIONS, PLACEHOLDER_TITLE, PREVIEW_CHARS, TITLE_CHARS, ConversationIndex
from .kv import DiskStore, InMemoryStore, KeyValueStore
from .lifecycle import ConversationLifecycle
from .merger import StreamMerger
from .models import Conversation, Message
from .sources import ChatFeed, SendOutcome, TranscriptionFeed

logger = logging.getLogger(__name__)


class ConversationSession:
    """Recomputes the merged log on every feed notification and persists it.

    Prior history is read once from the "current" slot when the session
    starts. When the active conversation changes, prior history is reloaded
    from that conversation's snapshot and the live events seen so far are
    discarded from the feeds, so they are not copied into the new one.
    """

    def __init__(
        self,
        history: HistoryStore,
        index: ConversationIndex,
        lifecycle: ConversationLifecycle,
        *,
        transcription: Optional[TranscriptionFeed] = None,
        chat: Optional[ChatFeed] = None,
        merger: Optional[StreamMerger] = None,
        boundary: Optional[SessionBoundaryTracker] = None,
    ) -> None:
        self.history = history
        self.index = index
        self.lifecycle = lifecycle
        self.transcription = transcription or TranscriptionFeed()
        self.chat = chat or ChatFeed()
        self.merger = merger or StreamMerger()
        self.boundary = boundary or SessionBoundaryTracker()

        self._merged: List[Message] = []

        self.lifecycle.restore()
        self._prior: List[Message] = self.history.load_current()
        self._unsubscribe = [
            self.transcription.subscribe(self.refresh),
            self.chat.subscribe(self.refresh),
        ]
        self.refresh()

    @property
    def active_id(self) -> str:
        return self.lifecycle.active_id

    # --------- recomputation ----------
    def _compute(self) -> List[Message]:
        self._merged = self.merger.merge(self.transcription.snapshot(), self.chat.snapshot(), self._prior)
        return self._merged

    def refresh(self) -> List[Message]:
        merged = self._compute()
        # empty lists are never written
        if merged:
            self._persist(merged)
        return list(merged)

    def _persist(self, merged: List[Message]) -> None:
        active = self.active_id
        self.history.save_current(merged)
        if self.history.save_conversation(active, merged):
            self.index.upsert(active, merged)
        else:
            logger.warning("snapshot for %s not saved; index left untouched", active)

    def _rebase(self) -> None:
        self.transcription.discard([e.id for e in self.transcription.snapshot()])
        self.chat.discard([e.id for e in self.chat.snapshot()])
        self._prior = self.history.load_conversation(self.active_id)
        self._compute()

    # --------- presentation API ----------
    def get_merged_messages(self) -> List[Message]:
        return list(self._merged)

    def get_annotated_messages(self) -> List[Tuple[Message, bool]]:
        return self.boundary.annotate(self._merged)

    def get_conversation_list(self) -> List[Conversation]:
        return self.index.list()

    def create_conversation(self) -> str:
        new_id = self.lifecycle.create_new()
        self._rebase()
        return new_id

    def select_conversation(self, conversation_id: str) -> bool:
        """Switch to ``conversation_id``; falls back to a new conversation if unknown."""
        try:
            self.lifecycle.select(conversation_id)
            selected = True
        except UnknownConversation as e:
            logger.info("%s; starting a new conversation", e)
            self.lifecycle.create_new()
            selected = False
        self._rebase()
        return selected

    def delete_conversation(self, conversation_id: str) -> str:
        was_active = conversation_id == self.active_id
        active = self.lifecycle.delete(conversation_id)
        if was_active:
            self._rebase()
        return active

    def clear_conversation(self) -> str:
        active = self.lifecycle.clear()
        self._rebase()
        return active

    def send(self, text: str) -> SendOutcome:
        return self.chat.send(text)

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []


# -----------------------------
# Factory
# -----------------------------
def _drop_snapshots(history: HistoryStore) -> Callable[[List[Conversation]], None]:
    def _evict(rows: List[Conversation]) -> None:
        for c in rows:
            history.remove_conversation(c.id)

    return _evict


def make_store(cfg: Dict[str, Any]) -> KeyValueStore:
    st_cfg = cfg.get("storage", {}) or {}
    backend = str(st_cfg.get("backend", "disk")).lower()
    max_value_bytes = st_cfg.get("max_value_bytes")
    max_value_bytes = int(max_value_bytes) if max_value_bytes else None
    if backend == "memory":
        return InMemoryStore(max_value_bytes=max_value_bytes)
    if backend != "disk":
        raise ValueError(f"Unknown storage backend: {backend!r}")
    return DiskStore(st_cfg.get("data_dir") or "data", max_value_bytes=max_value_bytes)


def build_session(
    cfg: Optional[Dict[str, Any]] = None,
    *,
    store: Optional[KeyValueStore] = None,
    clock: Callable[[], int] = now_millis,
    transcription: Optional[TranscriptionFeed] = None,
    chat: Optional[ChatFeed] = None,
) -> ConversationSession:
    cfg = cfg or {}
    store = store if store is not None else make_store(cfg)

    hist_cfg = cfg.get("history", {}) or {}
    max_entries = int(hist_cfg.get("max_entries", MAX_HISTORY))
    snapshot_limit = hist_cfg.get("snapshot_limit")
    history = HistoryStore(
        store,
        max_entries=max_entries,
        snapshot_limit=int(snapshot_limit) if snapshot_limit is not None else None,
    )

    idx_cfg = cfg.get("index", {}) or {}
    index = ConversationIndex(
        store,
        max_conversations=int(idx_cfg.get("max_conversations", MAX_CONVERSATIONS)),
        title_chars=int(idx_cfg.get("title_chars", TITLE_CHARS)),
        preview_chars=int(idx_cfg.get("preview_chars", PREVIEW_CHARS)),
        placeholder_title=str(idx_cfg.get("placeholder_title", PLACEHOLDER_TITLE)),
        clock=clock,
        on_evict=_drop_snapshots(history),
    )

    lifecycle = ConversationLifecycle(history, index, store=store, clock=clock)
    return ConversationSession(
        history,
        index,
        lifecycle,
        transcription=transcription,
        chat=chat or ChatFeed(clock=clock),
        boundary=SessionBoundaryTracker(clock=clock),
    )
