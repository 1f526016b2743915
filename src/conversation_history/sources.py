"""In-process upstream sources with subscription-style change notifications.

The real-time transport (audio, rooms, data channels) lives elsewhere; an
adapter pushes what it receives into these feeds and the session reacts to
the notifications.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .boundary import now_millis
from .models import ChatEvent, TranscriptionEvent

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class _Observable:
    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()


# -----------------------------
# Transcription
# -----------------------------
@dataclass
class _Segment:
    id: str
    speaker: str
    is_agent: bool
    timestamp: int
    parts: List[str]
    final: bool = False


class TranscriptionFeed(_Observable):
    """Speaker-attributed text deltas grouped into segments.

    Deltas for the same ``segment_id`` are concatenated; the segment keeps the
    timestamp of its first delta so its position in the log does not move.
    """

    def __init__(self) -> None:
        super().__init__()
        self._segments: Dict[str, _Segment] = {}

    def push(
        self,
        segment_id: str,
        text: str,
        *,
        timestamp: int,
        speaker: str,
        is_agent: bool = False,
        final: bool = False,
    ) -> None:
        seg = self._segments.get(segment_id)
        if seg is None:
            seg = _Segment(segment_id, speaker, is_agent, int(timestamp), [])
            self._segments[segment_id] = seg
        elif seg.final:
            logger.debug("ignoring delta for finalized segment %s", segment_id)
            return
        seg.parts.append(text)
        seg.final = final
        self._notify()

    def snapshot(self) -> List[TranscriptionEvent]:
        return [
            TranscriptionEvent(
                id=s.id,
                text="".join(s.parts),
                timestamp=s.timestamp,
                speaker=s.speaker,
                is_agent=s.is_agent,
                final=s.final,
            )
            for s in self._segments.values()
        ]

    def reset(self) -> None:
        """Forget all segments (a resubscription restarts the sequence)."""
        self._segments.clear()
        self._notify()

    def discard(self, ids: Iterable[str]) -> None:
        """Forget the given segments without notifying listeners."""
        for segment_id in ids:
            self._segments.pop(segment_id, None)


# -----------------------------
# Chat
# -----------------------------
@dataclass(frozen=True)
class SendOutcome:
    ok: bool
    event: ChatEvent
    error: Optional[str] = None


class ChatFeed(_Observable):
    """Explicit text chat: local sends and remote receipts, in arrival order."""

    def __init__(
        self,
        *,
        local_identity: str = "user",
        transport: Optional[Callable[[str], None]] = None,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        super().__init__()
        self.local_identity = local_identity
        self._transport = transport
        self._clock = clock
        self._events: List[ChatEvent] = []
        self._seq = itertools.count(1)

    def _next_id(self, ts: int) -> str:
        return f"chat_{ts}_{next(self._seq)}"

    def send(self, text: str) -> SendOutcome:
        """Record a locally authored message and hand it to the transport.

        A transport failure is reported in the outcome; the message stays in
        the local log either way.
        """
        ts = self._clock()
        event = ChatEvent(id=self._next_id(ts), text=text, timestamp=ts, sender=self.local_identity)
        self._events.append(event)
        error: Optional[str] = None
        if self._transport is not None:
            try:
                self._transport(text)
            except Exception as e:  # non-fatal
                logger.exception("chat transport failed: %s", e)
                error = str(e) or e.__class__.__name__
        self._notify()
        return SendOutcome(ok=error is None, event=event, error=error)

    def receive(
        self,
        text: str,
        *,
        sender: str,
        is_agent: bool = False,
        timestamp: Optional[int] = None,
        message_id: Optional[str] = None,
    ) -> ChatEvent:
        ts = int(timestamp) if timestamp is not None else self._clock()
        event = ChatEvent(
            id=message_id or self._next_id(ts),
            text=text,
            timestamp=ts,
            sender=sender,
            is_agent=is_agent,
        )
        self._events.append(event)
        self._notify()
        return event

    def snapshot(self) -> List[ChatEvent]:
        return list(self._events)

    def reset(self) -> None:
        self._events.clear()
        self._notify()

    def discard(self, ids: Iterable[str]) -> None:
        """Forget the given events without notifying listeners."""
        drop = set(ids)
        self._events = [e for e in self._events if e.id not in drop]
