"""Fuse transcription segments, chat messages and persisted history."""
from __future__ import annotations

from typing import Iterable, List, Sequence

from .models import (
    ORIGIN_CHAT,
    ORIGIN_TRANSCRIPTION,
    ROLE_ASSISTANT,
    ROLE_USER,
    ChatEvent,
    Message,
    TranscriptionEvent,
)


def _role(is_agent: bool) -> str:
    return ROLE_ASSISTANT if is_agent else ROLE_USER


def transcription_to_message(event: TranscriptionEvent) -> Message:
    return Message(
        id=event.id,
        role=_role(event.is_agent),
        content=event.text,
        timestamp=event.timestamp,
        origin=ORIGIN_TRANSCRIPTION,
    )


def chat_to_message(event: ChatEvent) -> Message:
    return Message(
        id=event.id,
        role=_role(event.is_agent),
        content=event.text,
        timestamp=event.timestamp,
        origin=ORIGIN_CHAT,
    )


class StreamMerger:
    """Produce one ascending-by-timestamp list out of three inputs.

    Candidates are laid out as (prior history, transcription, chat) and sorted
    with Python's stable sort, so equal timestamps keep that relative order.
    Messages are not de-duplicated by content; ids are trusted to be unique.
    """

    def merge(
        self,
        transcription_events: Iterable[TranscriptionEvent],
        chat_events: Iterable[ChatEvent],
        prior_history: Sequence[Message] = (),
    ) -> List[Message]:
        candidates: List[Message] = list(prior_history)
        candidates.extend(transcription_to_message(e) for e in transcription_events)
        candidates.extend(chat_to_message(e) for e in chat_events)
        return sorted(candidates, key=lambda m: m.timestamp)
