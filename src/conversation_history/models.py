"""Records shared by the merger, the history store and the conversation index."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)

ORIGIN_TRANSCRIPTION = "transcription"
ORIGIN_CHAT = "chat"
ORIGINS = (ORIGIN_TRANSCRIPTION, ORIGIN_CHAT)


# -----------------------------
# Persisted records
# -----------------------------
@dataclass(frozen=True)
class Message:
    """A single conversation message.

    Fields:
        id: identity, unique across both upstream streams.
        role: "user" | "assistant"
        content: message text
        timestamp: epoch milliseconds
        origin: "transcription" | "chat"
    """
    id: str
    role: str
    content: str
    timestamp: int
    origin: str = ORIGIN_CHAT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "origin": self.origin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Strict parse; raises ValueError/TypeError/KeyError on bad input."""
        if not isinstance(data, dict):
            raise TypeError(f"message must be a dict, got {type(data).__name__}")
        role = data["role"]
        if role not in ROLES:
            raise ValueError(f"unknown role {role!r}")
        origin = data.get("origin", ORIGIN_CHAT)
        if origin not in ORIGINS:
            raise ValueError(f"unknown origin {origin!r}")
        timestamp = data["timestamp"]
        # bool is an int subclass; reject it explicitly
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise TypeError("timestamp must be a number")
        return cls(
            id=str(data["id"]),
            role=role,
            content=str(data.get("content") or ""),
            timestamp=int(timestamp),
            origin=origin,
        )


@dataclass(frozen=True)
class Conversation:
    """Summary row shown by the conversation browser."""
    id: str
    title: str
    timestamp: int
    message_count: int
    preview: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "timestamp": self.timestamp,
            "message_count": self.message_count,
            "preview": self.preview,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        if not isinstance(data, dict):
            raise TypeError(f"conversation must be a dict, got {type(data).__name__}")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            timestamp=int(data["timestamp"]),
            message_count=int(data.get("message_count", 0)),
            preview=str(data.get("preview") or ""),
        )


# -----------------------------
# Upstream events
# -----------------------------
@dataclass(frozen=True)
class TranscriptionEvent:
    """Accumulated transcription segment as seen at snapshot time."""
    id: str
    text: str
    timestamp: int
    speaker: str
    is_agent: bool = False
    final: bool = False


@dataclass(frozen=True)
class ChatEvent:
    id: str
    text: str
    timestamp: int
    sender: str
    is_agent: bool = False
