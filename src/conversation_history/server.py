"""FastAPI application exposing the conversation history session."""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .boundary import now_millis
from .config import load_config
from .index import describe_age
from .kv import KeyValueStore
from .merger import chat_to_message
from .models import Conversation, Message
from .session import ConversationSession, build_session


# -----------------------------
# Pydantic request/response
# -----------------------------
class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    timestamp: int
    origin: str
    historical: bool = False


class MessagesResponse(BaseModel):
    conversation_id: str
    messages: List[MessageOut]
    divider_index: Optional[int] = Field(default=None, description="First live message after history.")


class ConversationOut(BaseModel):
    id: str
    title: str
    timestamp: int
    message_count: int
    preview: str
    age: str = ""
    active: bool = False


class ConversationsResponse(BaseModel):
    conversations: List[ConversationOut]
    count: int
    active_id: str


class ConversationDetail(BaseModel):
    conversation: ConversationOut
    messages: List[MessageOut]


class ActiveResponse(BaseModel):
    active_id: str
    selected: bool = True


class ChatRequest(BaseModel):
    text: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    ok: bool
    message: MessageOut
    error: Optional[str] = None


class TranscriptionRequest(BaseModel):
    segment_id: str = Field(..., min_length=1)
    text: str
    timestamp: int = Field(..., ge=0)
    speaker: str = Field(default="user")
    is_agent: bool = False
    final: bool = False


# -----------------------------
# Utilities
# -----------------------------
def _message_out(m: Message, historical: bool = False) -> MessageOut:
    return MessageOut(**m.to_dict(), historical=historical)


def _conversation_out(c: Conversation, active_id: str, now: int) -> ConversationOut:
    return ConversationOut(
        **c.to_dict(),
        age=describe_age(c.timestamp, now),
        active=c.id == active_id,
    )


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    session: Optional[ConversationSession] = None,
    store: Optional[KeyValueStore] = None,
) -> FastAPI:
    cfg = load_config(config_path)

    # CORS
    cors_origins = cfg.get("server", {}).get("cors_origins", ["*"])

    # Services
    session = session or build_session(cfg, store=store)

    app = FastAPI(title="Conversation History", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.session = session
    # sync endpoints run in a worker pool; the session has a single writer
    lock = threading.RLock()

    @app.get("/health")
    def health() -> Dict[str, Any]:
        with lock:
            return {
                "ok": True,
                "storage": type(session.history.store).__name__,
                "active_id": session.active_id,
                "messages": len(session.get_merged_messages()),
            }

    # --------- live log ----------
    @app.get("/messages", response_model=MessagesResponse)
    def messages():
        with lock:
            merged = session.get_merged_messages()
            return MessagesResponse(
                conversation_id=session.active_id,
                messages=[_message_out(m, h) for m, h in session.boundary.annotate(merged)],
                divider_index=session.boundary.first_live_index(merged),
            )

    @app.post("/chat", response_model=ChatResponse)
    def chat(req: ChatRequest):
        text = req.text.strip()
        if not text:
            raise HTTPException(status_code=400, detail="Message cannot be empty.")
        with lock:
            outcome = session.send(text)
        return ChatResponse(
            ok=outcome.ok,
            message=_message_out(chat_to_message(outcome.event)),
            error=outcome.error,
        )

    @app.post("/transcriptions")
    def transcriptions(req: TranscriptionRequest) -> Dict[str, Any]:
        with lock:
            session.transcription.push(
                req.segment_id,
                req.text,
                timestamp=req.timestamp,
                speaker=req.speaker,
                is_agent=req.is_agent,
                final=req.final,
            )
            return {"ok": True, "messages": len(session.get_merged_messages())}

    # --------- conversation browser ----------
    @app.get("/conversations", response_model=ConversationsResponse)
    def list_conversations():
        now = now_millis()
        with lock:
            active = session.active_id
            rows = [_conversation_out(c, active, now) for c in session.get_conversation_list()]
        return ConversationsResponse(conversations=rows, count=len(rows), active_id=active)

    @app.post("/conversations", response_model=ActiveResponse)
    def create_conversation():
        with lock:
            return ActiveResponse(active_id=session.create_conversation())

    @app.post("/conversations/current/clear", response_model=ActiveResponse)
    def clear_conversation():
        with lock:
            return ActiveResponse(active_id=session.clear_conversation())

    @app.get("/conversations/{conversation_id}", response_model=ConversationDetail)
    def get_conversation(conversation_id: str):
        with lock:
            summary = session.index.get(conversation_id)
            stored = session.history.load_conversation(conversation_id)
            active = session.active_id
        if summary is None or not stored:
            raise HTTPException(status_code=404, detail=f"Unknown conversation: {conversation_id}")
        return ConversationDetail(
            conversation=_conversation_out(summary, active, now_millis()),
            messages=[_message_out(m) for m in stored],
        )

    @app.post("/conversations/{conversation_id}/select", response_model=ActiveResponse)
    def select_conversation(conversation_id: str):
        with lock:
            selected = session.select_conversation(conversation_id)
            return ActiveResponse(active_id=session.active_id, selected=selected)

    @app.delete("/conversations/{conversation_id}", response_model=ActiveResponse)
    def delete_conversation(conversation_id: str):
        with lock:
            return ActiveResponse(active_id=session.delete_conversation(conversation_id))

    return app
