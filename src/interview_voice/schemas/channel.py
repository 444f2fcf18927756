"""Event envelopes exchanged with the interview server."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _InboundEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextChunk(_InboundEvent):
    type: Literal["text_chunk"] = "text_chunk"
    chunk: str


class TextComplete(_InboundEvent):
    type: Literal["text_complete"] = "text_complete"
    full_text: str = Field(default="", alias="fullText")


class SessionCompleted(_InboundEvent):
    type: Literal["session_completed"] = "session_completed"
    message: str = ""
    score: Optional[float] = None


class ServerError(_InboundEvent):
    type: Literal["error"] = "error"
    message: str = "Unknown server error"


INBOUND_EVENTS: dict[str, type[_InboundEvent]] = {
    "text_chunk": TextChunk,
    "text_complete": TextComplete,
    "session_completed": SessionCompleted,
    "error": ServerError,
}

# Outbound event names
JOIN_SESSION = "join_session"
START_SESSION = "start_session"
USER_RESPONSE = "user_response"
