"""Inbound Deepgram live-transcription messages."""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from interview_voice.errors import ProtocolError


class _Alternative(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transcript: str = ""


class _Channel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    alternatives: list[_Alternative] = Field(default_factory=list)


class TranscriptResult(BaseModel):
    """A ``Results`` message: interim or final transcript for the current utterance."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["Results"] = "Results"
    channel: _Channel
    is_final: bool = False
    speech_final: bool = False

    @property
    def text(self) -> str:
        if not self.channel.alternatives:
            return ""
        return self.channel.alternatives[0].transcript


class UtteranceEnd(BaseModel):
    """Fallback end-of-utterance signal sent after a prolonged word gap."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["UtteranceEnd"]
    last_word_end: float | None = None


TranscriptionMessage = Union[TranscriptResult, UtteranceEnd]

_MODELS: dict[str, type[BaseModel]] = {
    "Results": TranscriptResult,
    "UtteranceEnd": UtteranceEnd,
}


def _as_mapping(raw: Any) -> dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        raw = json.loads(raw)
    if isinstance(raw, dict):
        return raw
    # SDK event objects are pydantic models
    dump = getattr(raw, "model_dump", None)
    if callable(dump):
        return dump()
    raise TypeError(f"Unsupported message type {type(raw).__name__}")


def parse_transcription_message(raw: Any) -> TranscriptionMessage | None:
    """Normalize a raw service message.

    Accepts JSON text, bytes, dicts or SDK event objects. Returns ``None`` for
    message types the pipeline does not react to (Metadata, SpeechStarted).
    """

    try:
        payload = _as_mapping(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Unparseable transcription message: {exc}") from exc

    model = _MODELS.get(payload.get("type"))
    if model is None:
        return None

    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        raise ProtocolError(f"Invalid {payload.get('type')} message: {exc}") from exc


__all__ = [
    "TranscriptResult",
    "TranscriptionMessage",
    "UtteranceEnd",
    "parse_transcription_message",
]
