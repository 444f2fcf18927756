"""Error taxonomy for the voice pipeline."""

from __future__ import annotations


class VoiceClientError(RuntimeError):
    """Base error raised by the interview voice client."""


class AcquisitionError(VoiceClientError):
    """Raised when the microphone or audio device cannot be opened."""


class ConnectionSetupError(VoiceClientError):
    """Raised when the transcription service or server channel cannot be reached."""


class SynthesisError(VoiceClientError):
    """Raised when text cannot be converted to playable audio."""


class PlaybackError(VoiceClientError):
    """Raised when decoded audio cannot be started on the output device."""


class ProtocolError(VoiceClientError):
    """Raised when an inbound message cannot be parsed."""


class InterviewApiError(VoiceClientError):
    """Raised when the interview REST API returns a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


__all__ = [
    "AcquisitionError",
    "ConnectionSetupError",
    "InterviewApiError",
    "PlaybackError",
    "ProtocolError",
    "SynthesisError",
    "VoiceClientError",
]
