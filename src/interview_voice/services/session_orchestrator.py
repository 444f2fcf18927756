"""
Session orchestration for one interview call.

Wires the transcription session, the text buffer, speech synthesis and the
playback queue to the server channel:

    server text_chunk        → TextChunkBuffer.append()
    server text_complete     → TextChunkBuffer.force_flush()
    server session_completed → stop transcription, clear playback, close channel
    user stops speaking      → user_response{text} with the finalized utterances
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional, Set

from interview_voice.schemas.channel import (
    JOIN_SESSION,
    START_SESSION,
    USER_RESPONSE,
    ServerError,
    SessionCompleted,
    TextChunk,
    TextComplete,
)
from interview_voice.services.server_channel import DISCONNECT, ServerChannel
from interview_voice.services.signals import StatusBroadcaster
from interview_voice.services.stt_service import TranscriptionSession
from interview_voice.services.tts.audio_queue import AudioPlaybackQueue
from interview_voice.services.tts.text_buffer import BATCH_WORD_THRESHOLD, TextChunkBuffer
from interview_voice.services.tts_service import SpeechSynthesizer

logger = logging.getLogger(__name__)


class SessionOrchestrator:
    """
    Coordinates the voice pipeline against the server channel for one session.

    Attributes:
        session_id: Interview being conducted
        channel: Bidirectional event channel to the server
        transcription: Microphone + STT session, owner of the speaking signal
        synthesizer: Text → audio conversion
        playback: Sequential audio output
        buffer: Batches server text for synthesis
    """

    def __init__(
        self,
        session_id: str,
        channel: ServerChannel,
        transcription: TranscriptionSession,
        synthesizer: SpeechSynthesizer,
        playback: AudioPlaybackQueue,
        *,
        batch_words: int = BATCH_WORD_THRESHOLD,
        close_delay: float = 2.0,
        broadcaster: Optional[StatusBroadcaster] = None,
    ):
        self.session_id = session_id
        self.channel = channel
        self.transcription = transcription
        self.synthesizer = synthesizer
        self.playback = playback
        self.close_delay = close_delay
        self.broadcaster = broadcaster or transcription.broadcaster

        self.buffer = TextChunkBuffer(synthesizer.convert, playback.enqueue, batch_words)
        self.playback.on_first_audio = self._on_first_audio

        self.completed: Optional[SessionCompleted] = None
        self._last_transmitted: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()

        channel.on("text_chunk", self._on_text_chunk)
        channel.on("text_complete", self._on_text_complete)
        channel.on("session_completed", self._on_session_completed)
        channel.on("error", self._on_server_error)
        channel.on(DISCONNECT, self._on_disconnect)
        self._unsubscribe = transcription.speaking.subscribe(self._on_speaking_changed)

    async def connect(self) -> None:
        """Open the channel and join the interview session."""
        await self.channel.connect()
        await self.channel.emit(JOIN_SESSION, {"sessionId": self.session_id})
        logger.info(f"Joined interview session {self.session_id}")

    async def start_session(self) -> None:
        """Start listening and ask the server to begin the conversation.

        AcquisitionError and ConnectionSetupError propagate to the caller. If the
        server cannot be told, transcription is stopped again before raising.
        """
        await self.transcription.start()
        self.buffer.reset()
        self.playback.reset_first_audio_flag()
        try:
            await self.channel.emit(START_SESSION, {})
        except Exception:
            logger.warning("Could not notify server of session start, stopping transcription")
            await self.transcription.stop()
            raise
        self.broadcaster.broadcast("session_started", session_id=self.session_id)

    async def stop_session(self) -> None:
        await self.transcription.stop()
        self.playback.clear()
        self.buffer.reset()
        self.broadcaster.broadcast("session_stopped", session_id=self.session_id)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def aclose(self) -> None:
        """Release every resource, best-effort."""
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        await self.transcription.stop()
        self.playback.close()
        self.buffer.reset()
        try:
            await self.channel.close()
        except Exception as e:
            logger.warning(f"Error closing server channel: {e}")
        try:
            await self.synthesizer.aclose()
        except Exception as e:
            logger.warning(f"Error closing synthesizer: {e}")
        self._closed.set()

    # -- server events --

    async def _on_text_chunk(self, event: TextChunk) -> None:
        self.broadcaster.broadcast("assistant_text", chunk=event.chunk)
        await self.buffer.append(event.chunk)

    async def _on_text_complete(self, event: TextComplete) -> None:
        logger.info(f"Server response complete ({len(event.full_text)} chars)")
        await self.buffer.force_flush()

    def _on_session_completed(self, event: SessionCompleted) -> None:
        logger.info(f"Interview completed: {event.message} (score={event.score})")
        self.completed = event
        self._spawn(self._complete(event))

    def _on_server_error(self, event: ServerError) -> None:
        logger.error(f"Server error: {event.message}")
        self.broadcaster.broadcast("server_error", message=event.message)

    def _on_disconnect(self) -> None:
        self.broadcaster.broadcast("channel_disconnected")
        self._closed.set()

    async def _complete(self, event: SessionCompleted) -> None:
        await self.transcription.stop()
        self.playback.clear()
        self.buffer.reset()
        self.broadcaster.broadcast(
            "session_completed", message=event.message, score=event.score
        )
        # Leave the final status on screen briefly before hanging up
        await asyncio.sleep(self.close_delay)
        await self.channel.close()
        self._closed.set()

    # -- pipeline events --

    def _on_first_audio(self) -> None:
        self.broadcaster.broadcast("assistant_responding")

    def _on_speaking_changed(self, speaking: bool) -> None:
        if speaking:
            return
        if not self.transcription.finalized_utterances or not self.channel.is_open:
            return

        text = " ".join(self.transcription.take_utterances())
        if text == self._last_transmitted:
            logger.info("Skipping duplicate user response")
            return

        self._last_transmitted = text
        self.buffer.reset()
        self.playback.reset_first_audio_flag()
        logger.info(f"Sending user response: {text[:80]}")
        self.broadcaster.broadcast("user_response", text=text)
        self._spawn(self.channel.emit(USER_RESPONSE, {"text": text}))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Session task failed: {exc}", exc_info=exc)


__all__ = ["SessionOrchestrator"]
