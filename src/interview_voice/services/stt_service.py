"""
Deepgram live transcription for the interview call.

The Deepgram SDK delivers events on a listener thread and the microphone on
the audio thread. Both hop onto the asyncio loop before touching session
state, so every speaking transition happens on the loop and is seen by
subscribers immediately.
"""
import asyncio
import logging
import threading
from contextlib import suppress
from enum import Enum
from typing import Any, Callable, Optional

from deepgram import DeepgramClient
from deepgram.core.events import EventType

from interview_voice.errors import AcquisitionError, ConnectionSetupError, ProtocolError
from interview_voice.schemas.transcription import UtteranceEnd, parse_transcription_message
from interview_voice.schemas.voice_settings import SttSettings
from interview_voice.services.signals import SpeakingSignal, StatusBroadcaster

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class MicrophoneStream:
    """16-bit mono capture from the default input device, one block per interval."""

    def __init__(self, sample_rate: int, chunk_ms: int, on_chunk: Callable[[bytes], None]):
        self.sample_rate = sample_rate
        self.blocksize = int(sample_rate * chunk_ms / 1000)
        self._on_chunk = on_chunk
        self._stream = None

    def open(self) -> None:
        try:
            import sounddevice as sd

            self._stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="int16",
                blocksize=self.blocksize,
                callback=self._callback,
            )
        except Exception as e:
            raise AcquisitionError(f"Microphone unavailable: {e}") from e

    def start(self) -> None:
        if self._stream is None:
            raise AcquisitionError("Microphone was not opened")
        try:
            self._stream.start()
        except Exception as e:
            raise AcquisitionError(f"Failed to start microphone: {e}") from e

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug(f"Microphone status: {status}")
        self._on_chunk(bytes(indata))


class DeepgramListenConnection:
    """Manages a single Deepgram live connection using the SDK v5 sync pattern."""

    def __init__(
        self,
        client: DeepgramClient,
        options: dict[str, str],
        on_message: Callable[[Any], None],
        on_error: Optional[Callable[[Any], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        connect_timeout: float = 10.0,
    ):
        self._client = client
        self._options = options
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close
        self._connect_timeout = connect_timeout

        self._context_manager = None
        self._socket = None
        self._ready = threading.Event()
        self._running = False
        self._listening_thread: Optional[threading.Thread] = None

    @property
    def is_open(self) -> bool:
        return self._ready.is_set()

    def _handle_open(self, _) -> None:
        logger.info("Deepgram connected")
        self._ready.set()

    def _handle_close(self, _) -> None:
        logger.info("Deepgram disconnected")
        self._ready.clear()
        if self._running and self._on_close:
            self._on_close()

    def _handle_error(self, error) -> None:
        logger.error(f"Deepgram error: {error}")
        if self._on_error:
            self._on_error(error)

    def connect(self) -> None:
        """Open the socket and block until Deepgram reports it open."""
        logger.info(f"Connecting to Deepgram with options: {self._options}")

        try:
            self._context_manager = self._client.listen.v1.connect(**self._options)
            self._socket = self._context_manager.__enter__()

            self._socket.on(EventType.OPEN, self._handle_open)
            self._socket.on(EventType.MESSAGE, self._on_message)
            self._socket.on(EventType.ERROR, self._handle_error)
            self._socket.on(EventType.CLOSE, self._handle_close)

            def listen_loop():
                try:
                    self._socket.start_listening()
                except Exception as e:
                    if self._running:
                        logger.error(f"Deepgram listen error: {e}")

            self._running = True
            self._listening_thread = threading.Thread(target=listen_loop, daemon=True)
            self._listening_thread.start()

            if not self._ready.wait(timeout=self._connect_timeout):
                raise TimeoutError(
                    f"no open event within {self._connect_timeout:.0f}s"
                )
        except Exception as e:
            self.close()
            raise ConnectionSetupError(f"Failed to connect to Deepgram: {e}") from e

        logger.info("Deepgram transcription ready")

    def send_media(self, data: bytes) -> None:
        if self._socket and self._ready.is_set():
            try:
                self._socket.send_media(data)
            except Exception as e:
                logger.error(f"Error sending audio to Deepgram: {e}")

    def close(self) -> None:
        self._running = False
        self._ready.clear()
        context, self._context_manager = self._context_manager, None
        self._socket = None
        if context is not None:
            try:
                context.__exit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing Deepgram connection: {e}")
        logger.info("Deepgram connection closed")


class TranscriptionSession:
    """
    Microphone capture plus a streaming Deepgram connection for one call.

    Derives the speaking signal and the ordered list of finalized utterances
    from the transcript stream:

    - any transcript (interim or final) while not speaking marks speech onset
    - a final result with ``speech_final`` ends the utterance immediately
    - ``UtteranceEnd`` ends it after a longer silence, unless the fast path
      already did
    """

    def __init__(
        self,
        api_key: str,
        settings: Optional[SttSettings] = None,
        *,
        speaking: Optional[SpeakingSignal] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        client_factory: Callable[..., Any] = DeepgramClient,
        microphone_factory: Callable[..., Any] = MicrophoneStream,
    ):
        self.api_key = api_key
        self.settings = settings or SttSettings()
        self.speaking = speaking or SpeakingSignal()
        self.broadcaster = broadcaster or StatusBroadcaster()
        self._client_factory = client_factory
        self._microphone_factory = microphone_factory

        self.state = ConnectionState.IDLE
        self.current_interim_text = ""
        self.finalized_utterances: list[str] = []
        self.speech_final_pending = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._microphone = None
        self._connection: Optional[DeepgramListenConnection] = None
        self._audio_queue: Optional[asyncio.Queue[bytes]] = None
        self._pump_task: Optional[asyncio.Task] = None

    @property
    def is_user_speaking(self) -> bool:
        return self.speaking.value

    @property
    def is_active(self) -> bool:
        return self.state in (ConnectionState.CONNECTING, ConnectionState.ACTIVE)

    def listen_options(self) -> dict[str, str]:
        s = self.settings
        return {
            "model": s.model,
            "encoding": "linear16",
            "sample_rate": str(s.sample_rate),
            "channels": "1",
            "punctuate": str(s.punctuate).lower(),
            "interim_results": "true",
            "endpointing": str(s.endpointing_ms),
            "utterance_end_ms": str(s.utterance_end_ms),
        }

    async def start(self) -> None:
        """Open the microphone, connect to Deepgram and start streaming audio.

        Raises AcquisitionError or ConnectionSetupError; anything acquired
        before the failure is released and the session returns to idle.
        """
        if self.is_active:
            logger.warning(f"Transcription already {self.state.value}, ignoring start")
            return

        self.state = ConnectionState.CONNECTING
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._audio_queue = asyncio.Queue()

        try:
            self._microphone = self._microphone_factory(
                self.settings.sample_rate, self.settings.chunk_ms, self._on_audio_frame
            )
            self._microphone.open()

            self._connection = DeepgramListenConnection(
                self._client_factory(api_key=self.api_key),
                self.listen_options(),
                on_message=self._on_service_message,
                on_error=self._on_service_error,
                on_close=self._on_service_close,
            )
            # Connect in thread pool to not block asyncio
            await loop.run_in_executor(None, self._connection.connect)

            # Frames are only forwarded once the socket is open
            self._pump_task = asyncio.create_task(self._pump_audio())
            self._microphone.start()
        except Exception as e:
            logger.error(f"Failed to start transcription: {e}")
            await self._release()
            self.state = ConnectionState.IDLE
            raise

        self.state = ConnectionState.ACTIVE
        self.broadcaster.broadcast("transcription_started")
        logger.info("Transcription session active")

    async def stop(self) -> None:
        """Release the microphone and connection and reset derived state. Never raises."""
        await self._release()

        # Utterances go first so the speaking transition below sends nothing
        self.finalized_utterances.clear()
        self.speech_final_pending = False
        self._set_interim("")
        self.speaking.set(False)

        if self.state is not ConnectionState.IDLE:
            self.state = ConnectionState.CLOSED
        self.broadcaster.broadcast("transcription_stopped")
        logger.info("Transcription session stopped")

    async def _release(self) -> None:
        pump, self._pump_task = self._pump_task, None
        if pump is not None:
            pump.cancel()
            with suppress(asyncio.CancelledError):
                await pump

        microphone, self._microphone = self._microphone, None
        if microphone is not None:
            try:
                microphone.close()
            except Exception as e:
                logger.warning(f"Error releasing microphone: {e}")

        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, connection.close)
            except Exception as e:
                logger.warning(f"Error closing Deepgram connection: {e}")

        self._audio_queue = None

    def take_utterances(self) -> list[str]:
        """Return and clear the finalized utterances awaiting transmission."""
        taken = list(self.finalized_utterances)
        self.finalized_utterances.clear()
        return taken

    def handle_message(self, raw: Any) -> None:
        """Apply one inbound service message to the session state."""
        try:
            message = parse_transcription_message(raw)
        except ProtocolError as e:
            logger.error(f"Failed to parse Deepgram message: {e}")
            return

        if message is None:
            return

        if isinstance(message, UtteranceEnd):
            if not self.speech_final_pending:
                logger.debug(f"UtteranceEnd at {message.last_word_end}, ending utterance")
                self.speaking.set(False)
            else:
                logger.debug("speech_final already handled, ignoring UtteranceEnd")
            self.speech_final_pending = False
            return

        text = message.text
        if not text:
            return

        if not self.speaking.value:
            self.speaking.set(True)

        if message.is_final:
            logger.info(f"Final transcript: '{text}' (speech_final={message.speech_final})")
            self.finalized_utterances.append(text)
            self.broadcaster.broadcast("utterance_finalized", text=text)
            if message.speech_final:
                self.speech_final_pending = True
                self.speaking.set(False)
                self._set_interim("")
        else:
            self._set_interim(text)

    def _set_interim(self, text: str) -> None:
        if text == self.current_interim_text:
            return
        self.current_interim_text = text
        self.broadcaster.broadcast("interim_transcript", text=text)

    # -- thread hops --

    def _call_on_loop(self, callback: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed before callback could be scheduled")

    def _on_audio_frame(self, chunk: bytes) -> None:
        queue = self._audio_queue
        if queue is not None:
            self._call_on_loop(queue.put_nowait, chunk)

    def _on_service_message(self, message: Any) -> None:
        self._call_on_loop(self.handle_message, message)

    def _on_service_error(self, error: Any) -> None:
        self._call_on_loop(self.broadcaster.broadcast, "transcription_error", message=str(error))

    def _on_service_close(self) -> None:
        self._call_on_loop(self._handle_remote_close)

    def _handle_remote_close(self) -> None:
        if self.state is ConnectionState.ACTIVE:
            logger.warning("Deepgram closed the transcription connection")
            self.state = ConnectionState.CLOSED
            self.broadcaster.broadcast("transcription_closed")

    async def _pump_audio(self) -> None:
        loop = asyncio.get_running_loop()
        queue = self._audio_queue
        if queue is None:
            return
        while True:
            chunk = await queue.get()
            connection = self._connection
            if connection is None:
                continue
            await loop.run_in_executor(None, connection.send_media, chunk)


__all__ = [
    "ConnectionState",
    "DeepgramListenConnection",
    "MicrophoneStream",
    "TranscriptionSession",
]
