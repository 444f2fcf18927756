"""Audio output device for synthesized speech.

The playback queue talks to an ``AudioOutput``; the default renders PCM through
a sounddevice raw output stream, one stream per queue item.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from interview_voice.errors import PlaybackError
from interview_voice.services.tts_service import AudioUnit

logger = logging.getLogger(__name__)


class PlaybackHandle(Protocol):
    """Ownership of one sounding audio resource."""

    def stop(self) -> None:
        """Stop immediately; the finished callback must not fire afterwards."""

    def close(self) -> None:
        """Release the resource after natural completion."""


class AudioOutput(Protocol):
    def play(self, unit: AudioUnit, on_finished: Callable[[], None]) -> PlaybackHandle:
        """Start rendering ``unit``; ``on_finished`` runs on the event loop at the end."""


class SoundDeviceHandle:
    def __init__(self, stream) -> None:
        self._stream = stream
        # Read from the PortAudio thread in the finished callback
        self.stopped = False
        self._closed = False

    def stop(self) -> None:
        self.stopped = True
        try:
            self._stream.abort()
        except Exception as e:
            logger.warning(f"Error aborting output stream: {e}")
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        except Exception as e:
            logger.warning(f"Error closing output stream: {e}")


class SoundDeviceOutput:
    """Plays AudioUnits on the default output device.

    sounddevice is imported on first playback so the module stays importable on
    machines without PortAudio.
    """

    def __init__(self, device: Optional[int] = None, blocksize: int = 1024):
        self.device = device
        self.blocksize = blocksize

    def play(self, unit: AudioUnit, on_finished: Callable[[], None]) -> SoundDeviceHandle:
        loop = asyncio.get_running_loop()
        pcm = unit.pcm
        position = 0
        handle: Optional[SoundDeviceHandle] = None

        try:
            import sounddevice as sd
        except Exception as e:
            raise PlaybackError(f"Audio output unavailable: {e}") from e

        def _callback(outdata, frames, time_info, status):
            nonlocal position
            if status:
                logger.debug(f"Output stream status: {status}")
            wanted = frames * unit.frame_size
            chunk = pcm[position:position + wanted]
            position += len(chunk)
            outdata[:len(chunk)] = chunk
            if len(chunk) < wanted:
                outdata[len(chunk):] = b"\x00" * (wanted - len(chunk))
                raise sd.CallbackStop

        def _finished():
            if handle is None or handle.stopped:
                return
            try:
                loop.call_soon_threadsafe(on_finished)
            except RuntimeError:
                # Loop already closed during shutdown
                pass

        try:
            stream = sd.RawOutputStream(
                samplerate=unit.sample_rate,
                channels=unit.channels,
                dtype="int16",
                blocksize=self.blocksize,
                device=self.device,
                callback=_callback,
                finished_callback=_finished,
            )
            handle = SoundDeviceHandle(stream)
            stream.start()
        except Exception as e:
            if handle is not None:
                handle.stop()
            raise PlaybackError(f"Failed to start audio playback: {e}") from e

        logger.debug(f"Started playback of {unit.duration_seconds:.2f}s audio")
        return handle


__all__ = ["AudioOutput", "PlaybackHandle", "SoundDeviceHandle", "SoundDeviceOutput"]
