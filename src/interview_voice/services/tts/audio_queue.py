"""
Audio Playback Queue.

Plays synthesized batches one at a time in the order they were enqueued and
gets out of the way the moment the user starts talking.

Architecture:
    TextChunkBuffer → enqueue(audio, text) → items → AudioOutput.play()
                                               ▲
    SpeakingSignal ── True: stop + discard the active item
                   └─ False: resume with the next queued item

Rules:
- Auto-advance whenever the queue is non-empty, nothing is playing and the
  user is not speaking.
- Natural completion releases the stream, clears the current text and
  advances.
- Speech onset stops and discards the sounding item without any completion
  side effects; queued items stay in order.
- The first item started since the last reset fires ``on_first_audio`` once.
"""

import itertools
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Optional

from interview_voice.errors import PlaybackError
from interview_voice.services.signals import SpeakingSignal, StatusBroadcaster
from interview_voice.services.tts.audio_output import (
    AudioOutput,
    PlaybackHandle,
    SoundDeviceOutput,
)
from interview_voice.services.tts_service import AudioUnit

logger = logging.getLogger(__name__)


class ItemState(str, Enum):
    QUEUED = "queued"
    PLAYING = "playing"
    DONE = "done"
    DISCARDED = "discarded"


def _new_item_id() -> str:
    return f"audio_{time.time_ns()}_{uuid.uuid4().hex[:8]}"


@dataclass(eq=False)
class AudioQueueItem:
    audio: AudioUnit
    text: str
    id: str = field(default_factory=_new_item_id)
    state: ItemState = ItemState.QUEUED


class AudioPlaybackQueue:
    """
    FIFO playback of synthesized speech, interrupted by user speech.

    Attributes:
        speaking: The user-speaking signal (read only)
        output: Audio device seam; a SoundDeviceOutput is created on first use
        on_first_audio: One-shot callback for the first item of a turn
        broadcaster: Optional sink for UI status messages
    """

    def __init__(
        self,
        speaking: SpeakingSignal,
        output: Optional[AudioOutput] = None,
        on_first_audio: Optional[Callable[[], None]] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        output_factory: Callable[[], AudioOutput] = SoundDeviceOutput,
    ):
        self.speaking = speaking
        self.on_first_audio = on_first_audio
        self.broadcaster = broadcaster
        self._output = output
        self._output_factory = output_factory

        self._items: Deque[AudioQueueItem] = deque()
        self._active_item: Optional[AudioQueueItem] = None
        self._active_handle: Optional[PlaybackHandle] = None
        self._first_audio_played = False
        self._played_count = itertools.count(1)

        self._unsubscribe = speaking.subscribe(self._on_speaking_changed)

    @property
    def is_playing(self) -> bool:
        return self._active_handle is not None

    @property
    def current_text(self) -> Optional[str]:
        return self._active_item.text if self._active_item is not None else None

    @property
    def pending_count(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get_output(self) -> AudioOutput:
        if self._output is None:
            self._output = self._output_factory()
            logger.info("Created audio output for playback")
        return self._output

    def enqueue(self, audio: AudioUnit, text: str) -> AudioQueueItem:
        item = AudioQueueItem(audio=audio, text=text)
        self._items.append(item)
        logger.debug(f"Queued {item.id} ({audio.duration_seconds:.2f}s): {text[:50]}...")
        self._broadcast("playback_queue", length=len(self._items))
        self._advance()
        return item

    def clear(self) -> None:
        """Stop the active item and drop everything queued."""
        self._stop_active()
        for item in self._items:
            item.state = ItemState.DISCARDED
        dropped = len(self._items)
        self._items.clear()
        if dropped:
            logger.info(f"Cleared {dropped} queued audio item(s)")
        self._broadcast("playback_queue", length=0)

    def reset_first_audio_flag(self) -> None:
        self._first_audio_played = False

    def close(self) -> None:
        self._unsubscribe()
        self.clear()

    def _advance(self) -> None:
        while self._items and not self.is_playing and not self.speaking.value:
            item = self._items.popleft()
            try:
                handle = self.get_output().play(
                    item.audio, lambda item=item: self._on_finished(item)
                )
            except PlaybackError as e:
                item.state = ItemState.DISCARDED
                logger.warning(f"Playback failed for {item.id}, skipping: {e}")
                continue
            except Exception as e:
                item.state = ItemState.DISCARDED
                logger.error(f"Unexpected playback error for {item.id}: {e}", exc_info=True)
                continue

            item.state = ItemState.PLAYING
            self._active_item = item
            self._active_handle = handle
            logger.info(f"▶️ Playing item #{next(self._played_count)}: {item.text[:50]}...")
            self._broadcast("playback_started", text=item.text, remaining=len(self._items))

            if not self._first_audio_played:
                self._first_audio_played = True
                if self.on_first_audio is not None:
                    try:
                        self.on_first_audio()
                    except Exception as e:
                        logger.error(f"First-audio callback failed: {e}", exc_info=True)

    def _on_finished(self, item: AudioQueueItem) -> None:
        # Completion of an item that was already stopped or cleared
        if item is not self._active_item:
            return

        item.state = ItemState.DONE
        handle = self._active_handle
        self._active_item = None
        self._active_handle = None
        if handle is not None:
            handle.close()

        self._broadcast("playback_finished", remaining=len(self._items))
        self._advance()

    def _on_speaking_changed(self, speaking: bool) -> None:
        if speaking:
            if self.is_playing:
                logger.info("🛑 User started speaking, interrupting playback")
                self._stop_active()
                self._broadcast("playback_interrupted", remaining=len(self._items))
        else:
            self._advance()

    def _stop_active(self) -> None:
        item = self._active_item
        handle = self._active_handle
        self._active_item = None
        self._active_handle = None
        if item is not None:
            item.state = ItemState.DISCARDED
        if handle is not None:
            try:
                handle.stop()
            except Exception as e:
                logger.warning(f"Error stopping playback: {e}")

    def _broadcast(self, message_type: str, **fields) -> None:
        if self.broadcaster is not None:
            self.broadcaster.broadcast(message_type, **fields)


__all__ = ["AudioPlaybackQueue", "AudioQueueItem", "ItemState"]
