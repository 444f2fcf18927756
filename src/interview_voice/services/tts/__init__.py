"""
Speech output package.

- text_buffer: Batches streamed server text into fixed word counts for TTS
- audio_queue: Sequential playback of synthesized batches with barge-in
- audio_output: sounddevice rendering behind the AudioOutput seam

Architecture Overview:

    ┌─────────────┐     ┌─────────────────┐     ┌───────────────────┐
    │ text_chunk  │────▶│ TextChunkBuffer │────▶│ SpeechSynthesizer │
    └─────────────┘     └─────────────────┘     └───────────────────┘
                                                          │
                                                          ▼
    ┌───────────────┐   interrupt / resume    ┌────────────────────┐
    │ SpeakingSignal│────────────────────────▶│ AudioPlaybackQueue │
    └───────────────┘                         └────────────────────┘
                                                          │
                                                          ▼
                                                 ┌────────────────┐
                                                 │  AudioOutput   │
                                                 └────────────────┘

Time-to-first-audio is bounded by one batch: the first 20 words are
synthesized while the rest of the response is still streaming in.
"""

from .audio_output import AudioOutput, PlaybackHandle, SoundDeviceOutput
from .audio_queue import AudioPlaybackQueue, AudioQueueItem, ItemState
from .text_buffer import BATCH_WORD_THRESHOLD, TextChunkBuffer

__all__ = [
    "AudioOutput",
    "AudioPlaybackQueue",
    "AudioQueueItem",
    "BATCH_WORD_THRESHOLD",
    "ItemState",
    "PlaybackHandle",
    "SoundDeviceOutput",
    "TextChunkBuffer",
]
