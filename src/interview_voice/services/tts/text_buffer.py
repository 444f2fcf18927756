"""
Text Chunk Buffer for the Speech Synthesis Pipeline.

Accumulates text fragments streamed by the interview server and releases them
to speech synthesis in fixed-size word batches, or all at once when the server
signals the response is complete.

Architecture:
    text_chunk events → TextChunkBuffer.append() → synthesize(batch) → enqueue(audio, batch)
    text_complete     → TextChunkBuffer.force_flush()

Only one conversion runs at a time. Fragments that arrive while a batch is
being synthesized keep accumulating; a forced flush that arrives meanwhile is
remembered and honored as soon as the running conversion finishes.

Usage:
    buffer = TextChunkBuffer(synthesizer.convert, playback.enqueue)

    await buffer.append("The quick brown fox ")
    ...
    await buffer.force_flush()
"""

import logging
from typing import Awaitable, Callable, Tuple, TYPE_CHECKING

from interview_voice.errors import SynthesisError

if TYPE_CHECKING:
    from interview_voice.services.tts_service import AudioUnit

logger = logging.getLogger(__name__)

BATCH_WORD_THRESHOLD = 20


def count_words(text: str) -> int:
    """Whitespace-delimited, non-empty tokens."""
    return len(text.split())


def split_first_words(text: str, n: int) -> Tuple[str, str]:
    """Split ``text`` into its first ``n`` words and the rest, both single-spaced.

    A trailing space on ``text`` is kept on a non-empty remainder so the next
    fragment does not fuse with the last retained word.
    """
    words = text.split()
    batch = " ".join(words[:n])
    remainder = " ".join(words[n:])
    if remainder and text[-1:].isspace():
        remainder += " "
    return batch, remainder


class TextChunkBuffer:
    """
    Batches streamed text for speech synthesis with a single conversion in flight.

    Attributes:
        pending_text: Text received but not yet claimed by a batch
        is_converting: True while a batch is being synthesized
        flush_requested: A forced flush arrived during a conversion
        batch_words: Words per non-forced batch
    """

    def __init__(
        self,
        synthesize: Callable[[str], Awaitable["AudioUnit"]],
        enqueue: Callable[["AudioUnit", str], object],
        batch_words: int = BATCH_WORD_THRESHOLD,
    ):
        self._synthesize = synthesize
        self._enqueue = enqueue
        self.batch_words = batch_words

        self.pending_text = ""
        self.is_converting = False
        self.flush_requested = False
        self._generation = 0

    async def append(self, fragment: str) -> None:
        """Add a fragment and release a batch if enough words have accumulated."""
        self.pending_text += fragment
        await self._flush(force=False)

    async def force_flush(self) -> None:
        """Release everything buffered, deferring if a conversion is running."""
        await self._flush(force=True)

    def reset(self) -> None:
        """Drop buffered text for a new conversational turn.

        A conversion already in flight keeps the conversion right until it
        finishes, but its audio is discarded.
        """
        self.pending_text = ""
        self.flush_requested = False
        self._generation += 1

    async def _flush(self, force: bool) -> None:
        if self.is_converting:
            if force:
                self.flush_requested = True
            return

        while True:
            word_count = count_words(self.pending_text)
            if not (word_count >= self.batch_words or (force and word_count > 0)):
                return

            # Claim the conversion right before shrinking the buffer
            self.is_converting = True
            if force:
                batch = " ".join(self.pending_text.split())
                self.pending_text = ""
            else:
                batch, self.pending_text = split_first_words(
                    self.pending_text, self.batch_words
                )

            try:
                await self._convert(batch, self._generation)
            finally:
                self.is_converting = False

            if self.flush_requested:
                self.flush_requested = False
                force = True
            else:
                force = False

    async def _convert(self, batch: str, generation: int) -> None:
        logger.info(f"Converting batch ({count_words(batch)} words): {batch[:50]}...")
        try:
            audio = await self._synthesize(batch)
        except SynthesisError as e:
            logger.warning(f"TTS synthesis failed, skipping batch: {e}")
            return
        except Exception as e:
            logger.error(f"Unexpected TTS error for batch: {e}", exc_info=True)
            return

        if generation != self._generation:
            logger.info("Discarding audio for a batch from a previous turn")
            return

        self._enqueue(audio, batch)


__all__ = ["BATCH_WORD_THRESHOLD", "TextChunkBuffer", "count_words", "split_first_words"]
