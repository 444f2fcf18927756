import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from interview_voice.errors import SynthesisError
from interview_voice.schemas.voice_settings import TtsSettings

logger = logging.getLogger(__name__)

DEEPGRAM_SPEAK_URL = "https://api.deepgram.com/v1/speak"


@dataclass(frozen=True)
class AudioUnit:
    """Decoded 16-bit PCM audio ready for the output device."""

    pcm: bytes
    sample_rate: int
    channels: int = 1
    sample_width: int = 2

    @property
    def frame_size(self) -> int:
        return self.channels * self.sample_width

    @property
    def duration_seconds(self) -> float:
        if not self.sample_rate:
            return 0.0
        return len(self.pcm) / (self.frame_size * self.sample_rate)


def decode_linear16(data: bytes, sample_rate: int, content_type: str = "") -> AudioUnit:
    """Validate a raw linear16 payload and wrap it as an AudioUnit.

    Raises SynthesisError when the body is not audio or holds no samples.
    """
    if content_type.startswith(("application/json", "text/")):
        raise SynthesisError(f"Expected audio but received {content_type}")
    if len(data) < 2:
        raise SynthesisError("TTS audio contained no samples")

    if len(data) % 2 != 0:
        # Dropping the last byte is safer than misaligning every sample
        logger.warning("Dropping 1 byte from end of TTS audio to maintain 16-bit alignment")
        data = data[:-1]

    return AudioUnit(pcm=bytes(data), sample_rate=sample_rate)


class SpeechSynthesizer:
    """
    Converts a text batch into a playable AudioUnit with Deepgram Aura.

    Holds one lazily created httpx.AsyncClient for connection pooling across
    batches; call ``aclose()`` when the session ends. Ordering of concurrent
    calls is the caller's concern.
    """

    def __init__(
        self,
        api_key: str,
        settings: Optional[TtsSettings] = None,
        *,
        base_url: str = DEEPGRAM_SPEAK_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.settings = settings or TtsSettings()
        self.base_url = base_url
        self.timeout = timeout
        self._http_client = http_client

    def get_http_client(self) -> httpx.AsyncClient:
        """Get the pooled HTTP client, creating it on first use."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
            logger.info("Created httpx.AsyncClient for TTS")
        return self._http_client

    async def aclose(self) -> None:
        """Close the pooled HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            logger.info("Closed TTS HTTP client")

    async def convert(self, text: str) -> AudioUnit:
        if not text.strip():
            raise SynthesisError("No text provided for TTS")

        params = {
            "model": self.settings.model,
            "encoding": "linear16",
            "sample_rate": str(self.settings.sample_rate),
            "container": "none",
        }
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": "application/json",
        }

        client = self.get_http_client()
        try:
            response = await client.post(
                self.base_url,
                params=params,
                headers=headers,
                json={"text": text},
            )
        except httpx.HTTPError as e:
            raise SynthesisError(f"Deepgram TTS request failed: {e}") from e

        if not response.is_success:
            raise SynthesisError(
                f"Deepgram TTS failed: {response.status_code} {response.reason_phrase}"
            )

        audio = decode_linear16(
            response.content,
            self.settings.sample_rate,
            response.headers.get("content-type", ""),
        )
        logger.info(
            f"Deepgram TTS synthesized {len(audio.pcm)} bytes for text: {text[:50]}..."
        )
        return audio


__all__ = ["AudioUnit", "DEEPGRAM_SPEAK_URL", "SpeechSynthesizer", "decode_linear16"]
