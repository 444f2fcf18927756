"""Voice settings schema for Deepgram transcription and Aura synthesis."""

from pydantic import BaseModel, Field


class SttSettings(BaseModel):
    """Settings for the Deepgram live transcription connection."""

    model: str = Field(default="nova-3", description="Deepgram listen model.")

    sample_rate: int = Field(
        default=16000,
        ge=8000,
        le=48000,
        description="Microphone capture rate in Hz (linear16 mono).",
    )

    chunk_ms: int = Field(
        default=250,
        ge=20,
        le=1000,
        description="Interval between audio frames sent to the service.",
    )

    endpointing_ms: int = Field(
        default=700,
        ge=10,
        le=5000,
        description="Silence before Deepgram marks a final result speech_final (fast path).",
    )

    utterance_end_ms: int = Field(
        default=1500,
        ge=1000,
        le=5000,
        description="Word gap before Deepgram emits UtteranceEnd (fallback path).",
    )

    punctuate: bool = True


class TtsSettings(BaseModel):
    """Settings for Deepgram Aura speech synthesis."""

    model: str = Field(default="aura-asteria-en", description="Aura voice model.")

    sample_rate: int = Field(default=24000, ge=8000, le=48000)

    batch_words: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Words accumulated from the server before a batch is synthesized.",
    )


class VoiceSettings(BaseModel):
    stt: SttSettings = Field(default_factory=SttSettings)
    tts: TtsSettings = Field(default_factory=TtsSettings)


class SttSettingsUpdate(BaseModel):
    """Partial update schema - all fields optional."""

    model: str | None = None
    sample_rate: int | None = Field(default=None, ge=8000, le=48000)
    chunk_ms: int | None = Field(default=None, ge=20, le=1000)
    endpointing_ms: int | None = Field(default=None, ge=10, le=5000)
    utterance_end_ms: int | None = Field(default=None, ge=1000, le=5000)
    punctuate: bool | None = None


class TtsSettingsUpdate(BaseModel):
    model: str | None = None
    sample_rate: int | None = Field(default=None, ge=8000, le=48000)
    batch_words: int | None = Field(default=None, ge=1, le=200)


class VoiceSettingsUpdate(BaseModel):
    stt: SttSettingsUpdate | None = None
    tts: TtsSettingsUpdate | None = None
