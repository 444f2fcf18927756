"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Interview server REST API (interviews, feedback)
    server_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("http://localhost:8000"),
        validation_alias=AliasChoices("INTERVIEW_SERVER_URL", "server_url"),
    )
    # Bidirectional event channel used during a call
    channel_url: str = Field(
        default="ws://localhost:8000/ws/interview",
        validation_alias=AliasChoices("INTERVIEW_CHANNEL_URL", "channel_url"),
    )
    api_token: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("INTERVIEW_API_TOKEN", "api_token"),
    )

    # Deepgram is used for both live transcription and Aura speech synthesis
    deepgram_api_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("DEEPGRAM_API_KEY")
    )

    voice_settings_path: Path = Field(
        default_factory=lambda: Path("data/voice_settings.json"),
        validation_alias=AliasChoices("VOICE_SETTINGS_PATH", "voice_settings_path"),
    )
    logging_settings_path: Path = Field(
        default_factory=lambda: Path("logging_settings.conf"),
        validation_alias=AliasChoices(
            "LOGGING_SETTINGS_PATH", "logging_settings_path"
        ),
    )
    log_dir: Path = Field(
        default_factory=lambda: Path("logs/sessions"),
        validation_alias=AliasChoices("LOG_DIR", "log_dir"),
    )

    session_close_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        validation_alias=AliasChoices(
            "SESSION_CLOSE_DELAY_SECONDS", "session_close_delay_seconds"
        ),
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("REQUEST_TIMEOUT", "timeout"),
    )

    def require_deepgram_key(self) -> str:
        """Return the Deepgram key or fail with a message the user can act on."""

        if self.deepgram_api_key is None:
            raise ValueError("DEEPGRAM_API_KEY is not set")
        return self.deepgram_api_key.get_secret_value()

    def token_value(self) -> str | None:
        return self.api_token.get_secret_value() if self.api_token else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
