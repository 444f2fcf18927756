"""Stored transcription and synthesis tuning for voice calls.

The tuning lives in a small JSON file edited through ``interview-voice settings``
with dotted assignments::

    interview-voice settings stt.endpointing_ms=500 tts.model=aura-orion-en
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pydantic import ValidationError

from interview_voice.schemas.voice_settings import (
    SttSettingsUpdate,
    TtsSettingsUpdate,
    VoiceSettings,
    VoiceSettingsUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path("data/voice_settings.json")

_SECTIONS = {"stt": SttSettingsUpdate, "tts": TtsSettingsUpdate}


def parse_assignments(assignments: Iterable[str]) -> VoiceSettingsUpdate:
    """Build a validated partial update from ``section.field=value`` strings.

    Raises ValueError for malformed assignments, unknown fields or values
    outside their allowed range.
    """
    sections: dict[str, dict[str, str]] = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        section, dot, field = key.strip().partition(".")
        if not sep or not dot:
            raise ValueError(f"Expected section.field=value, got {assignment!r}")
        model = _SECTIONS.get(section)
        if model is None or field not in model.model_fields:
            raise ValueError(f"Unknown voice setting: {key.strip()}")
        sections.setdefault(section, {})[field] = value.strip()

    try:
        return VoiceSettingsUpdate.model_validate(sections)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValueError(problems) from e


def iter_fields(settings: VoiceSettings) -> Iterator[tuple[str, object]]:
    """Yield ``("stt.model", "nova-3")`` style pairs in declaration order."""
    for section in _SECTIONS:
        for field, value in getattr(settings, section).model_dump().items():
            yield f"{section}.{field}", value


class VoiceSettingsService:
    """Loads, updates and resets the stored voice tuning."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.path = settings_path or DEFAULT_SETTINGS_PATH
        self._cached: Optional[VoiceSettings] = None

    def get_settings(self) -> VoiceSettings:
        if self._cached is None:
            self._cached = self._load()
        return self._cached

    def update_settings(self, update: VoiceSettingsUpdate) -> VoiceSettings:
        """Apply the non-empty fields of ``update`` and persist the result."""
        data = self.get_settings().model_dump()
        for section, fields in update.model_dump(exclude_none=True).items():
            data[section].update(fields)
        return self._save(VoiceSettings.model_validate(data))

    def reset_to_defaults(self) -> VoiceSettings:
        return self._save(VoiceSettings())

    def _load(self) -> VoiceSettings:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No stored voice settings, using defaults")
            return VoiceSettings()
        except OSError as e:
            logger.warning(f"Could not read {self.path}: {e}, using defaults")
            return VoiceSettings()

        try:
            settings = VoiceSettings.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid voice settings in {self.path}: {e.error_count()} error(s)")
            return VoiceSettings()
        logger.info(f"Loaded voice settings from {self.path}")
        return settings

    def _save(self, settings: VoiceSettings) -> VoiceSettings:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(settings.model_dump(), indent=2) + "\n", encoding="utf-8"
        )
        self._cached = settings
        logger.info(f"Saved voice settings to {self.path}")
        return settings


_instance: Optional[VoiceSettingsService] = None


def get_voice_settings_service(settings_path: Optional[Path] = None) -> VoiceSettingsService:
    global _instance
    if _instance is None:
        _instance = VoiceSettingsService(settings_path)
    return _instance
