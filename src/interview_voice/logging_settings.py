"""Helpers for parsing the simple logging settings file.

Example ``logging_settings.conf``::

    # where log output goes and how much of it
    terminal = warning
    session_file = debug
    retention_hours = 48
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

LEVELS: dict[str, int | None] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": None,
}

DEFAULT_LEVEL = logging.INFO
DEFAULT_RETENTION_HOURS = 48


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: int | None = DEFAULT_LEVEL
    session_file_level: int | None = DEFAULT_LEVEL
    retention_hours: int = DEFAULT_RETENTION_HOURS

    @property
    def root_level(self) -> int:
        """Lowest level any enabled destination wants to see."""

        enabled = [
            level
            for level in (self.terminal_level, self.session_file_level)
            if level is not None
        ]
        return min(enabled) if enabled else logging.WARNING


def _entries(text: str) -> Iterator[tuple[str, str]]:
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        key, sep, value = line.partition("=")
        if sep:
            yield key.strip().lower(), value.strip()


def _level(value: str) -> int | None:
    # Unknown names fall back to the default rather than disabling output
    return LEVELS.get(value.lower(), DEFAULT_LEVEL)


def _retention(value: str) -> int:
    try:
        return max(0, int(value))
    except ValueError:
        return DEFAULT_RETENTION_HOURS


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Parse the human-readable logging settings file.

    Unknown keys and malformed lines are ignored so a hand-edited file never
    prevents a call from starting. A missing file yields the defaults.
    """

    if not path.exists():
        return LoggingSettings()

    values: dict[str, object] = {}
    for key, value in _entries(path.read_text(encoding="utf-8")):
        if key == "terminal":
            values["terminal_level"] = _level(value)
        elif key == "session_file":
            values["session_file_level"] = _level(value)
        elif key == "retention_hours":
            values["retention_hours"] = _retention(value)

    return LoggingSettings(**values)  # type: ignore[arg-type]


__all__ = ["LoggingSettings", "parse_logging_settings"]
