"""Tests for logging settings parsing."""

import logging
from pathlib import Path

from interview_voice.logging_settings import LoggingSettings, parse_logging_settings


def test_parse_logging_settings_with_retention(tmp_path: Path) -> None:
    """Test parsing logging settings with retention_hours."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
# Test config
terminal = warning
session_file = debug
retention_hours = 72
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == 30  # WARNING
    assert settings.session_file_level == 10  # DEBUG
    assert settings.retention_hours == 72


def test_parse_logging_settings_defaults(tmp_path: Path) -> None:
    """Test default values when config file doesn't exist."""
    settings = parse_logging_settings(tmp_path / "nonexistent.conf")

    assert settings.terminal_level == 20  # Default INFO
    assert settings.session_file_level == 20  # Default INFO
    assert settings.retention_hours == 48  # Default retention


def test_parse_logging_settings_invalid_values(tmp_path: Path) -> None:
    """Unknown levels fall back to INFO, bad retention falls back to the default."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
terminal = loud
not a setting
retention_hours = invalid
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == 20
    assert settings.retention_hours == 48


def test_parse_logging_settings_negative_retention(tmp_path: Path) -> None:
    """Test parsing with negative retention value clamps to 0."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text("retention_hours = -10\n")

    settings = parse_logging_settings(config_file)

    assert settings.retention_hours == 0  # Clamped to 0


def test_parse_logging_settings_off_level(tmp_path: Path) -> None:
    """Test parsing with 'off' level."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
terminal = off
session_file = Debug
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level is None
    assert settings.session_file_level == 10
    assert settings.root_level == logging.DEBUG


def test_root_level_when_everything_is_off() -> None:
    settings = LoggingSettings(terminal_level=None, session_file_level=None, retention_hours=0)
    assert settings.root_level == logging.WARNING
