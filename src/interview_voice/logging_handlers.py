"""Logging handlers for per-run session logs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator


class SessionLogFileHandler(logging.FileHandler):
    """File handler that writes one log file per run under a date folder.

    ``logs/sessions/2026-10-18/call_14-05-33.log`` (local time)
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        prefix: str = "call",
        encoding: str | None = "utf-8",
        delay: bool = False,
        current_time: datetime | None = None,
    ) -> None:
        started = (current_time or datetime.now(timezone.utc)).astimezone()
        self.log_path = (
            Path(directory)
            / started.strftime("%Y-%m-%d")
            / f"{prefix}_{started.strftime('%H-%M-%S')}.log"
        ).resolve()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(self.log_path, mode="a", encoding=encoding, delay=delay)


def _expired_logs(root: Path, cutoff: datetime) -> Iterator[Path]:
    for log_file in root.rglob("*.log"):
        try:
            modified = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
        except OSError:
            continue
        if modified < cutoff:
            yield log_file


def cleanup_old_logs(
    log_directory: str | Path,
    retention_hours: int,
    logger: logging.Logger | None = None,
) -> tuple[int, int]:
    """
    Delete session logs older than the retention window, then empty date folders.

    Args:
        log_directory: Root directory holding the date folders
        retention_hours: Age limit in hours (0 = keep everything)
        logger: Optional logger for reporting what was removed

    Returns:
        Tuple of (files_deleted, errors_encountered)
    """
    root = Path(log_directory).resolve()
    if retention_hours <= 0 or not root.is_dir():
        return (0, 0)

    cutoff = datetime.now(timezone.utc) - timedelta(hours=retention_hours)
    deleted = errors = 0

    for log_file in list(_expired_logs(root, cutoff)):
        try:
            log_file.unlink()
            deleted += 1
        except OSError as e:
            errors += 1
            if logger:
                logger.warning(f"Could not remove old log {log_file}: {e}")

    for folder in (p for p in root.iterdir() if p.is_dir()):
        if any(folder.iterdir()):
            continue
        try:
            folder.rmdir()
        except OSError as e:
            errors += 1
            if logger:
                logger.warning(f"Could not remove empty log folder {folder}: {e}")

    if logger and deleted:
        logger.info(f"Removed {deleted} old session log(s) from {root}")

    return (deleted, errors)


__all__ = ["SessionLogFileHandler", "cleanup_old_logs"]
