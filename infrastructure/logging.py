"""Loguru setup for the app, plus routing of third-party stdlib loggers.

firebase_admin, the Firestore client, requests/urllib3 and the cloudinary SDK
all log through the standard `logging` module; `init_logging` forwards those
records into the same loguru sinks.
"""

from __future__ import annotations

import logging
from pathlib import Path
import sys

from loguru import logger

LOG_FILE_PATTERN = "family_album_{time:YYYYMMDD}.log"
LOG_FILE_GLOB = "family_album_*.log"
LIBRARY_LOGGERS = ("firebase_admin", "google", "urllib3", "cloudinary")


class InterceptHandler(logging.Handler):
    """Re-emit stdlib log records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(exception=record.exc_info).log(level, "[{}] {}", record.name, record.getMessage())


def get_log_directory() -> str:
    return str(Path.home() / ".local" / "share" / "FamilyAlbum" / "logs")


def init_logging(log_dir: str | None = None, level: str = "INFO") -> Path:
    """Log to stderr and a daily rotating file; returns the log directory."""
    log_path = Path(log_dir or get_log_directory())
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        str(log_path / LOG_FILE_PATTERN),
        rotation="10 MB",
        retention="10 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=level,
    )

    # Library chatter stays at WARNING unless we are debugging
    lib_level = logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    for name in LIBRARY_LOGGERS:
        lib_logger = logging.getLogger(name)
        lib_logger.handlers = [InterceptHandler()]
        lib_logger.setLevel(lib_level)
        lib_logger.propagate = False
    return log_path


def find_latest_log_file(log_dir: str | None = None) -> Path | None:
    """Most recently modified log file in `log_dir`, if any."""
    log_path = Path(log_dir or get_log_directory())
    try:
        candidates = list(log_path.glob(LOG_FILE_GLOB)) if log_path.exists() else []
        return max(candidates, key=lambda p: p.stat().st_mtime) if candidates else None
    except OSError:
        return None
