"""
Package logging: one console handler with emoji level prefixes and one DEBUG
file handler, both under the ``synesthesia`` logger. Locations and verbosity
come from ``LogSettings``.
"""

from __future__ import annotations

import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import LogSettings, load_log_settings
from .errors import InvalidSettingsError

_LOGGER = logging.getLogger("synesthesia.logging")
_PACKAGE_LOGGER = "synesthesia"
_CONSOLE_FORMAT = "%(level_prefix)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVEL_PREFIXES = {
    logging.DEBUG: "🐛",
    logging.INFO: "ℹ️",
    logging.WARNING: "⚠️",
    logging.ERROR: "❌",
    logging.CRITICAL: "💥",
}

_active: LogSettings | None = None


class _ConsoleEmojiFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.level_prefix = _LEVEL_PREFIXES.get(record.levelno, "")
        return super().format(record)


def _settings_or_default() -> tuple[LogSettings, InvalidSettingsError | None]:
    try:
        return load_log_settings(), None
    except InvalidSettingsError as exc:
        return LogSettings(), exc


def configure_logging(settings: LogSettings | None = None) -> LogSettings:
    """Attach the package handlers once; later calls return the active settings."""
    global _active
    if _active is not None:
        return _active

    problem: InvalidSettingsError | None = None
    if settings is None:
        settings, problem = _settings_or_default()

    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    # Leave console output to the host when it already configured the root logger.
    if not logging.getLogger().handlers:
        console = logging.StreamHandler(stream=sys.__stderr__)
        console.setLevel(settings.console_level)
        console.setFormatter(_ConsoleEmojiFormatter(_CONSOLE_FORMAT))
        logger.addHandler(console)

    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_path, encoding="utf-8")
    except OSError as exc:
        _LOGGER.warning("Failed to open log file %s: %s", settings.log_path, exc)
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATE_FORMAT))
        logger.addHandler(file_handler)

    if problem is not None:
        _LOGGER.warning("Ignoring logging environment: %s", problem)
    _active = settings
    return settings


def log_exception(context: str, exc: BaseException, settings: LogSettings | None = None) -> Path | None:
    """Append a traceback for ``exc`` to the log file; returns the file written."""
    if settings is None:
        settings, _ = _settings_or_default()
    path = settings.log_path
    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{datetime.now().isoformat()}] {context} failed: {type(exc).__name__}: {exc}\n")
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=handle)
            handle.write("\n")
    except OSError as log_exc:
        _LOGGER.warning("Failed to write log file %s: %s", path, log_exc)
        return None
    return path
