"""Logging bootstrap for the FilingDesk CLI and embedding applications."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from filingdesk.config.models import LoggingSettings

LOGGER_NAME = "filingdesk"
_HANDLER_FLAG = "_filingdesk_handler"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: LoggingSettings, *, path: Path | None = None) -> logging.Logger:
    """Attach a rotating file handler to the package logger.

    Calling this again replaces the handler installed by a previous call, so
    the CLI can reconfigure after loading overrides.

    Args:
        settings: Logging section of the loaded configuration.
        path: Optional log file location overriding ``settings.path``.

    Returns:
        logging.Logger: The configured ``filingdesk`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()

    log_path = (path or Path(settings.path)).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
        backupCount=max(0, settings.backup_count),
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT))
    setattr(handler, _HANDLER_FLAG, True)
    logger.addHandler(handler)

    level = logging.getLevelName(settings.level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.WARNING)
    return logger


__all__ = ["configure_logging", "LOGGER_NAME"]
