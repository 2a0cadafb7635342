"""
Structured JSON logging.

``configure_logging`` attaches a JSON formatter to the ``loan_xirr`` logger
hierarchy once; modules then log through ``logging.getLogger(__name__)`` and
pass structured context with ``extra={...}``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

from .config import AppConfig

ROOT_LOGGER_NAME = "loan_xirr"


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line.

    Each entry contains ``timestamp`` (ISO-8601, UTC), ``level``,
    ``logger_name`` and ``message``, plus ``extra`` for any fields passed by
    the caller and ``exception`` when a traceback is attached.
    """

    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Union[str, dict[str, str]]] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, str] = {
            key: str(value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if extra_fields:
            entry["extra"] = extra_fields

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


def configure_logging(
    config: AppConfig,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Attach JSON handlers to the package logger and return it.

    Calling this more than once is harmless: handlers are only added to a
    logger that has none.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(config.log_level)

    if logger.handlers:
        return logger

    formatter = JSONFormatter()

    stream_handler = logging.StreamHandler(stream or sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if config.LOG_FILE:
        try:
            log_path = Path(config.LOG_FILE)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=config.LOG_MAX_BYTES,
                backupCount=config.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as exc:
            logger.warning(
                "Could not create log file '%s': %s. Continuing with console logging only.",
                config.LOG_FILE,
                exc,
            )

    return logger
