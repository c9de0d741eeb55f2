"""Logging setup for TrackerTree — console plus optional rotating file.

Records can be written as plain text or as one JSON object per line. Values
passed through ``extra=`` (``tracker``, ``generation``, ...) become top-level
keys in JSON mode so fetch logs can be filtered per tracker.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from trackertree.config import Settings

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Chatty third-party loggers, held at WARNING unless debugging
NOISY_LOGGERS = ("httpx", "httpcore")

_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """JSON-lines formatter that keeps ``extra=`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def _handlers(log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8")
        )
    return handlers


def configure_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_format: bool = False,
) -> None:
    """Install root handlers once; later calls only change the level."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    if root.handlers:
        for handler in root.handlers:
            handler.setLevel(numeric_level)
    else:
        formatter: logging.Formatter = (
            JsonFormatter() if json_format else logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S")
        )
        for handler in _handlers(log_file):
            handler.setLevel(numeric_level)
            handler.setFormatter(formatter)
            root.addHandler(handler)

    quiet = logging.WARNING if numeric_level > logging.DEBUG else logging.NOTSET
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


def configure_from_settings(settings: Settings, verbose: bool = False) -> None:
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_file=settings.log_file,
        json_format=settings.log_json,
    )
