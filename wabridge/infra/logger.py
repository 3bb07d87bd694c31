"""Structured logger utilities."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def get_logger(name: str, level: int | str = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not any(isinstance(h.formatter, JsonFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    return logger


def configure_logging(level: int | str = logging.INFO, *, library_level: int | str | None = None) -> logging.Logger:
    """JSON output for the bridge and for the waton client it drives.

    waton logs every inbound node at DEBUG, so it gets its own level and
    defaults to WARNING unless the bridge itself runs at DEBUG.
    """
    bridge = get_logger("wabridge", level)
    if library_level is None:
        library_level = logging.DEBUG if bridge.level == logging.DEBUG else logging.WARNING
    library = get_logger("waton", library_level)
    bridge.propagate = False
    library.propagate = False
    return bridge
