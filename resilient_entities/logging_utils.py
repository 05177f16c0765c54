"""
Structured JSON logging for the entity client.

Fallback events (remote call failed, mirror used instead) are logged as
warnings with the entity name attached, so a JSON log pipeline can count
how often a deployment runs degraded.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Attributes every LogRecord carries; anything else arrived via `extra`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields: timestamp (record creation time, UTC ISO 8601), level, logger,
    message, exception when present, plus any `extra` values such as
    `entity`.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, _json_safe(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "resilient_entities",
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Route a logger's output through StructuredJsonFormatter.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger)
        stream: Output stream (default: stdout)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_client_logger(name: str) -> logging.Logger:
    """Logger named 'resilient_entities.{name}'."""
    return logging.getLogger(f"resilient_entities.{name}")


class EntityLoggerAdapter(logging.LoggerAdapter):
    """
    Stamps every record with the entity it concerns.

    Example:
        >>> log = EntityLoggerAdapter(logger, {"entity": "Material"})
        >>> log.warning("List of Material failed, serving fallback mirror")
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs
