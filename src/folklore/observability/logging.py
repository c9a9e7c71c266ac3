"""Log output: one JSON object per record, or plain lines for a terminal."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import sys
from typing import TYPE_CHECKING, Any, TextIO

import orjson

from folklore.observability.context import current_context


if TYPE_CHECKING:
    from folklore.config import Settings


PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Attributes every LogRecord has; the rest arrived through ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}
_SENSITIVE_MARKERS = ("password", "token", "secret", "api_key", "authorization")
_MAX_MESSAGE = 2000
_MAX_FIELD = 500


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _STANDARD_ATTRS or key.startswith("_"):
            continue
        if any(marker in key.lower() for marker in _SENSITIVE_MARKERS):
            fields[key] = "[REDACTED]"
        elif isinstance(value, str):
            # raw page text and long queries end up here
            fields[key] = _clip(value, _MAX_FIELD)
        else:
            fields[key] = value
    return fields


def _encode_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


class JsonFormatter(logging.Formatter):
    """Single-line JSON with the active trace, span and snapshot version."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": record.name.rpartition(".")[2],
            "message": _clip(record.getMessage(), _MAX_MESSAGE),
            **current_context().fields(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(_extra_fields(record))
        return orjson.dumps(entry, default=_encode_default).decode("utf-8")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    level: str = "info",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Replace the root handlers with a single stream handler.

    Args:
        level: Root level name, case-insensitive.
        json_output: Use ``JsonFormatter`` instead of plain text.
        logger_levels: Overrides for individual loggers, name -> level.
        stream: Destination; stdout when omitted.

    Returns:
        The installed handler.
    """
    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)

    for name, name_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(_resolve_level(name_level))
    return handler


def configure_from_settings(settings: Settings) -> logging.Handler:
    return configure_logging(settings.log_level, settings.log_json, logger_levels=settings.logger_levels)
