"""Process logging setup for PicShare.

Two output styles are supported on stderr: a human-readable line for local
runs and one JSON object per line for log shippers. Request-scoped extras
(set by the request middleware as ``extra={...}``) are carried by both.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Attributes the request middleware and handlers attach to log records.
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "request_id", "owner_id")

# uvicorn's access log repeats the line the request middleware already writes.
_QUIETED_LOGGERS = ("uvicorn.access", "aiosqlite")


def _request_extras(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in REQUEST_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message,
    exception (when present) and any request fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(_request_extras(record))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain text, suffixed with ``[request_id]`` when the record has one."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        request_id = getattr(record, "request_id", None)
        return f"{line} [{request_id}]" if request_id else line


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Replace the root handlers with a single stderr handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: 'text' for human-readable lines, 'json' for structured output.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in _QUIETED_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
