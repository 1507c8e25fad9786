"""Logging configuration for TusStore.

Store operations log with ``extra={"operation": ..., "file_id": ...}`` and,
where they apply, the upload's offset, declared length and the number of
bytes written. Both formatters below surface those upload fields: the JSON
formatter as top-level keys, the text formatter as a trailing
``key=value`` block so a line can be grepped by upload id.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Upload attributes a record may carry, in display order
UPLOAD_FIELDS = ("operation", "file_id", "offset", "upload_length", "bytes_written")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def upload_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return the upload attributes set on ``record``, skipping unset ones."""
    fields = {}
    for key in UPLOAD_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            fields[key] = val
    return fields


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, plus the upload fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(upload_fields(record))
        return json.dumps(entry, default=str)


class UploadTextFormatter(logging.Formatter):
    """Human-readable formatter that appends upload fields as ``[key=value ...]``.

    Example::

        2026-01-01 12:00:00,000 INFO tusstore.engine: Appended 16 bytes [operation=append file_id=ab12... offset=32 bytes_written=16]
    """

    def __init__(self, fmt: str = TEXT_FORMAT, datefmt: str | None = None) -> None:
        super().__init__(fmt, datefmt)

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = upload_fields(record)
        if not fields:
            return line
        context = " ".join(f"{key}={val}" for key, val in fields.items())
        return f"{line} [{context}]"


def configure_logging(
    level: str = "INFO", fmt: str = "text", stream: TextIO | None = None
) -> None:
    """Configure root logging with the specified level and format.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Format type: 'text' for human-readable, 'json' for structured.
        stream: Where to write log lines. Defaults to stderr.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else UploadTextFormatter())
    root.addHandler(handler)
