"""Centralized logging configuration.

Health-record logs must stay free of PHI:
- Structured JSON lines to stdout for the log collector
- Only identifiers and metadata go into `extra`; never titles, file names or document text
- Missing `extra` fields are emitted as null instead of raising
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import UTC, datetime
from typing import Any

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Optional `extra` keys copied onto the JSON payload when present on a record.
_OPTIONAL_FIELDS = (
    "report_id",
    "summary_id",
    "summary_type",
    "activation_id",
    "usage_type",
    "function",
    "attempt",
    "issue_type",
    "error",
    "success",
)


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per record.

    A `'%(request_id)s'`-style format string would raise KeyError for records that
    don't carry the field (third-party loggers), so fields are read with getattr.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            "method": getattr(record, "method", getattr(record, "http_method", None)),
            "path": getattr(record, "path", getattr(record, "request_path", None)),
            "status_code": getattr(record, "status_code", None),
            "duration_ms": getattr(record, "duration_ms", None),
        }
        for field in _OPTIONAL_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging() -> None:
    """Configure application logging (JSON to stdout)."""

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "healthvault.core.logging.JsonFormatter",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "stream": "ext://sys.stdout",
                }
            },
            "loggers": {
                # httpx logs full request URLs at INFO; keep them out of the stream.
                "httpx": {"level": "WARNING"},
            },
            "root": {
                "level": LOG_LEVEL,
                "handlers": ["default"],
            },
        }
    )
