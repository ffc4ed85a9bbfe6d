# leaseledger/logging_config.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from .config import settings
from .middleware.correlation import get_correlation_id

# structured extras copied onto the JSON line when a call site passes them
_EXTRA_KEYS = (
    "user_id",
    "op",
    "unit_id",
    "lease_id",
    "payment_id",
    "hold_id",
    "duration_ms",
    "error_kind",
    "error_code",
    "event",
    "method",
    "path",
    "status_code",
    "user_email",
    "user_role",
)


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    correlation_id comes from the bound context (request, task or CLI run)
    and falls back to whatever the call site passed, so a procedure's log
    lines and its audit row can be joined on it.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = (
            get_correlation_id()
            or getattr(record, "correlation_id", None)
            or getattr(record, "request_id", None)
        )
        if cid:
            payload["correlation_id"] = cid

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for k in _EXTRA_KEYS:
            v = getattr(record, k, None)
            if v is not None:
                payload[k] = v

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(stream: Optional[TextIO] = None) -> None:
    level = (settings.log_level or "INFO").upper()

    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers (important for uvicorn reload)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(stream or (sys.stderr if settings.log_to_stderr else sys.stdout))
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    # the request middleware already writes one line per request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel((settings.sql_log_level or "WARNING").upper())
    logging.getLogger("celery").setLevel(level)
