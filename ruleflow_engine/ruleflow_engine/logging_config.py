"""Logging setup for Ruleflow processes.

The engine itself only ever calls ``logging.getLogger(__name__)``; hosts
(the CLI, tests, embedding applications) decide how records are emitted.
:func:`configure_logging` installs either a plain text handler or a
single-line JSON handler on the root logger.

JSON output schema per line::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "ruleflow_engine.pipeline.executor",
        "message": "stage static finished",
        "check_id": "lint",          // present when logged with extra={"check_id": ...}
        "stage": "static",           // present when logged with extra={"stage": ...}
        "exc_info": "Traceback ..."  // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

from ruleflow_engine.config import Settings

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONTEXT_FIELDS = ("check_id", "stage", "run_id")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings, *, stream: Any = None) -> logging.Handler:
    """Replace root handlers with one configured from *settings*.

    Logs go to *stream* (default: stderr) so that machine-readable output
    on stdout stays clean.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)
    return handler
