"""Structured logging for the sync runtime.

Invariants:
    - Every record carries timestamp, level, logger name and message
    - Engine extras (action, anchor, rule, traces, error_code) appear only when set
    - setup_logging replaces its own handler, so calling it twice does not duplicate lines

Design Decisions:
    - stdlib logging with a small JSONFormatter, no logging library
    - Format and level come from Settings (SYNC_LOG_FORMAT, SYNC_LOG_LEVEL)
"""
from __future__ import annotations
from datetime import datetime, timezone
import json, logging

_EXTRA_FIELDS = ("action", "anchor", "rule", "traces", "error_code")
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

_handler: logging.Handler | None = None


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log.update({key: record.__dict__[key] for key in _EXTRA_FIELDS if record.__dict__.get(key) is not None})
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    global _handler
    if _handler is not None:
        logging.root.removeHandler(_handler)
    _handler = logging.StreamHandler()
    _handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    logging.root.addHandler(_handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return _handler
