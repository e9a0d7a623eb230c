"""Logging configuration: JSON lines (ENABLE_JSON_LOGS=1) or plain text, on stderr."""
from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

_EXTRA_FIELDS = ("srid", "column", "row")


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting
        base = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        for attr in _EXTRA_FIELDS:
            if hasattr(record, attr):
                base[attr] = getattr(record, attr)
        if record.exc_info:
            base["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
        return json.dumps(base, ensure_ascii=False)


class _PlainFormatter(logging.Formatter):  # pragma: no cover - formatting
    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.formatTime(record, datefmt="%H:%M:%S"),
            record.levelname[0],
            record.name + ":",
            record.getMessage(),
        ]
        for attr in _EXTRA_FIELDS:
            if hasattr(record, attr):
                parts.append(f"{attr}={getattr(record, attr)}")
        return " ".join(parts)


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    if getattr(configure_logging, "_configured", False):  # idempotent
        return
    level = (level or os.getenv("LOG_LEVEL", "WARNING")).upper()
    if json_logs is None:
        json_logs = os.getenv("ENABLE_JSON_LOGS", "0") == "1"
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter() if json_logs else _PlainFormatter())
    root.addHandler(handler)
    configure_logging._configured = True  # type: ignore[attr-defined]
