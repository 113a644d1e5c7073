"""
Structured Logging — JSON Lines for the Review Pipeline

Every pipeline module logs through logging.getLogger(__name__), which
lands under the "fairreview" namespace. setup_logging() attaches a single
stdout handler to that namespace; library use without it stays silent.

Review context travels in `extra`:
    logger.info("Review complete", extra={"risk_tier": "high", "issue_count": 3})

Only the keys in CONTEXT_FIELDS are copied into the JSON entry.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional, TextIO


LOG_LEVEL = os.getenv("FAIRREVIEW_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("FAIRREVIEW_LOG_FORMAT", "json")  # "json" or "text"

CONTEXT_FIELDS = (
    # review
    "risk_tier", "final_score", "keyword_score", "issue_count",
    "processing_method", "document_hash", "duration_ms",
    # stages
    "strategy", "article_id", "case_id", "rule_id", "provenance", "cache_hit",
    # failures
    "error", "error_type",
    # calibration
    "sample_count", "corpus",
)

_QUIET_LOGGERS = ("httpx", "httpcore", "google_genai")


class JSONFormatter(logging.Formatter):
    """One JSON object per record. Chinese text is kept unescaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable format for local runs."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Configure the fairreview namespace. Safe to call more than once."""
    root = logging.getLogger("fairreview")
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter() if (fmt or LOG_FORMAT) == "json" else TextFormatter())
    root.handlers[:] = [handler]

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"fairreview.{name}")
