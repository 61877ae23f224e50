"""Structured JSON logging for all schemasync components."""

import logging
import json
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Emit logs as structured JSON, one object per line.

    Every member is already a string: log args are interpolated by
    getMessage() and tracebacks by formatException(), so objects json
    cannot encode never reach json.dumps.
    """

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level="info", debug=False):
    """Configure structured logging for the collector.

    debug forces DEBUG level; swallowed network and cache failures
    are only visible at that level.
    """
    root = logging.getLogger("schemasync")
    if debug:
        level = "debug"
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.propagate = False
    return root
