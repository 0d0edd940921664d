# screenmatch/utils/logger.py
"""
Logger utilities for screenmatch.

- setup_logging() attaches a console handler to the package logger.
- log_match_trace() appends one row per match decision to a CSV file,
  so template authors can see which checkpoint failed and by how much.
"""

import csv
import os
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_DATE_FORMAT = '%H:%M:%S'

# Serializes the header check and the append across matcher threads
_trace_lock = threading.Lock()

TRACE_FIELDS = [
    "filename",
    "template",
    "mode",
    "matched",
    "distance",
    "failed_checkpoint",
    "failed_distance",
    "error",
    "timestamp_utc",
]


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the package logger.

    Adds a console handler only if none is present, so calling this
    more than once does not duplicate output.
    """
    logger = logging.getLogger("screenmatch")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(handler)

    return logger


def _trace_to_row(image_name: str, trace) -> Dict[str, Any]:
    """
    Flatten a MatchTrace into a CSV row.
    """
    failed = trace.failed_checkpoint

    return {
        "filename": os.path.basename(image_name) if image_name else "",
        "template": trace.template_title,
        "mode": trace.mode,
        "matched": trace.matched,
        "distance": trace.distance if trace.distance is not None else "",
        "failed_checkpoint": failed.index if failed else "",
        "failed_distance": failed.distance if failed and failed.distance is not None else "",
        "error": (failed.error if failed else None) or trace.error or "",
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }


def log_match_trace(image_name: str, trace, log_file: Optional[str] = None) -> None:
    """
    Append a single match decision as a row to the CSV log.

    - Creates parent directories as needed.
    - Writes the header on first write.
    - Safe to call from several threads sharing one file.
    """
    if not log_file:
        return

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    row = _trace_to_row(image_name, trace)

    with _trace_lock:
        file_exists = os.path.isfile(log_file)

        with open(log_file, mode="a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=TRACE_FIELDS)

            if not file_exists:
                writer.writeheader()

            writer.writerow(row)
