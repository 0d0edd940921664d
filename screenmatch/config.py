"""
Configuration for template loading and matching.

All settings can be overridden with SCREENMATCH_* environment variables.
The checkpoint distance limit is fixed and intentionally not configurable.
"""

import os
from typing import Optional
from dataclasses import dataclass

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class MatcherConfig:
    """Configuration for the template registry and matcher."""

    # Directory holding *.json / *.yaml template documents
    templates_dir: str = "resources/templates"

    # Fail template loading on malformed fingerprints instead of warning
    strict_fingerprints: bool = False

    # Thread pool size for probing many templates; 1 = sequential
    match_workers: int = 1

    # CSV file receiving one row per match decision (disabled if None)
    trace_log_file: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "MatcherConfig":
        """Load config from environment variables."""
        return cls(
            templates_dir=os.getenv("SCREENMATCH_TEMPLATES_DIR", "resources/templates"),
            strict_fingerprints=os.getenv("SCREENMATCH_STRICT_FINGERPRINTS", "false").lower() in _TRUE_VALUES,
            match_workers=max(1, int(os.getenv("SCREENMATCH_MATCH_WORKERS", "1"))),
            trace_log_file=os.getenv("SCREENMATCH_TRACE_LOG") or None,
            log_level=os.getenv("SCREENMATCH_LOG_LEVEL", "INFO").upper(),
        )
