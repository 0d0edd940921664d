from .logger import log_match_trace, setup_logging

__all__ = ["log_match_trace", "setup_logging"]
