"""Run reports and structured run logging."""

from .report import (
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    Finding,
    Report,
)
from .runlog import JsonlRunLogger, RunEvent, sanitize_metadata, utc_timestamp

__all__ = [
    "Finding",
    "JsonlRunLogger",
    "Report",
    "RunEvent",
    "SEVERITY_ERROR",
    "SEVERITY_INFO",
    "SEVERITY_WARNING",
    "sanitize_metadata",
    "utc_timestamp",
]
