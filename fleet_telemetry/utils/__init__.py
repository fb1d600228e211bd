"""Utility modules for the fleet telemetry engine."""

from .logging import setup_logging, get_logger
from .clock import utc_now, as_naive_utc
from .exceptions import (
    TelemetryError,
    ValidationError,
    NotFoundError,
    InternalError,
    PersistenceError,
    ThresholdLookupError,
    ConfigurationError
)

__all__ = [
    "setup_logging",
    "get_logger",
    "utc_now",
    "as_naive_utc",
    "TelemetryError",
    "ValidationError",
    "NotFoundError",
    "InternalError",
    "PersistenceError",
    "ThresholdLookupError",
    "ConfigurationError"
]
