"""
Custom exceptions for the fleet telemetry engine.

These provide specific error types that the calling layer can map to its own
responses (bad request, not found, internal error).
"""


class TelemetryError(Exception):
    """Base exception for all engine errors."""
    pass


class ValidationError(TelemetryError):
    """Raised when a reading, filter or window is missing fields or out of range."""
    pass


class NotFoundError(TelemetryError):
    """Raised when a referenced vehicle, device or reading does not exist."""
    pass


class InternalError(TelemetryError):
    """Raised for non-recoverable failures inside the engine or its store."""
    pass


class PersistenceError(InternalError):
    """Raised when the persistence collaborator fails."""
    pass


class ThresholdLookupError(InternalError):
    """Raised when a threshold is requested for an unconfigured parameter."""
    pass


class ConfigurationError(TelemetryError):
    """Raised when configuration is invalid or missing."""
    pass
