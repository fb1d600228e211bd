"""Configuration models for the fleet telemetry engine."""

from .models import (
    ThresholdRule,
    format_value,
    ThresholdCatalog,
    DEFAULT_THRESHOLDS,
    EngineConfig,
    FuelEconomySettings,
    TrendSettings,
    AlertSettings,
    ObdSettings,
    LoggingSettings
)

__all__ = [
    "ThresholdRule",
    "format_value",
    "ThresholdCatalog",
    "DEFAULT_THRESHOLDS",
    "EngineConfig",
    "FuelEconomySettings",
    "TrendSettings",
    "AlertSettings",
    "ObdSettings",
    "LoggingSettings"
]
