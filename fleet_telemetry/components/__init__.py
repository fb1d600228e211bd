"""Engine components for fleet telemetry processing."""

from .base import EngineComponent, TelemetryStore
from .validation import ReadingValidator
from .classification import ReadingClassifier
from .alerting import AlertGenerator
from .status import VehicleStatusDeriver
from .statistics import StatisticsAggregator
from .storage import DuckDBTelemetryStore

__all__ = [
    "EngineComponent",
    "TelemetryStore",
    "ReadingValidator",
    "ReadingClassifier",
    "AlertGenerator",
    "VehicleStatusDeriver",
    "StatisticsAggregator",
    "DuckDBTelemetryStore"
]
