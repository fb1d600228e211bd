"""Data models for the fleet telemetry engine."""

from .data import (
    TelemetryKind,
    VehicleStatus,
    AlertType,
    Severity,
    LevelStatus,
    EfficiencyStatus,
    Trend,
    TelemetryReading,
    FuelReading,
    EmissionReading,
    GpsReading,
    ObdReading,
    READING_MODELS,
    AnyReading,
    StoredReading,
    Vehicle,
    TrackingDevice,
    Alert,
    AlertBrief,
    StatusFlags,
    ClassificationResult,
    Recommendations,
    IngestionResult,
    EfficiencyAnalysis,
    RouteAnalysis,
    ObdDiagnostics,
    ReadingDetail,
    ReadingFilter,
    TimeWindow,
    FuelSummary,
    ConsumptionAnalysis,
    FuelLevelAnalysis,
    FuelTrends,
    FuelStatisticsSummary,
    EmissionStatisticsSummary,
    ConsumptionRangeSummary,
    ObdSummary,
    EngineAnalysis,
    TemperatureAnalysis,
    RpmAnalysis,
    FaultCodeCount,
    ObdPerformanceMetrics,
    ObdStatisticsSummary
)

__all__ = [
    "TelemetryKind", "VehicleStatus", "AlertType", "Severity", "LevelStatus",
    "EfficiencyStatus", "Trend", "TelemetryReading", "FuelReading",
    "EmissionReading", "GpsReading", "ObdReading", "READING_MODELS",
    "AnyReading", "StoredReading", "Vehicle", "TrackingDevice", "Alert",
    "AlertBrief", "StatusFlags", "ClassificationResult", "Recommendations",
    "IngestionResult", "EfficiencyAnalysis", "RouteAnalysis", "ObdDiagnostics",
    "ReadingDetail", "ReadingFilter", "TimeWindow", "FuelSummary",
    "ConsumptionAnalysis", "FuelLevelAnalysis", "FuelTrends",
    "FuelStatisticsSummary", "EmissionStatisticsSummary",
    "ConsumptionRangeSummary", "ObdSummary", "EngineAnalysis",
    "TemperatureAnalysis", "RpmAnalysis", "FaultCodeCount",
    "ObdPerformanceMetrics", "ObdStatisticsSummary"
]
