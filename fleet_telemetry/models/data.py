"""
Pydantic models for data structures used throughout the engine.

Readings are validated on construction; derived results (classification,
statistics) are plain models that are never persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from fleet_telemetry.utils.clock import as_naive_utc, utc_now


class TelemetryKind(str, Enum):
    """Kinds of telemetry a tracking device can report."""
    FUEL = "FUEL"
    EMISSION = "EMISSION"
    GPS = "GPS"
    OBD = "OBD"


class VehicleStatus(str, Enum):
    NORMAL_EMISSION = "NORMAL_EMISSION"
    TOP_POLLUTING = "TOP_POLLUTING"
    UNDER_MAINTENANCE = "UNDER_MAINTENANCE"
    SPEEDING = "SPEEDING"
    STATIONARY = "STATIONARY"
    MOVING = "MOVING"


class AlertType(str, Enum):
    FUEL_ANOMALY_ALERT = "FUEL_ANOMALY_ALERT"
    HIGH_EMISSION_ALERT = "HIGH_EMISSION_ALERT"
    SPEED_VIOLATION_ALERT = "SPEED_VIOLATION_ALERT"
    GPS_ACCURACY_ALERT = "GPS_ACCURACY_ALERT"
    DIAGNOSTIC_FAULT_NOTIFICATION = "DIAGNOSTIC_FAULT_NOTIFICATION"
    DEVICE_OFFLINE_ALERT = "DEVICE_OFFLINE_ALERT"


class Severity(str, Enum):
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class LevelStatus(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


class EfficiencyStatus(str, Enum):
    EFFICIENT = "EFFICIENT"
    NORMAL = "NORMAL"
    POOR = "POOR"


class Trend(str, Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"
    IMPROVING = "IMPROVING"
    DECLINING = "DECLINING"


class CamelModel(BaseModel):
    """Base for caller-facing result shapes, dumped with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------

class TelemetryReading(BaseModel):
    """Fields shared by every telemetry sample."""
    model_config = ConfigDict(extra='forbid')

    timestamp: datetime = Field(default_factory=utc_now, description="Sample time (naive UTC)")
    vehicle_id: int = Field(..., gt=0, description="Reporting vehicle")
    device_id: int = Field(..., gt=0, description="Reporting tracking device")
    plate_number: str = Field(..., min_length=1, description="Vehicle plate number")

    kind: ClassVar[TelemetryKind]

    @field_validator('timestamp')
    @classmethod
    def normalise_timestamp(cls, v):
        return as_naive_utc(v)

    @property
    def measurements(self) -> Dict[str, Any]:
        """Kind-specific numeric fields of the reading."""
        return self.model_dump(exclude={"timestamp", "vehicle_id", "device_id", "plate_number"})


class FuelReading(TelemetryReading):
    kind: ClassVar[TelemetryKind] = TelemetryKind.FUEL
    fuel_level: float = Field(..., ge=0, le=100, description="Fuel level percentage")
    fuel_consumption: float = Field(..., ge=0, le=50, description="Consumption in L/100km")


class EmissionReading(TelemetryReading):
    kind: ClassVar[TelemetryKind] = TelemetryKind.EMISSION
    co2_percentage: float = Field(..., ge=0, le=100)
    co_percentage: float = Field(..., ge=0, le=100)
    o2_percentage: float = Field(..., ge=0, le=100)
    hc_ppm: float = Field(..., ge=0)
    nox_ppm: Optional[float] = Field(None, ge=0)
    pm25_level: Optional[float] = Field(None, ge=0)


class GpsReading(TelemetryReading):
    kind: ClassVar[TelemetryKind] = TelemetryKind.GPS
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: float = Field(..., ge=0, description="Speed in km/h")
    accuracy: Optional[float] = Field(None, ge=0, description="Position accuracy in metres")


class ObdReading(TelemetryReading):
    kind: ClassVar[TelemetryKind] = TelemetryKind.OBD
    rpm: float = Field(..., ge=0)
    engine_temperature: float = Field(..., description="Engine temperature in Celsius")
    throttle_position: Optional[float] = Field(None, ge=0, le=100)
    fault_codes: List[str] = Field(default_factory=list)

    @property
    def fault_count(self) -> int:
        return len(self.fault_codes)


READING_MODELS = {
    TelemetryKind.FUEL: FuelReading,
    TelemetryKind.EMISSION: EmissionReading,
    TelemetryKind.GPS: GpsReading,
    TelemetryKind.OBD: ObdReading,
}

AnyReading = Union[FuelReading, EmissionReading, GpsReading, ObdReading]


class StoredReading(BaseModel):
    """A reading as returned by the persistence collaborator."""
    id: int
    kind: TelemetryKind
    timestamp: datetime
    vehicle_id: int
    device_id: int
    plate_number: str
    fields: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific measurements")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def to_reading(self) -> AnyReading:
        """Rebuild the typed reading model from the stored row."""
        model = READING_MODELS[self.kind]
        return model(
            timestamp=self.timestamp,
            vehicle_id=self.vehicle_id,
            device_id=self.device_id,
            plate_number=self.plate_number,
            **self.fields
        )


# ---------------------------------------------------------------------------
# Fleet entities
# ---------------------------------------------------------------------------

class Vehicle(BaseModel):
    id: int
    plate_number: str
    owner_id: int = Field(..., description="User that receives the vehicle's alerts")
    status: VehicleStatus = VehicleStatus.NORMAL_EMISSION
    fuel_type: Optional[str] = None


class TrackingDevice(BaseModel):
    id: int
    vehicle_id: int
    serial_number: Optional[str] = None
    last_ping: Optional[datetime] = None

    @field_validator('last_ping')
    @classmethod
    def normalise_last_ping(cls, v):
        return as_naive_utc(v)


class Alert(BaseModel):
    """Alert draft produced by the alert generator and persisted as-is."""
    type: AlertType
    title: str
    message: str
    severity: Severity
    parameter: str
    trigger_value: str
    trigger_threshold: str
    vehicle_id: int
    user_id: Optional[int] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------

class StatusFlags(BaseModel):
    """Latest classification flags consumed by the vehicle status deriver."""
    kind: TelemetryKind
    low_fuel: bool = False
    high_consumption: bool = False
    exceeds_emission: bool = False
    speeding: bool = False
    stationary: bool = False
    critical_faults: bool = False
    high_temperature: bool = False
    critical_rpm: bool = False
    has_faults: bool = False


class ClassificationResult(BaseModel):
    """Qualitative buckets and advisory numbers for one reading."""
    level_status: Optional[str] = None
    efficiency_status: Optional[str] = None
    estimated_range: Optional[float] = None
    cost_estimate: Optional[float] = None
    fuel_efficiency: Optional[float] = None
    efficiency_rating: Optional[str] = None
    emission_level: Optional[str] = None
    speed_level: Optional[str] = None
    performance_score: Optional[int] = None
    flags: StatusFlags


class AlertBrief(CamelModel):
    type: AlertType
    title: str
    severity: Severity


class Recommendations(CamelModel):
    refueling_suggested: bool = False
    maintenance_recommended: bool = False
    efficiency_tips: List[str] = Field(default_factory=list)


class IngestionResult(CamelModel):
    """Response for a single ingested reading."""
    stored: StoredReading
    level_status: Optional[str] = None
    efficiency_status: Optional[str] = None
    estimated_range: Optional[float] = None
    cost_estimate: Optional[float] = None
    vehicle_status: VehicleStatus
    alerts_generated: int = 0
    alerts: List[AlertBrief] = Field(default_factory=list)
    recommendations: Recommendations = Field(default_factory=Recommendations)


class EfficiencyAnalysis(CamelModel):
    current_efficiency: float
    benchmark_efficiency: float
    efficiency_rating: str
    potential_savings: float
    improvement_suggestions: List[str] = Field(default_factory=list)
    current_cost: float
    benchmark_cost: float
    monthly_cost_estimate: float
    annual_cost_estimate: float


class RouteAnalysis(CamelModel):
    """Movement of a GPS reading relative to the vehicle's previous fix."""
    distance_from_previous: float = Field(0.0, description="Great-circle distance in km")
    time_from_previous: str = "0m"
    bearing: float = Field(0.0, description="Initial bearing in degrees, 0-360")
    speed_change: float = Field(0.0, description="km/h relative to the previous fix")
    is_stationary: bool = False
    has_previous: bool = False


class ObdDiagnostics(CamelModel):
    """Engine diagnostics for a single OBD reading."""
    engine_health: str
    temperature_status: str
    rpm_status: str
    throttle_status: Optional[str] = None
    fault_codes_count: int = 0
    has_active_faults: bool = False
    performance_score: int
    health_rating: str
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    maintenance_urgency: str = "LOW"


class ReadingDetail(CamelModel):
    """A stored reading enriched with a fresh classification."""
    stored: StoredReading
    classification: ClassificationResult
    efficiency_analysis: Optional[EfficiencyAnalysis] = None
    route_analysis: Optional[RouteAnalysis] = None
    diagnostics: Optional[ObdDiagnostics] = None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class ReadingFilter(BaseModel):
    """Typed query filter; every field is optional and ANDed together."""
    model_config = ConfigDict(extra='forbid')

    vehicle_id: Optional[int] = Field(None, gt=0)
    device_id: Optional[int] = Field(None, gt=0)
    plate_number: Optional[str] = None
    fuel_type: Optional[str] = None
    vehicle_status: Optional[VehicleStatus] = None
    min_fuel_level: Optional[float] = Field(None, ge=0, le=100)
    max_fuel_level: Optional[float] = Field(None, ge=0, le=100)
    min_consumption: Optional[float] = Field(None, ge=0)
    max_consumption: Optional[float] = Field(None, ge=0)
    level_status: Optional[LevelStatus] = None
    efficiency_status: Optional[EfficiencyStatus] = None

    @model_validator(mode='after')
    def check_ranges(self) -> "ReadingFilter":
        if (self.min_fuel_level is not None and self.max_fuel_level is not None
                and self.min_fuel_level > self.max_fuel_level):
            raise ValueError("Minimum fuel level cannot be greater than maximum fuel level")
        if (self.min_consumption is not None and self.max_consumption is not None
                and self.min_consumption > self.max_consumption):
            raise ValueError("Minimum consumption cannot be greater than maximum consumption")
        return self


# Calendar offsets: a month back from 31 March is 29 February
INTERVALS = {
    "day": pd.DateOffset(days=1),
    "week": pd.DateOffset(weeks=1),
    "month": pd.DateOffset(months=1),
}


class TimeWindow(BaseModel):
    """Either a named trailing interval or explicit start/end bounds."""
    model_config = ConfigDict(extra='forbid')

    interval: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator('interval')
    @classmethod
    def check_interval(cls, v):
        if v is not None and v not in INTERVALS:
            raise ValueError("Invalid interval. Must be day, week, or month")
        return v

    @field_validator('start', 'end')
    @classmethod
    def normalise_bound(cls, v):
        return as_naive_utc(v)

    @model_validator(mode='after')
    def check_bounds(self) -> "TimeWindow":
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("Window start cannot be after window end")
        return self

    def bounds(self, now: Optional[datetime] = None) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Resolve the window to concrete (start, end); None means unbounded."""
        if self.interval:
            now = as_naive_utc(now) or utc_now()
            start = pd.Timestamp(now) - INTERVALS[self.interval]
            return start.to_pydatetime(), None
        return self.start, self.end

    def describe(self) -> Dict[str, Any]:
        if self.interval:
            return {"interval": self.interval}
        return {
            "from": self.start.isoformat() if self.start else "beginning",
            "to": self.end.isoformat() if self.end else "now",
        }


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class FuelSummary(CamelModel):
    total_records: int = 0
    average_fuel_level: str = "0"
    average_consumption: str = "0"
    total_consumption: str = "0"
    estimated_total_cost: str = "0"
    high_consumption_count: int = 0
    low_fuel_level_count: int = 0


class ConsumptionAnalysis(CamelModel):
    efficient: int = 0
    normal: int = 0
    poor: int = 0
    efficient_percentage: str = "0"
    normal_percentage: str = "0"
    poor_percentage: str = "0"


class FuelLevelAnalysis(CamelModel):
    low: int = 0
    normal: int = 0
    high: int = 0
    low_percentage: str = "0"
    normal_percentage: str = "0"
    high_percentage: str = "0"


class FuelTrends(CamelModel):
    consumption_trend: Trend = Trend.STABLE
    fuel_level_trend: Trend = Trend.STABLE
    efficiency_trend: Trend = Trend.STABLE


class FuelStatisticsSummary(CamelModel):
    summary: FuelSummary = Field(default_factory=FuelSummary)
    consumption_analysis: ConsumptionAnalysis = Field(default_factory=ConsumptionAnalysis)
    fuel_level_analysis: FuelLevelAnalysis = Field(default_factory=FuelLevelAnalysis)
    trends: FuelTrends = Field(default_factory=FuelTrends)
    thresholds: Dict[str, Any] = Field(default_factory=dict)
    time_range: Dict[str, Any] = Field(default_factory=dict)


class EmissionStatisticsSummary(CamelModel):
    averages: Dict[str, Optional[str]] = Field(default_factory=dict)
    totals: Dict[str, Any] = Field(default_factory=dict)
    threshold_analysis: Dict[str, Any] = Field(default_factory=dict)
    thresholds: Dict[str, Any] = Field(default_factory=dict)
    time_range: Dict[str, Any] = Field(default_factory=dict)


class ConsumptionRangeSummary(CamelModel):
    min_consumption: float
    max_consumption: float
    average_consumption: float = 0.0
    total_consumption: float = 0.0
    inefficient_records: int = 0


class ObdSummary(CamelModel):
    total_records: int = 0
    average_rpm: str = "0"
    average_throttle_position: str = "0"
    average_engine_temperature: str = "0"
    total_fault_codes: int = 0
    vehicles_with_faults: int = 0
    critical_engine_issues: int = 0


class EngineAnalysis(CamelModel):
    healthy: int = 0
    warning: int = 0
    critical: int = 0
    healthy_percentage: str = "0"
    warning_percentage: str = "0"
    critical_percentage: str = "0"


class TemperatureAnalysis(CamelModel):
    normal: int = 0
    high: int = 0
    overheating: int = 0
    normal_percentage: str = "0"
    high_percentage: str = "0"
    overheating_percentage: str = "0"


class RpmAnalysis(CamelModel):
    idle: int = 0
    normal: int = 0
    high: int = 0
    redline: int = 0
    idle_percentage: str = "0"
    normal_percentage: str = "0"
    high_percentage: str = "0"
    redline_percentage: str = "0"


class FaultCodeCount(CamelModel):
    count: int
    severity: str


class ObdPerformanceMetrics(CamelModel):
    average_performance_score: float = 0.0
    maintenance_required: List[str] = Field(default_factory=list, description="Plates with active faults")


class ObdStatisticsSummary(CamelModel):
    summary: ObdSummary = Field(default_factory=ObdSummary)
    engine_analysis: EngineAnalysis = Field(default_factory=EngineAnalysis)
    temperature_analysis: TemperatureAnalysis = Field(default_factory=TemperatureAnalysis)
    rpm_analysis: RpmAnalysis = Field(default_factory=RpmAnalysis)
    most_common_faults: Dict[str, FaultCodeCount] = Field(default_factory=dict)
    performance_metrics: ObdPerformanceMetrics = Field(default_factory=ObdPerformanceMetrics)
    thresholds: Dict[str, Any] = Field(default_factory=dict)
    time_range: Dict[str, Any] = Field(default_factory=dict)
