"""
Pydantic models for engine configuration.

These models provide type-safe parsing and validation of the YAML configuration file.
Every setting has a built-in default, so ``EngineConfig()`` is a complete
configuration and a YAML file only needs to carry the overrides.
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from fleet_telemetry.models.data import AlertType
from fleet_telemetry.utils.exceptions import ConfigurationError, ThresholdLookupError


class ThresholdRule(BaseModel):
    """Alerting and classification boundaries for one telemetry parameter."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    parameter: str = Field(..., description="Parameter name, e.g. fuel_level")
    label: str = Field(..., description="Human readable name used in alert text")
    unit: str = Field("", description="Unit suffix used in alert text")
    alert_type: Optional[AlertType] = Field(None, description="Alert type emitted when the rule fires")
    direction: Literal["high", "low"] = Field(
        "high", description="'high' when larger values are worse, 'low' when smaller values are worse"
    )
    warning: Optional[float] = Field(None, description="Warning bound (inclusive)")
    critical: Optional[float] = Field(None, description="Critical bound (inclusive)")
    min_value: Optional[float] = Field(None, description="Upper edge of the low bucket (inclusive)")
    max_value: Optional[float] = Field(None, description="Lower edge of the high bucket (inclusive)")

    @model_validator(mode='after')
    def check_ordering(self) -> "ThresholdRule":
        if self.warning is not None and self.critical is not None:
            if self.direction == "high" and self.critical < self.warning:
                raise ValueError(f"{self.parameter}: critical bound must be >= warning bound")
            if self.direction == "low" and self.critical > self.warning:
                raise ValueError(f"{self.parameter}: critical bound must be <= warning bound")
        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            raise ValueError(f"{self.parameter}: min_value must be <= max_value")
        return self

    def breaches(self, value: float, bound: Optional[float]) -> bool:
        """Whether value sits at or beyond bound in the rule's severe direction."""
        if bound is None or value is None:
            return False
        if self.direction == "high":
            return value >= bound
        return value <= bound

    def describe(self, bound: float) -> str:
        """Threshold snapshot stored on alerts, e.g. 'Fuel level <= 5%'."""
        operator = ">=" if self.direction == "high" else "<="
        return f"{self.label} {operator} {format_value(bound)}{self.unit}"


def format_value(value: float) -> str:
    """Render 5.0 as '5' and 4.5 as '4.5' for alert text."""
    return f"{value:g}"


DEFAULT_THRESHOLDS: Tuple[Dict[str, Any], ...] = (
    # Fuel
    {"parameter": "fuel_consumption", "label": "Consumption", "unit": " L/100km",
     "alert_type": AlertType.FUEL_ANOMALY_ALERT, "direction": "high",
     "warning": 15, "critical": 20, "min_value": 8, "max_value": 15},
    {"parameter": "fuel_level", "label": "Fuel level", "unit": "%",
     "alert_type": AlertType.FUEL_ANOMALY_ALERT, "direction": "low",
     "warning": 10, "critical": 5, "min_value": 10, "max_value": 80},
    {"parameter": "fuel_efficiency", "label": "Fuel efficiency", "unit": " km/L",
     "direction": "low", "min_value": 5, "max_value": 12},
    # Emission
    {"parameter": "co2_percentage", "label": "CO2", "unit": "%",
     "alert_type": AlertType.HIGH_EMISSION_ALERT, "critical": 4.0},
    {"parameter": "co_percentage", "label": "CO", "unit": "%",
     "alert_type": AlertType.HIGH_EMISSION_ALERT, "warning": 0.3, "critical": 0.5},
    {"parameter": "hc_ppm", "label": "HC", "unit": " PPM",
     "alert_type": AlertType.HIGH_EMISSION_ALERT, "warning": 200, "critical": 400},
    {"parameter": "nox_ppm", "label": "NOx", "unit": " PPM",
     "alert_type": AlertType.HIGH_EMISSION_ALERT, "warning": 100, "critical": 200},
    {"parameter": "pm25_level", "label": "PM2.5", "unit": " ug/m3",
     "alert_type": AlertType.HIGH_EMISSION_ALERT, "warning": 25, "critical": 50},
    # GPS
    {"parameter": "speed", "label": "Speed", "unit": " km/h",
     "alert_type": AlertType.SPEED_VIOLATION_ALERT, "critical": 60, "min_value": 5},
    {"parameter": "gps_accuracy", "label": "Accuracy", "unit": "m",
     "alert_type": AlertType.GPS_ACCURACY_ALERT, "warning": 10},
    # OBD
    {"parameter": "engine_temperature", "label": "Engine temperature", "unit": "C",
     "alert_type": AlertType.DIAGNOSTIC_FAULT_NOTIFICATION, "warning": 100, "critical": 110},
    {"parameter": "rpm", "label": "RPM", "unit": "",
     "alert_type": AlertType.DIAGNOSTIC_FAULT_NOTIFICATION, "critical": 8000},
    {"parameter": "fault_count", "label": "Active faults", "unit": "",
     "alert_type": AlertType.DIAGNOSTIC_FAULT_NOTIFICATION, "warning": 4, "critical": 6},
    # Devices
    {"parameter": "device_offline_minutes", "label": "Offline minutes", "unit": "",
     "alert_type": AlertType.DEVICE_OFFLINE_ALERT, "warning": 30, "critical": 120},
)


class ThresholdCatalog(BaseModel):
    """Immutable set of threshold rules, at most one per parameter."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    rules: Tuple[ThresholdRule, ...] = Field(default_factory=tuple)

    @field_validator('rules')
    @classmethod
    def unique_parameters(cls, v):
        seen = set()
        for rule in v:
            if rule.parameter in seen:
                raise ConfigurationError(f"Duplicate threshold rule for parameter '{rule.parameter}'")
            seen.add(rule.parameter)
        return v

    @classmethod
    def defaults(cls) -> "ThresholdCatalog":
        return cls(rules=tuple(ThresholdRule(**rule) for rule in DEFAULT_THRESHOLDS))

    def get(self, parameter: str) -> ThresholdRule:
        """
        Look up the rule for a parameter.

        Raises:
            ThresholdLookupError: If no rule is configured for the parameter
        """
        for rule in self.rules:
            if rule.parameter == parameter:
                return rule
        raise ThresholdLookupError(f"No threshold configured for parameter '{parameter}'")

    def has(self, parameter: str) -> bool:
        return any(rule.parameter == parameter for rule in self.rules)

    def with_overrides(self, overrides: Dict[str, Dict[str, Any]]) -> "ThresholdCatalog":
        """Return a new catalog with per-parameter field overrides applied."""
        merged = {rule.parameter: rule.model_dump() for rule in self.rules}
        for parameter, fields in overrides.items():
            base = merged.get(parameter, {"parameter": parameter, "label": parameter})
            merged[parameter] = {**base, **(fields or {}), "parameter": parameter}
        return ThresholdCatalog(rules=tuple(ThresholdRule(**rule) for rule in merged.values()))

    def as_table(self, *parameters: str) -> Dict[str, Dict[str, Optional[float]]]:
        """Threshold snapshot echoed back in statistics responses."""
        selected = parameters or tuple(rule.parameter for rule in self.rules)
        table = {}
        for parameter in selected:
            rule = self.get(parameter)
            table[parameter] = {
                "warning": rule.warning,
                "critical": rule.critical,
                "min": rule.min_value,
                "max": rule.max_value,
            }
        return table


class EngineInfo(BaseModel):
    """Basic engine metadata."""
    name: str = Field("fleet_telemetry_engine", description="Engine name")
    version: str = Field("1.0.0", description="Engine version")


class FuelEconomySettings(BaseModel):
    """Assumptions behind the advisory range and cost numbers."""
    tank_capacity: float = Field(50.0, gt=0, description="Tank capacity in litres")
    assumed_efficiency: float = Field(8.0, gt=0, description="Assumed efficiency in km/L")
    fuel_price: float = Field(1.5, ge=0, description="Fuel price per litre")
    benchmark_consumption: float = Field(8.0, gt=0, description="Benchmark consumption in L/100km")
    monthly_distance_km: float = Field(2000.0, ge=0, description="Distance assumed for monthly cost")


class TrendSettings(BaseModel):
    """Noise floors below which a half-window difference counts as stable."""
    consumption_noise_floor: float = Field(0.5, ge=0, description="L/100km")
    fuel_level_noise_floor: float = Field(5.0, ge=0, description="Percentage points")


class AlertSettings(BaseModel):
    """Alert emission behaviour."""
    cooldown_minutes: float = Field(
        0, ge=0, description="Suppress repeats of the same alert per vehicle within this window; 0 disables"
    )


class ObdSettings(BaseModel):
    """Reference points for the engine performance score."""
    rpm_idle: float = Field(800, description="Below this RPM the engine is idling")
    rpm_normal: float = Field(6000, description="Upper edge of the normal RPM band")
    rpm_high: float = Field(7000, description="Upper edge of the high RPM band")
    throttle_partial: float = Field(50, ge=0, le=100, description="Throttle percentage from which it counts as partly open")
    throttle_full: float = Field(95, ge=0, le=100, description="Throttle percentage from which it counts as fully open")


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _log_level(value: str) -> str:
    if value.upper() not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{value}'. Must be one of {', '.join(LOG_LEVELS)}")
    return value.upper()


class LoggingSettings(BaseModel):
    """Logging output configuration."""
    level: str = Field("INFO", description="Root logging level")
    log_file: Optional[str] = Field(None, description="Optional log file path")
    include_timestamp: bool = Field(True, description="Prefix log lines with a timestamp")
    component_levels: Dict[str, str] = Field(
        default_factory=dict, description="Per-logger level overrides, e.g. fleet_telemetry.components.storage: DEBUG"
    )

    @field_validator('log_file', mode='before')
    @classmethod
    def resolve_log_path(cls, v):
        """Convert a relative log path to an absolute path."""
        if isinstance(v, str):
            path = Path(v)
            if not path.is_absolute():
                project_root = Path(__file__).parent.parent.parent
                path = (project_root / v).resolve()
            return str(path)
        return v

    @field_validator('level')
    @classmethod
    def check_level(cls, v):
        return _log_level(v)

    @field_validator('component_levels')
    @classmethod
    def check_component_levels(cls, v):
        return {name: _log_level(level) for name, level in v.items()}


DEFAULT_EFFICIENCY_TIPS = [
    "Check tire pressure regularly",
    "Avoid aggressive driving",
    "Consider regular maintenance",
    "Plan efficient routes",
]


class EngineConfig(BaseModel):
    """Complete engine configuration model."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    engine: EngineInfo = Field(default_factory=EngineInfo, description="Engine metadata")
    thresholds: ThresholdCatalog = Field(default_factory=ThresholdCatalog.defaults, description="Threshold rules")
    fuel_economy: FuelEconomySettings = Field(default_factory=FuelEconomySettings)
    trends: TrendSettings = Field(default_factory=TrendSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    obd: ObdSettings = Field(default_factory=ObdSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    efficiency_tips: List[str] = Field(default_factory=lambda: list(DEFAULT_EFFICIENCY_TIPS))

    @field_validator('thresholds', mode='before')
    @classmethod
    def merge_threshold_overrides(cls, v):
        """
        Accept a parameter -> fields mapping and layer it over the defaults.

        A YAML file therefore only lists the thresholds it changes.
        """
        if isinstance(v, dict) and "rules" not in v:
            return ThresholdCatalog.defaults().with_overrides(v)
        return v

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "EngineConfig":
        """Load configuration from YAML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def threshold(self, parameter: str) -> ThresholdRule:
        """Shortcut for ``self.thresholds.get(parameter)``."""
        return self.thresholds.get(parameter)
