"""
Reading classification component for the fleet telemetry engine.

Maps single readings to qualitative buckets (LOW/NORMAL/HIGH,
EFFICIENT/NORMAL/POOR, ...) and computes the advisory numbers returned with
every ingested reading. All methods are pure: the same reading and the same
configuration always give the same result.
"""

import math
from datetime import timedelta
from typing import List, Optional

from fleet_telemetry.components.base import EngineComponent
from fleet_telemetry.config import EngineConfig, ObdSettings, ThresholdRule
from fleet_telemetry.models import (
    AnyReading,
    ClassificationResult,
    EfficiencyAnalysis,
    EfficiencyStatus,
    EmissionReading,
    FuelReading,
    GpsReading,
    LevelStatus,
    ObdDiagnostics,
    ObdReading,
    RouteAnalysis,
    StatusFlags,
    TelemetryKind
)
from fleet_telemetry.utils import get_logger, InternalError

EMISSION_PARAMETERS = ("co2_percentage", "co_percentage", "hc_ppm", "nox_ppm", "pm25_level")

PERFORMANCE_RATINGS = ((90, "EXCELLENT"), (70, "GOOD"), (50, "FAIR"))

EARTH_RADIUS_KM = 6371.0


def classify_level(value: float, rule: ThresholdRule) -> LevelStatus:
    """
    Bucket a value against the rule's normal band.

    Bounds are inclusive: ``value <= min_value`` is LOW and
    ``value >= max_value`` is HIGH.
    """
    if rule.min_value is not None and value <= rule.min_value:
        return LevelStatus.LOW
    if rule.max_value is not None and value >= rule.max_value:
        return LevelStatus.HIGH
    return LevelStatus.NORMAL


def classify_efficiency(consumption: float, rule: ThresholdRule) -> EfficiencyStatus:
    """Bucket a consumption value (L/100km): lower is more efficient."""
    if rule.min_value is not None and consumption <= rule.min_value:
        return EfficiencyStatus.EFFICIENT
    if rule.max_value is not None and consumption >= rule.max_value:
        return EfficiencyStatus.POOR
    return EfficiencyStatus.NORMAL


def severity_bucket(value: Optional[float], rule: ThresholdRule) -> str:
    """CRITICAL / HIGH / NORMAL depending on which alert bound the value reaches."""
    if value is None:
        return "NORMAL"
    if rule.breaches(value, rule.critical):
        return "CRITICAL"
    if rule.breaches(value, rule.warning):
        return "HIGH"
    return "NORMAL"


def reaches_alert_bound(value: Optional[float], rule: ThresholdRule) -> bool:
    """Whether the value reaches the mildest configured alert bound."""
    return severity_bucket(value, rule) != "NORMAL"


def performance_rating(score: int) -> str:
    return next((name for floor, name in PERFORMANCE_RATINGS if score >= floor), "POOR")


def classify_rpm(rpm: float, obd: ObdSettings, rule: ThresholdRule) -> str:
    """IDLE / NORMAL / HIGH / REDLINE; an engine at 0 RPM is idle."""
    if not rpm:
        return "IDLE"
    if rule.breaches(rpm, rule.critical):
        return "REDLINE"
    if rpm >= obd.rpm_high:
        return "HIGH"
    if rpm >= obd.rpm_idle:
        return "NORMAL"
    return "IDLE"


def classify_temperature(temperature: float, rule: ThresholdRule) -> str:
    """NORMAL / HIGH / OVERHEATING against the engine temperature rule."""
    bucket = severity_bucket(temperature, rule)
    if bucket == "CRITICAL":
        return "OVERHEATING"
    return bucket


def classify_throttle(position: Optional[float], obd: ObdSettings) -> Optional[str]:
    if position is None:
        return None
    if position >= obd.throttle_full:
        return "FULL"
    if position >= obd.throttle_partial:
        return "PARTIAL"
    return "CLOSED"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two fixes in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def initial_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Bearing from the first fix to the second, in degrees clockwise from north."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_lambda = math.radians(lon2 - lon1)
    y = math.sin(d_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def format_elapsed(elapsed: timedelta) -> str:
    """'1h 5m' or '12m'; seconds are dropped."""
    minutes = int(elapsed.total_seconds() // 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


class ReadingClassifier(EngineComponent):
    """Stateless classifier for all telemetry kinds."""

    def __init__(self, config: EngineConfig):
        """
        Initialize classifier.

        Args:
            config: Engine configuration carrying the threshold catalog
        """
        super().__init__(config)
        self.logger = get_logger(__name__)

    # -- advisory numbers -------------------------------------------------

    def estimated_range(self, fuel_level: float) -> float:
        """Remaining range in km for a fuel level percentage."""
        economy = self.config.fuel_economy
        remaining_fuel = (fuel_level / 100) * economy.tank_capacity
        return remaining_fuel * economy.assumed_efficiency

    def cost_estimate(self, consumption: float) -> float:
        """Fuel cost per km for a consumption in L/100km."""
        return (consumption / 100) * self.config.fuel_economy.fuel_price

    @staticmethod
    def fuel_efficiency(consumption: float) -> float:
        """Convert L/100km to km/L; zero consumption yields 0."""
        if consumption == 0:
            return 0.0
        return 100 / consumption

    def efficiency_rating(self, km_per_litre: float) -> str:
        rule = self.config.threshold("fuel_efficiency")
        if rule.max_value is not None and km_per_litre >= rule.max_value:
            return "EXCELLENT"
        if km_per_litre >= self.config.fuel_economy.assumed_efficiency:
            return "GOOD"
        if rule.min_value is not None and km_per_litre <= rule.min_value:
            return "POOR"
        return "AVERAGE"

    def performance_score(self, reading: ObdReading) -> int:
        """Engine performance score in [0, 100] from RPM, temperature and fault codes."""
        obd = self.config.obd
        score = 100

        if reading.rpm:
            if reading.rpm > obd.rpm_high:
                score -= 20
            elif reading.rpm > obd.rpm_normal:
                score -= 10
            elif reading.rpm < obd.rpm_idle:
                score -= 15

        temperature = self.config.threshold("engine_temperature")
        bucket = severity_bucket(reading.engine_temperature, temperature)
        if bucket == "CRITICAL":
            score -= 30
        elif bucket == "HIGH":
            score -= 15

        faults = self.config.threshold("fault_count")
        fault_bucket = severity_bucket(reading.fault_count, faults)
        if fault_bucket == "CRITICAL":
            score -= 40
        elif fault_bucket == "HIGH":
            score -= 20
        elif reading.fault_count > 0:
            score -= 10

        return max(0, min(100, score))

    # -- per-kind classification -----------------------------------------

    def classify(self, reading: AnyReading) -> ClassificationResult:
        """Dispatch to the classifier for the reading's kind."""
        if reading.kind == TelemetryKind.FUEL:
            return self.classify_fuel(reading)
        if reading.kind == TelemetryKind.EMISSION:
            return self.classify_emission(reading)
        if reading.kind == TelemetryKind.GPS:
            return self.classify_gps(reading)
        if reading.kind == TelemetryKind.OBD:
            return self.classify_obd(reading)
        raise InternalError(f"No classifier for telemetry kind '{reading.kind}'")

    def classify_fuel(self, reading: FuelReading) -> ClassificationResult:
        level_rule = self.config.threshold("fuel_level")
        consumption_rule = self.config.threshold("fuel_consumption")
        efficiency = self.fuel_efficiency(reading.fuel_consumption)

        return ClassificationResult(
            level_status=classify_level(reading.fuel_level, level_rule).value,
            efficiency_status=classify_efficiency(reading.fuel_consumption, consumption_rule).value,
            estimated_range=self.estimated_range(reading.fuel_level),
            cost_estimate=self.cost_estimate(reading.fuel_consumption),
            fuel_efficiency=efficiency,
            efficiency_rating=self.efficiency_rating(efficiency),
            flags=StatusFlags(
                kind=TelemetryKind.FUEL,
                low_fuel=reaches_alert_bound(reading.fuel_level, level_rule),
                high_consumption=reaches_alert_bound(reading.fuel_consumption, consumption_rule)
            )
        )

    def classify_emission(self, reading: EmissionReading) -> ClassificationResult:
        buckets = [
            severity_bucket(getattr(reading, parameter), self.config.threshold(parameter))
            for parameter in EMISSION_PARAMETERS
        ]
        if "CRITICAL" in buckets:
            level = "CRITICAL"
        elif "HIGH" in buckets:
            level = "HIGH"
        else:
            level = "NORMAL"

        return ClassificationResult(
            level_status=level,
            emission_level=level,
            flags=StatusFlags(kind=TelemetryKind.EMISSION, exceeds_emission=level != "NORMAL")
        )

    def classify_gps(self, reading: GpsReading) -> ClassificationResult:
        speed_rule = self.config.threshold("speed")
        level = severity_bucket(reading.speed, speed_rule)
        # Stationary is a strict bound: exactly the limit counts as moving
        stationary = speed_rule.min_value is not None and reading.speed < speed_rule.min_value

        return ClassificationResult(
            level_status=level,
            speed_level=level,
            flags=StatusFlags(
                kind=TelemetryKind.GPS,
                speeding=level != "NORMAL",
                stationary=stationary
            )
        )

    def classify_obd(self, reading: ObdReading) -> ClassificationResult:
        score = self.performance_score(reading)
        rating = performance_rating(score)

        temperature = self.config.threshold("engine_temperature")
        rpm = self.config.threshold("rpm")
        faults = self.config.threshold("fault_count")

        return ClassificationResult(
            level_status=rating,
            performance_score=score,
            flags=StatusFlags(
                kind=TelemetryKind.OBD,
                critical_faults=faults.breaches(reading.fault_count, faults.critical),
                high_temperature=reaches_alert_bound(reading.engine_temperature, temperature),
                critical_rpm=rpm.breaches(reading.rpm, rpm.critical),
                has_faults=reading.fault_count > 0
            )
        )

    # -- detail view ------------------------------------------------------

    def efficiency_analysis(self, reading: FuelReading) -> EfficiencyAnalysis:
        """Efficiency and cost breakdown shown for a single fuel reading."""
        economy = self.config.fuel_economy
        consumption = reading.fuel_consumption
        current_efficiency = self.fuel_efficiency(consumption)

        suggestions: List[str] = []
        if consumption > economy.benchmark_consumption * 1.5:
            suggestions.append("Schedule immediate maintenance check")
            suggestions.append("Review driving patterns for efficiency")
        if consumption > economy.benchmark_consumption:
            suggestions.append("Check tire pressure and alignment")
            suggestions.append("Consider fuel system cleaning")

        current_cost = self.cost_estimate(consumption) * 100
        monthly_cost = current_cost * (economy.monthly_distance_km / 100)

        return EfficiencyAnalysis(
            current_efficiency=current_efficiency,
            benchmark_efficiency=economy.assumed_efficiency,
            efficiency_rating=self.efficiency_rating(current_efficiency),
            potential_savings=max(0.0, (consumption - economy.benchmark_consumption) * economy.fuel_price),
            improvement_suggestions=suggestions,
            current_cost=current_cost,
            benchmark_cost=self.cost_estimate(economy.benchmark_consumption) * 100,
            monthly_cost_estimate=monthly_cost,
            annual_cost_estimate=monthly_cost * 12
        )

    def engine_health(self, reading: ObdReading) -> str:
        """HEALTHY / WARNING / CRITICAL from fault count, temperature and RPM."""
        temperature = self.config.threshold("engine_temperature")
        rpm = self.config.threshold("rpm")
        faults = self.config.threshold("fault_count")

        if (faults.breaches(reading.fault_count, faults.critical)
                or temperature.breaches(reading.engine_temperature, temperature.critical)
                or rpm.breaches(reading.rpm, rpm.critical)):
            return "CRITICAL"
        if reading.fault_count > 0 or temperature.breaches(reading.engine_temperature, temperature.warning):
            return "WARNING"
        return "HEALTHY"

    def obd_diagnostics(self, reading: ObdReading) -> ObdDiagnostics:
        """Engine health, per-signal status and maintenance hints for one OBD reading."""
        obd = self.config.obd
        temperature = self.config.threshold("engine_temperature")
        score = self.performance_score(reading)
        health = self.engine_health(reading)

        issues: List[str] = []
        recommendations: List[str] = []
        if temperature.breaches(reading.engine_temperature, temperature.warning):
            issues.append("High engine temperature detected")
            recommendations.append("Check cooling system and coolant levels")
        if reading.rpm > obd.rpm_high:
            issues.append("Excessive RPM detected")
            recommendations.append("Avoid over-revving the engine")
        if reading.fault_count > 0:
            issues.append(f"{reading.fault_count} active fault codes")
            recommendations.append("Schedule diagnostic scan and repair")

        urgency = {"CRITICAL": "CRITICAL", "WARNING": "HIGH"}.get(health, "LOW")

        return ObdDiagnostics(
            engine_health=health,
            temperature_status=classify_temperature(reading.engine_temperature, temperature),
            rpm_status=classify_rpm(reading.rpm, obd, self.config.threshold("rpm")),
            throttle_status=classify_throttle(reading.throttle_position, obd),
            fault_codes_count=reading.fault_count,
            has_active_faults=reading.fault_count > 0,
            performance_score=score,
            health_rating=performance_rating(score),
            issues=issues,
            recommendations=recommendations,
            maintenance_urgency=urgency
        )

    def route_analysis(self, reading: GpsReading, previous: Optional[GpsReading]) -> RouteAnalysis:
        """
        Movement since the vehicle's previous GPS fix.

        Without a previous fix only the stationary flag is meaningful.
        """
        speed_rule = self.config.threshold("speed")
        stationary = speed_rule.min_value is not None and reading.speed < speed_rule.min_value

        if previous is None:
            return RouteAnalysis(is_stationary=stationary)

        return RouteAnalysis(
            distance_from_previous=haversine_km(
                previous.latitude, previous.longitude, reading.latitude, reading.longitude
            ),
            time_from_previous=format_elapsed(reading.timestamp - previous.timestamp),
            bearing=initial_bearing(previous.latitude, previous.longitude, reading.latitude, reading.longitude),
            speed_change=reading.speed - previous.speed,
            is_stationary=stationary,
            has_previous=True
        )
