"""
Alert generation component for the fleet telemetry engine.

Evaluates one reading against the threshold catalog and drafts the alerts it
triggers. Each parameter is checked critical-first: when the critical bound
fires the warning bound for the same parameter is skipped, so a single
dimension never produces two alerts for one reading.
"""

from datetime import datetime
from typing import Dict, List, NamedTuple, Optional, Tuple

from fleet_telemetry.components.base import EngineComponent
from fleet_telemetry.config import EngineConfig, ThresholdRule, format_value
from fleet_telemetry.models import (
    Alert,
    AnyReading,
    Severity,
    TelemetryKind,
    TrackingDevice,
    Vehicle
)
from fleet_telemetry.utils import get_logger, as_naive_utc


class ParameterCheck(NamedTuple):
    """How one reading attribute is checked and described in alert text."""
    parameter: str
    attribute: str
    noun: str
    adjective: str
    phrase: str
    critical_adjective: str = ""


PARAMETER_CHECKS: Dict[TelemetryKind, Tuple[ParameterCheck, ...]] = {
    TelemetryKind.FUEL: (
        ParameterCheck("fuel_level", "fuel_level", "Fuel Level", "low", "fuel level"),
        ParameterCheck("fuel_consumption", "fuel_consumption", "Fuel Consumption", "high", "fuel consumption"),
    ),
    TelemetryKind.EMISSION: (
        ParameterCheck("co2_percentage", "co2_percentage", "CO2 Emission Level", "high", "CO2 emissions"),
        ParameterCheck("co_percentage", "co_percentage", "CO Emission Level", "high", "CO emissions"),
        ParameterCheck("hc_ppm", "hc_ppm", "HC Emission Level", "high", "HC emissions"),
        ParameterCheck("nox_ppm", "nox_ppm", "NOx Emission Level", "high", "NOx emissions"),
        ParameterCheck("pm25_level", "pm25_level", "PM2.5 Level", "high", "PM2.5 levels"),
    ),
    TelemetryKind.GPS: (
        ParameterCheck("speed", "speed", "Speed Violation", "high", "speed"),
        ParameterCheck("gps_accuracy", "accuracy", "GPS Accuracy", "poor", "GPS accuracy"),
    ),
    TelemetryKind.OBD: (
        ParameterCheck("engine_temperature", "engine_temperature", "Engine Temperature", "high", "engine temperature"),
        ParameterCheck("rpm", "rpm", "RPM Level", "high", "RPM"),
        ParameterCheck("fault_count", "fault_count", "Fault Codes Detected", "multiple", "active fault codes", "too many"),
    ),
}

SEVERITY_ORDER = {Severity.CRITICAL: 0, Severity.WARNING: 1}


class AlertGenerator(EngineComponent):
    """Drafts alerts for readings; never persists or deduplicates them."""

    def __init__(self, config: EngineConfig):
        """
        Initialize alert generator.

        Args:
            config: Engine configuration carrying the threshold catalog
        """
        super().__init__(config)
        self.logger = get_logger(__name__)

        self.stats = {
            "readings_evaluated": 0,
            "critical_alerts": 0,
            "warning_alerts": 0
        }

    def generate(self, reading: AnyReading, vehicle: Vehicle) -> List[Alert]:
        """
        Evaluate a reading and draft its alerts.

        Args:
            reading: Validated reading
            vehicle: Vehicle the reading belongs to (supplies the alert recipient)

        Returns:
            Alert drafts, CRITICAL before WARNING, parameter order otherwise kept
        """
        self.stats["readings_evaluated"] += 1
        alerts = []

        for check in PARAMETER_CHECKS[reading.kind]:
            value = getattr(reading, check.attribute)
            if value is None:
                continue

            rule = self.config.threshold(check.parameter)
            alert = self._evaluate(check, rule, value, reading.plate_number, vehicle)
            if alert is not None:
                alerts.append(alert)

        alerts.sort(key=lambda a: SEVERITY_ORDER[a.severity])

        if alerts:
            self.logger.info(
                f"Reading for vehicle {vehicle.id} ({reading.plate_number}) raised {len(alerts)} alert(s): "
                f"{', '.join(a.title for a in alerts)}"
            )
        return alerts

    def _evaluate(
        self,
        check: ParameterCheck,
        rule: ThresholdRule,
        value: float,
        plate_number: str,
        vehicle: Vehicle
    ) -> Optional[Alert]:
        """Critical bound first; the warning bound is only tried when critical does not fire."""
        if rule.breaches(value, rule.critical):
            severity, bound = Severity.CRITICAL, rule.critical
        elif rule.breaches(value, rule.warning):
            severity, bound = Severity.WARNING, rule.warning
        else:
            return None

        value_text = f"{format_value(value)}{rule.unit}"
        if severity == Severity.CRITICAL:
            title = f"Critical {check.noun}"
            adjective = check.critical_adjective or f"critically {check.adjective}"
            message = f"Vehicle {plate_number} has {adjective} {check.phrase} ({value_text})"
            self.stats["critical_alerts"] += 1
        else:
            title = f"{check.adjective.title()} {check.noun}"
            message = f"Vehicle {plate_number} has {check.adjective} {check.phrase} ({value_text})"
            self.stats["warning_alerts"] += 1

        return Alert(
            type=rule.alert_type,
            title=title,
            message=message,
            severity=severity,
            parameter=check.parameter,
            trigger_value=value_text,
            trigger_threshold=rule.describe(bound),
            vehicle_id=vehicle.id,
            user_id=vehicle.owner_id
        )

    def check_device_offline(
        self,
        device: TrackingDevice,
        vehicle: Vehicle,
        now: datetime
    ) -> Optional[Alert]:
        """
        Draft an offline alert for a device that has been silent too long.

        Devices that never reported are skipped: there is no reference point
        to measure silence from. An aware ``now`` is compared in UTC.
        """
        if device.last_ping is None:
            return None

        rule = self.config.threshold("device_offline_minutes")
        minutes = (as_naive_utc(now) - device.last_ping).total_seconds() / 60

        if rule.breaches(minutes, rule.critical):
            severity, bound, title = Severity.CRITICAL, rule.critical, "Critical Device Offline"
        elif rule.breaches(minutes, rule.warning):
            severity, bound, title = Severity.WARNING, rule.warning, "Device Offline"
        else:
            return None

        return Alert(
            type=rule.alert_type,
            title=title,
            message=(
                f"Tracking device {device.id} on vehicle {vehicle.plate_number} "
                f"has not reported for {minutes:.0f} minutes"
            ),
            severity=severity,
            parameter=rule.parameter,
            trigger_value=f"{minutes:.0f} minutes",
            trigger_threshold=rule.describe(bound),
            vehicle_id=vehicle.id,
            user_id=vehicle.owner_id
        )
