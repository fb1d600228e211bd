"""
Main orchestrator for fleet telemetry ingestion.

This module coordinates the engine components for each incoming reading:
validation -> persistence -> classification -> alerting -> vehicle status
and serves the read-side operations (statistics, single reading detail,
update, delete, offline device scan) on top of the same components.
"""

import threading
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from fleet_telemetry.config import EngineConfig
from fleet_telemetry.models import (
    Alert,
    AlertBrief,
    AnyReading,
    ClassificationResult,
    ConsumptionRangeSummary,
    EmissionStatisticsSummary,
    FuelStatisticsSummary,
    IngestionResult,
    ObdStatisticsSummary,
    ReadingDetail,
    ReadingFilter,
    Recommendations,
    Severity,
    StoredReading,
    TelemetryKind,
    TimeWindow,
    TrackingDevice,
    Vehicle
)
from fleet_telemetry.components import (
    AlertGenerator,
    DuckDBTelemetryStore,
    ReadingClassifier,
    ReadingValidator,
    StatisticsAggregator,
    TelemetryStore,
    VehicleStatusDeriver
)
from fleet_telemetry.utils import (
    as_naive_utc,
    get_logger,
    setup_logging,
    utc_now,
    NotFoundError,
    PersistenceError,
    TelemetryError,
    ValidationError
)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "default.yaml"


class PipelineStage(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    PERSISTED = "PERSISTED"
    CLASSIFIED = "CLASSIFIED"
    ALERTS_EVALUATED = "ALERTS_EVALUATED"
    VEHICLE_STATUS_UPDATED = "VEHICLE_STATUS_UPDATED"
    RESPONSE_BUILT = "RESPONSE_BUILT"


class IngestionPipeline:
    """Per-reading orchestrator that coordinates all engine components."""

    def __init__(
        self,
        config: EngineConfig,
        store: TelemetryStore,
        validator: Optional[ReadingValidator] = None,
        classifier: Optional[ReadingClassifier] = None,
        alert_generator: Optional[AlertGenerator] = None,
        status_deriver: Optional[VehicleStatusDeriver] = None,
        aggregator: Optional[StatisticsAggregator] = None
    ):
        """
        Initialize pipeline with configuration and a persistence collaborator.

        Args:
            config: Engine configuration
            store: Persistence collaborator
            validator, classifier, alert_generator, status_deriver, aggregator:
                Optional component overrides; defaults are built from config
        """
        self.config = config
        self.store = store
        self.logger = get_logger(__name__)

        self.validator = validator or ReadingValidator(config)
        self.classifier = classifier or ReadingClassifier(config)
        self.alert_generator = alert_generator or AlertGenerator(config)
        self.status_deriver = status_deriver or VehicleStatusDeriver(config)
        self.aggregator = aggregator or StatisticsAggregator(config)

        self.last_stage: Optional[PipelineStage] = None

        self.stats = {
            "readings_received": 0,
            "readings_stored": 0,
            "readings_rejected": 0,
            "alerts_generated": 0,
            "alerts_suppressed": 0
        }
        self._stats_lock = threading.Lock()

    def _count(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self.stats[key] += amount

    def _store_call(self, operation: Callable, *args):
        """Run a store operation, wrapping untyped failures as PersistenceError."""
        try:
            return operation(*args)
        except TelemetryError:
            raise
        except Exception as e:
            raise PersistenceError(f"Store operation '{operation.__name__}' failed: {e}") from e

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def record_reading(self, kind: Union[str, TelemetryKind], payload: Dict[str, Any]) -> IngestionResult:
        """
        Ingest one reading end to end.

        Each step runs strictly after the previous one and any failure aborts
        the rest. Nothing is rolled back: if alert or status persistence fails
        the reading stays stored without its alerts.

        Args:
            kind: Telemetry kind (FUEL, EMISSION, GPS, OBD)
            payload: Raw reading fields

        Returns:
            Stored reading, classification, alerts and recommendations

        Raises:
            ValidationError: Payload is invalid; nothing was stored
            NotFoundError: Referenced vehicle or device does not exist
            InternalError: Persistence failure or unconfigured threshold
        """
        self.last_stage = PipelineStage.RECEIVED
        self._count("readings_received")

        try:
            reading = self.validator.validate_reading(kind, payload)
        except ValidationError:
            self._count("readings_rejected")
            raise
        self.last_stage = PipelineStage.VALIDATED

        vehicle = self._store_call(self.store.find_vehicle, reading.vehicle_id)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {reading.vehicle_id} not found")
        device = self._store_call(self.store.find_device, reading.device_id)
        if device is None:
            raise NotFoundError(f"Tracking device {reading.device_id} not found")

        stored = self._store_call(self.store.save_reading, reading.kind, reading.model_dump())
        self._store_call(self.store.touch_device, device.id, utc_now())
        self._count("readings_stored")
        self.last_stage = PipelineStage.PERSISTED

        classification = self.classifier.classify(reading)
        self.last_stage = PipelineStage.CLASSIFIED

        drafts = self.alert_generator.generate(reading, vehicle)
        alerts = self._apply_cooldown(drafts, vehicle.id, utc_now())
        self._store_call(self.store.save_alerts, alerts)
        self._count("alerts_generated", len(alerts))
        self.last_stage = PipelineStage.ALERTS_EVALUATED

        vehicle_status = self.status_deriver.derive(classification.flags)
        self._store_call(self.store.update_vehicle_status, vehicle.id, vehicle_status)
        self.last_stage = PipelineStage.VEHICLE_STATUS_UPDATED

        result = IngestionResult(
            stored=stored,
            level_status=classification.level_status,
            efficiency_status=classification.efficiency_status,
            estimated_range=classification.estimated_range,
            cost_estimate=classification.cost_estimate,
            vehicle_status=vehicle_status,
            alerts_generated=len(alerts),
            alerts=[AlertBrief(type=a.type, title=a.title, severity=a.severity) for a in alerts],
            recommendations=self._recommendations(reading, classification, drafts)
        )
        self.last_stage = PipelineStage.RESPONSE_BUILT

        self.logger.info(
            f"Recorded {reading.kind.value} reading {stored.id} for vehicle {vehicle.id}: "
            f"status {vehicle_status.value}, {len(alerts)} alert(s)"
        )
        return result

    def _recommendations(
        self,
        reading: AnyReading,
        classification: ClassificationResult,
        drafts: List[Alert]
    ) -> Recommendations:
        if reading.kind != TelemetryKind.FUEL:
            return Recommendations(
                maintenance_recommended=any(a.severity == Severity.CRITICAL for a in drafts)
            )

        consumption_rule = self.config.threshold("fuel_consumption")
        return Recommendations(
            refueling_suggested=classification.flags.low_fuel,
            maintenance_recommended=consumption_rule.breaches(reading.fuel_consumption, consumption_rule.critical),
            efficiency_tips=list(self.config.efficiency_tips) if classification.flags.high_consumption else []
        )

    def _apply_cooldown(self, drafts: List[Alert], vehicle_id: int, now: datetime) -> List[Alert]:
        """Drop drafts whose (type, title) already fired for the vehicle within the cooldown."""
        minutes = self.config.alerts.cooldown_minutes
        if not drafts or minutes <= 0:
            return drafts

        recent = self._store_call(self.store.recent_alerts, vehicle_id, now - timedelta(minutes=minutes))
        fired = {(a.type, a.title) for a in recent}
        kept = [a for a in drafts if (a.type, a.title) not in fired]

        suppressed = len(drafts) - len(kept)
        if suppressed:
            self._count("alerts_suppressed", suppressed)
            self.logger.info(f"Suppressed {suppressed} repeated alert(s) for vehicle {vehicle_id}")
        return kept

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_statistics(
        self,
        kind: Union[str, TelemetryKind],
        reading_filter: Optional[Union[ReadingFilter, Dict[str, Any]]] = None,
        window: Optional[Union[TimeWindow, Dict[str, Any]]] = None,
        now: Optional[datetime] = None
    ) -> Union[FuelStatisticsSummary, EmissionStatisticsSummary, ObdStatisticsSummary]:
        """
        Summarise the readings of one kind matching a filter and time window.

        Raises:
            ValidationError: Bad filter/window, or a kind without statistics
        """
        telemetry_kind = self.validator.parse_kind(kind)
        parsed_filter, parsed_window = self.validator.validate_query(reading_filter, window)

        readings = self._store_call(self.store.query_readings, telemetry_kind, parsed_filter, parsed_window, now)

        if telemetry_kind == TelemetryKind.FUEL:
            readings = self.aggregator.filter_by_status(readings, parsed_filter)
            return self.aggregator.fuel_statistics(readings, parsed_window)
        if telemetry_kind == TelemetryKind.EMISSION:
            return self.aggregator.emission_statistics(readings, parsed_window)
        if telemetry_kind == TelemetryKind.OBD:
            return self.aggregator.obd_statistics(readings, parsed_window)
        raise ValidationError(f"Statistics are not available for {telemetry_kind.value} readings")

    def consumption_range(
        self,
        min_consumption: float,
        max_consumption: float,
        window: Optional[Union[TimeWindow, Dict[str, Any]]] = None
    ) -> ConsumptionRangeSummary:
        """Fuel readings whose consumption lies in [min, max], summarised."""
        parsed_filter, parsed_window = self.validator.validate_query(
            {"min_consumption": min_consumption, "max_consumption": max_consumption}, window
        )
        readings = self._store_call(self.store.query_readings, TelemetryKind.FUEL, parsed_filter, parsed_window, None)
        return self.aggregator.consumption_range_summary(readings, min_consumption, max_consumption)

    def get_reading(self, kind: Union[str, TelemetryKind], reading_id: Any) -> ReadingDetail:
        """
        Stored reading with a fresh classification and a kind-specific view.

        Fuel readings get an efficiency analysis, GPS readings a route
        analysis against the vehicle's previous fix, OBD readings engine
        diagnostics.
        """
        telemetry_kind = self.validator.parse_kind(kind)
        reading_id = self.validator.validate_id(reading_id, "reading ID")

        stored = self._require_reading(telemetry_kind, reading_id)
        reading = stored.to_reading()
        detail = ReadingDetail(stored=stored, classification=self.classifier.classify(reading))

        if telemetry_kind == TelemetryKind.FUEL:
            detail.efficiency_analysis = self.classifier.efficiency_analysis(reading)
        elif telemetry_kind == TelemetryKind.GPS:
            previous = self._store_call(
                self.store.previous_reading, telemetry_kind, stored.vehicle_id, stored.timestamp
            )
            detail.route_analysis = self.classifier.route_analysis(
                reading, previous.to_reading() if previous is not None else None
            )
        elif telemetry_kind == TelemetryKind.OBD:
            detail.diagnostics = self.classifier.obd_diagnostics(reading)

        return detail

    def update_reading(self, kind: Union[str, TelemetryKind], reading_id: Any, changes: Dict[str, Any]) -> StoredReading:
        """
        Apply validated changes to a stored reading.

        The merged reading is validated as a whole before anything is written.
        Alerts and vehicle status are not re-evaluated.
        """
        telemetry_kind = self.validator.parse_kind(kind)
        reading_id = self.validator.validate_id(reading_id, "reading ID")
        fields = self.validator.validate_update(telemetry_kind, changes)

        current = self._require_reading(telemetry_kind, reading_id)
        merged = {
            "timestamp": current.timestamp,
            "vehicle_id": current.vehicle_id,
            "device_id": current.device_id,
            "plate_number": current.plate_number,
            **current.fields,
            **fields
        }
        reading = self.validator.validate_reading(telemetry_kind, merged)

        updated = self._store_call(
            self.store.update_reading,
            telemetry_kind,
            reading_id,
            {name: getattr(reading, name) for name in fields}
        )
        if updated is None:
            raise NotFoundError(f"{telemetry_kind.value.title()} reading {reading_id} not found")
        return updated

    def delete_reading(self, kind: Union[str, TelemetryKind], reading_id: Any) -> None:
        telemetry_kind = self.validator.parse_kind(kind)
        reading_id = self.validator.validate_id(reading_id, "reading ID")
        if not self._store_call(self.store.delete_reading, telemetry_kind, reading_id):
            raise NotFoundError(f"{telemetry_kind.value.title()} reading {reading_id} not found")
        self.logger.info(f"Deleted {telemetry_kind.value} reading {reading_id}")

    def _require_reading(self, kind: TelemetryKind, reading_id: int) -> StoredReading:
        stored = self._store_call(self.store.get_reading, kind, reading_id)
        if stored is None:
            raise NotFoundError(f"{kind.value.title()} reading {reading_id} not found")
        return stored

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def scan_offline_devices(self, now: Optional[datetime] = None) -> List[Alert]:
        """
        Raise offline alerts for devices that stopped reporting.

        Returns:
            The alerts that were persisted
        """
        now = as_naive_utc(now) or utc_now()
        alerts: List[Alert] = []

        for device in self._store_call(self.store.list_devices):
            vehicle = self._store_call(self.store.find_vehicle, device.vehicle_id)
            if vehicle is None:
                self.logger.warning(f"Device {device.id} references missing vehicle {device.vehicle_id}")
                continue

            alert = self.alert_generator.check_device_offline(device, vehicle, now)
            if alert is not None:
                alerts.extend(self._apply_cooldown([alert], vehicle.id, now))

        self._store_call(self.store.save_alerts, alerts)
        self._count("alerts_generated", len(alerts))
        if alerts:
            self.logger.warning(f"{len(alerts)} tracking device(s) offline")
        return alerts

    def log_summary(self) -> None:
        """Log pipeline counters."""
        self.logger.info("=== Pipeline Summary ===")
        for key, value in self.stats.items():
            self.logger.info(f"{key.replace('_', ' ').title()}: {value}")


def main():
    """Demo entry point: ingest a few readings into an in-memory store."""
    try:
        config = EngineConfig.from_yaml(DEFAULT_CONFIG_PATH) if DEFAULT_CONFIG_PATH.exists() else EngineConfig()
        setup_logging(config.logging)

        store = DuckDBTelemetryStore()
        store.register_vehicle(Vehicle(id=1, plate_number="RAA123A", owner_id=7, fuel_type="PETROL"))
        store.register_device(TrackingDevice(id=1, vehicle_id=1, serial_number="TRK-0001"))

        pipeline = IngestionPipeline(config, store)

        samples = [
            {"vehicleId": 1, "trackingDeviceId": 1, "plateNumber": "RAA123A", "fuelLevel": 65, "fuelConsumption": 7.5},
            {"vehicleId": 1, "trackingDeviceId": 1, "plateNumber": "RAA123A", "fuelLevel": 40, "fuelConsumption": 12},
            {"vehicleId": 1, "trackingDeviceId": 1, "plateNumber": "RAA123A", "fuelLevel": 4, "fuelConsumption": 22},
        ]
        for payload in samples:
            result = pipeline.record_reading(TelemetryKind.FUEL, payload)
            print(f"Reading {result.stored.id}: {result.vehicle_status.value}, "
                  f"{result.alerts_generated} alert(s) {[a.title for a in result.alerts]}")

        summary = pipeline.get_statistics(TelemetryKind.FUEL, {"vehicle_id": 1})
        print("\nFuel statistics:")
        print(f"   Records: {summary.summary.total_records}")
        print(f"   Average consumption: {summary.summary.average_consumption} L/100km")
        print(f"   Consumption trend: {summary.trends.consumption_trend.value}")

        pipeline.log_summary()

    except TelemetryError as e:
        print(f"Telemetry demo failed: {e}")


if __name__ == "__main__":
    main()
