"""
Vehicle status derivation for the fleet telemetry engine.

Turns the flags of the most recent classification into the single coarse
status stored on the vehicle. The derivation looks at one sample only and is
overwritten by the next reading.
"""

from typing import Callable, Dict, List, Tuple

from fleet_telemetry.components.base import EngineComponent
from fleet_telemetry.config import EngineConfig
from fleet_telemetry.models import StatusFlags, TelemetryKind, VehicleStatus
from fleet_telemetry.utils import get_logger

Rule = Tuple[Callable[[StatusFlags], bool], VehicleStatus]

# Decision tables: evaluated top to bottom, first match wins
DECISION_TABLES: Dict[TelemetryKind, List[Rule]] = {
    TelemetryKind.FUEL: [
        (lambda f: f.low_fuel and f.high_consumption, VehicleStatus.UNDER_MAINTENANCE),
        (lambda f: f.high_consumption, VehicleStatus.TOP_POLLUTING),
    ],
    TelemetryKind.EMISSION: [
        (lambda f: f.exceeds_emission, VehicleStatus.TOP_POLLUTING),
    ],
    TelemetryKind.GPS: [
        (lambda f: f.speeding, VehicleStatus.SPEEDING),
        (lambda f: f.stationary, VehicleStatus.STATIONARY),
    ],
    TelemetryKind.OBD: [
        (lambda f: f.critical_faults or f.high_temperature or f.critical_rpm, VehicleStatus.UNDER_MAINTENANCE),
        (lambda f: f.has_faults, VehicleStatus.TOP_POLLUTING),
    ],
}

FALLBACK_STATUS: Dict[TelemetryKind, VehicleStatus] = {
    TelemetryKind.FUEL: VehicleStatus.NORMAL_EMISSION,
    TelemetryKind.EMISSION: VehicleStatus.NORMAL_EMISSION,
    TelemetryKind.GPS: VehicleStatus.MOVING,
    TelemetryKind.OBD: VehicleStatus.NORMAL_EMISSION,
}


class VehicleStatusDeriver(EngineComponent):
    """Maps status flags to a vehicle status via per-kind decision tables."""

    def __init__(self, config: EngineConfig):
        super().__init__(config)
        self.logger = get_logger(__name__)

    def derive(self, flags: StatusFlags) -> VehicleStatus:
        for predicate, status in DECISION_TABLES[flags.kind]:
            if predicate(flags):
                return status
        return FALLBACK_STATUS[flags.kind]
