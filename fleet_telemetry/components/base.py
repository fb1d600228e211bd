"""
Abstract base classes for engine components.

These define the interfaces that the engine components and the persistence
collaborator must implement, so that tests can inject fakes and deployments
can swap the storage backend.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from fleet_telemetry.config import EngineConfig
from fleet_telemetry.models import (
    Alert,
    ReadingFilter,
    StoredReading,
    TelemetryKind,
    TimeWindow,
    TrackingDevice,
    Vehicle,
    VehicleStatus
)


class EngineComponent(ABC):
    """Base class for all engine components."""

    def __init__(self, config: EngineConfig):
        """Initialize component with engine configuration."""
        self.config = config


class TelemetryStore(ABC):
    """
    Persistence collaborator used by the ingestion pipeline.

    Implementations may wrap any relational store. Methods raise
    ``PersistenceError`` on failure and return ``None`` for missing rows.
    """

    @abstractmethod
    def save_reading(self, kind: TelemetryKind, fields: Dict[str, Any]) -> StoredReading:
        """
        Persist one reading.

        Args:
            kind: Telemetry kind of the reading
            fields: Validated reading fields (shared and kind-specific)

        Returns:
            The stored reading with its assigned id
        """
        pass

    @abstractmethod
    def get_reading(self, kind: TelemetryKind, reading_id: int) -> Optional[StoredReading]:
        pass

    @abstractmethod
    def update_reading(self, kind: TelemetryKind, reading_id: int, fields: Dict[str, Any]) -> Optional[StoredReading]:
        pass

    @abstractmethod
    def delete_reading(self, kind: TelemetryKind, reading_id: int) -> bool:
        """Soft-delete a reading; returns False if it did not exist."""
        pass

    @abstractmethod
    def query_readings(
        self,
        kind: TelemetryKind,
        reading_filter: ReadingFilter,
        window: TimeWindow,
        now: Optional[datetime] = None
    ) -> List[StoredReading]:
        """Return non-deleted readings matching the filter, ordered by timestamp."""
        pass

    @abstractmethod
    def previous_reading(self, kind: TelemetryKind, vehicle_id: int, before: datetime) -> Optional[StoredReading]:
        """Latest non-deleted reading of the vehicle strictly before ``before``."""
        pass

    @abstractmethod
    def find_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        pass

    @abstractmethod
    def find_device(self, device_id: int) -> Optional[TrackingDevice]:
        pass

    @abstractmethod
    def list_devices(self) -> List[TrackingDevice]:
        pass

    @abstractmethod
    def touch_device(self, device_id: int, when: datetime) -> None:
        """Record the time a device last reported."""
        pass

    @abstractmethod
    def update_vehicle_status(self, vehicle_id: int, status: VehicleStatus) -> None:
        """Overwrite the vehicle status (last write wins)."""
        pass

    @abstractmethod
    def save_alerts(self, alerts: List[Alert]) -> None:
        pass

    @abstractmethod
    def recent_alerts(self, vehicle_id: int, since: datetime) -> List[Alert]:
        """Alerts created for a vehicle at or after ``since``."""
        pass
