"""
Pytest configuration and shared fixtures for testing.

Provides common test fixtures and setup for all test modules.
"""

import tempfile
from datetime import datetime
from pathlib import Path

import pytest

from fleet_telemetry.config import EngineConfig
from fleet_telemetry.components import DuckDBTelemetryStore
from fleet_telemetry.main import IngestionPipeline
from fleet_telemetry.models import StoredReading, TelemetryKind, TrackingDevice, Vehicle


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def sample_config():
    """Create a test configuration with the reference thresholds."""
    config_data = {
        "engine": {
            "name": "test_fleet_telemetry_engine",
            "version": "1.0.0"
        },
        "fuel_economy": {
            "tank_capacity": 50,
            "assumed_efficiency": 8,
            "fuel_price": 1.5,
            "benchmark_consumption": 8,
            "monthly_distance_km": 2000
        },
        "trends": {
            "consumption_noise_floor": 0.5,
            "fuel_level_noise_floor": 5
        },
        "alerts": {
            "cooldown_minutes": 0
        }
    }

    return EngineConfig(**config_data)


@pytest.fixture
def vehicle():
    return Vehicle(id=1, plate_number="RAA123A", owner_id=7, fuel_type="PETROL")


@pytest.fixture
def device():
    return TrackingDevice(id=1, vehicle_id=1, serial_number="TRK-0001")


@pytest.fixture
def store(vehicle, device):
    """In-memory store seeded with one vehicle and its tracking device."""
    telemetry_store = DuckDBTelemetryStore()
    telemetry_store.register_vehicle(vehicle)
    telemetry_store.register_device(device)
    yield telemetry_store
    telemetry_store.close()


@pytest.fixture
def pipeline(sample_config, store):
    return IngestionPipeline(sample_config, store)


@pytest.fixture
def fuel_payload():
    """A healthy fuel reading in camelCase, as a client would send it."""
    return {
        "vehicleId": 1,
        "trackingDeviceId": 1,
        "plateNumber": "RAA123A",
        "fuelLevel": 55,
        "fuelConsumption": 10
    }


def _fuel_reading(reading_id: int, timestamp: datetime, fuel_level: float, consumption: float) -> StoredReading:
    return StoredReading(
        id=reading_id,
        kind=TelemetryKind.FUEL,
        timestamp=timestamp,
        vehicle_id=1,
        device_id=1,
        plate_number="RAA123A",
        fields={"fuel_level": fuel_level, "fuel_consumption": consumption}
    )


@pytest.fixture
def make_fuel_reading():
    """Factory for stored fuel readings that bypass the store."""
    return _fuel_reading


@pytest.fixture
def fuel_window_readings():
    """
    Four hourly readings: consumption rises from 6 to 16, fuel level falls.

    First half means: consumption 7, level 85. Second half: 15.5, 7.5.
    """
    start = datetime(2024, 3, 1, 8, 0, 0)
    values = [(90, 6), (80, 8), (10, 15), (5, 16)]
    return [
        _fuel_reading(i + 1, start.replace(hour=8 + i), level, consumption)
        for i, (level, consumption) in enumerate(values)
    ]
