"""
Tests for the DuckDB telemetry store.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from fleet_telemetry.components.storage import DuckDBTelemetryStore
from fleet_telemetry.models import (
    Alert,
    AlertType,
    ReadingFilter,
    Severity,
    TelemetryKind,
    TimeWindow,
    TrackingDevice,
    Vehicle,
    VehicleStatus
)
from fleet_telemetry.utils.exceptions import PersistenceError


def fuel_fields(timestamp, level, consumption, vehicle_id=1):
    return {
        "timestamp": timestamp,
        "vehicle_id": vehicle_id,
        "device_id": vehicle_id,
        "plate_number": "RAA123A" if vehicle_id == 1 else "RBB456B",
        "fuel_level": level,
        "fuel_consumption": consumption,
    }


class TestDuckDBTelemetryStore:
    """Test suite for DuckDBTelemetryStore."""

    def test_vehicle_and_device_lookup(self, store):
        vehicle = store.find_vehicle(1)
        device = store.find_device(1)

        assert vehicle.plate_number == "RAA123A"
        assert vehicle.owner_id == 7
        assert vehicle.status == VehicleStatus.NORMAL_EMISSION
        assert device.vehicle_id == 1
        assert device.last_ping is None
        assert store.find_vehicle(99) is None
        assert store.find_device(99) is None

    def test_duplicate_vehicle_raises_persistence_error(self, store, vehicle):
        with pytest.raises(PersistenceError):
            store.register_vehicle(vehicle)

    def test_save_and_get_reading(self, store):
        timestamp = datetime(2024, 3, 1, 9, 30, 0)

        stored = store.save_reading(TelemetryKind.FUEL, fuel_fields(timestamp, 40, 9.5))
        fetched = store.get_reading(TelemetryKind.FUEL, stored.id)

        assert stored.id > 0
        assert fetched.timestamp == timestamp
        assert fetched.fields == {"fuel_level": 40, "fuel_consumption": 9.5}
        assert fetched.to_reading().fuel_consumption == 9.5
        # Readings are scoped by kind
        assert store.get_reading(TelemetryKind.GPS, stored.id) is None

    def test_update_reading(self, store):
        stored = store.save_reading(TelemetryKind.FUEL, fuel_fields(datetime(2024, 3, 1), 40, 9.5))

        updated = store.update_reading(TelemetryKind.FUEL, stored.id, {"fuel_level": 35.0})

        assert updated.fields == {"fuel_level": 35.0, "fuel_consumption": 9.5}
        assert updated.updated_at is not None
        assert store.update_reading(TelemetryKind.FUEL, 999, {"fuel_level": 1.0}) is None

    def test_soft_delete(self, store):
        stored = store.save_reading(TelemetryKind.FUEL, fuel_fields(datetime(2024, 3, 1), 40, 9.5))

        assert store.delete_reading(TelemetryKind.FUEL, stored.id) is True
        assert store.get_reading(TelemetryKind.FUEL, stored.id) is None
        assert store.delete_reading(TelemetryKind.FUEL, stored.id) is False
        assert store.query_readings(TelemetryKind.FUEL, ReadingFilter(), TimeWindow()) == []

    def test_query_orders_by_timestamp(self, store):
        base = datetime(2024, 3, 1, 8, 0, 0)
        store.save_reading(TelemetryKind.FUEL, fuel_fields(base + timedelta(hours=2), 30, 12))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(base, 50, 8))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(base + timedelta(hours=1), 40, 10))

        readings = store.query_readings(TelemetryKind.FUEL, ReadingFilter(), TimeWindow())

        assert [r.fields["fuel_level"] for r in readings] == [50, 40, 30]

    def test_query_filters(self, store):
        store.register_vehicle(Vehicle(id=2, plate_number="RBB456B", owner_id=8, fuel_type="DIESEL"))
        store.register_device(TrackingDevice(id=2, vehicle_id=2))
        base = datetime(2024, 3, 1, 8, 0, 0)
        store.save_reading(TelemetryKind.FUEL, fuel_fields(base, 50, 8))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(base, 20, 16))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(base, 70, 11, vehicle_id=2))

        def query(**criteria):
            return store.query_readings(TelemetryKind.FUEL, ReadingFilter(**criteria), TimeWindow())

        assert len(query(vehicle_id=1)) == 2
        assert len(query(plate_number="RBB456B")) == 1
        assert len(query(fuel_type="DIESEL")) == 1
        assert [r.fields["fuel_level"] for r in query(min_fuel_level=20, max_fuel_level=50)] == [50, 20]
        assert [r.fields["fuel_consumption"] for r in query(min_consumption=11)] == [16, 11]

        store.update_vehicle_status(2, VehicleStatus.TOP_POLLUTING)
        assert len(query(vehicle_status=VehicleStatus.TOP_POLLUTING)) == 1

    def test_query_window(self, store):
        now = datetime(2024, 3, 10, 12, 0, 0)
        store.save_reading(TelemetryKind.FUEL, fuel_fields(now - timedelta(hours=2), 50, 8))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(now - timedelta(days=3), 40, 9))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(now - timedelta(days=20), 30, 10))

        def count(window):
            return len(store.query_readings(TelemetryKind.FUEL, ReadingFilter(), window, now))

        assert count(TimeWindow(interval="day")) == 1
        assert count(TimeWindow(interval="week")) == 2
        assert count(TimeWindow(interval="month")) == 3
        assert count(TimeWindow(start=now - timedelta(days=4), end=now - timedelta(days=1))) == 1

    def test_touch_device(self, store):
        when = datetime(2024, 3, 1, 10, 0, 0)

        store.touch_device(1, when)

        assert store.find_device(1).last_ping == when
        assert [d.id for d in store.list_devices()] == [1]

    def test_alerts(self, store):
        created = datetime(2024, 3, 1, 10, 0, 0)
        alert = Alert(
            type=AlertType.FUEL_ANOMALY_ALERT,
            title="Critical Fuel Level",
            message="Vehicle RAA123A has critically low fuel level (4%)",
            severity=Severity.CRITICAL,
            parameter="fuel_level",
            trigger_value="4%",
            trigger_threshold="Fuel level <= 5%",
            vehicle_id=1,
            user_id=7,
            created_at=created
        )

        store.save_alerts([alert])
        store.save_alerts([])

        assert store.recent_alerts(1, created - timedelta(minutes=1)) == [alert]
        assert store.recent_alerts(1, created + timedelta(minutes=1)) == []
        assert store.list_alerts() == [alert]
        assert store.list_alerts(vehicle_id=2) == []

    def test_month_window_is_a_calendar_month(self, store):
        now = datetime(2024, 3, 31, 12, 0, 0)
        store.save_reading(TelemetryKind.FUEL, fuel_fields(datetime(2024, 2, 29, 12, 0, 0), 50, 8))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(datetime(2024, 2, 29, 11, 59, 0), 40, 9))

        readings = store.query_readings(TelemetryKind.FUEL, ReadingFilter(), TimeWindow(interval="month"), now)

        assert [r.fields["fuel_level"] for r in readings] == [50]

    def test_previous_reading(self, store):
        base = datetime(2024, 3, 1, 8, 0, 0)
        first = store.save_reading(TelemetryKind.FUEL, fuel_fields(base, 50, 8))
        second = store.save_reading(TelemetryKind.FUEL, fuel_fields(base + timedelta(hours=1), 45, 9))
        store.save_reading(TelemetryKind.FUEL, fuel_fields(base + timedelta(hours=2), 40, 10))

        assert store.previous_reading(TelemetryKind.FUEL, 1, base + timedelta(hours=2)).id == second.id
        # Strictly before: a reading at the reference time is not its own predecessor
        assert store.previous_reading(TelemetryKind.FUEL, 1, base + timedelta(hours=1)).id == first.id
        assert store.previous_reading(TelemetryKind.FUEL, 1, base) is None

    def test_previous_reading_scoping(self, store):
        base = datetime(2024, 3, 1, 8, 0, 0)
        stored = store.save_reading(TelemetryKind.FUEL, fuel_fields(base, 50, 8))
        later = base + timedelta(hours=1)

        assert store.previous_reading(TelemetryKind.GPS, 1, later) is None
        assert store.previous_reading(TelemetryKind.FUEL, 2, later) is None

        store.delete_reading(TelemetryKind.FUEL, stored.id)
        assert store.previous_reading(TelemetryKind.FUEL, 1, later) is None

    def test_previous_reading_with_aware_reference(self, store):
        stored = store.save_reading(TelemetryKind.FUEL, fuel_fields(datetime(2024, 3, 1, 8, 0, 0), 50, 8))
        # 10:30 at UTC+2 is 08:30 UTC
        before = datetime(2024, 3, 1, 10, 30, 0, tzinfo=timezone(timedelta(hours=2)))

        assert store.previous_reading(TelemetryKind.FUEL, 1, before).id == stored.id

    def test_shared_between_threads(self, store):
        base = datetime(2024, 3, 1, 8, 0, 0)

        def worker(offset):
            ids = []
            for i in range(25):
                when = base + timedelta(minutes=offset * 25 + i)
                ids.append(store.save_reading(TelemetryKind.FUEL, fuel_fields(when, 50, 8)).id)
                store.touch_device(1, when)
                store.update_vehicle_status(1, VehicleStatus.NORMAL_EMISSION)
                assert store.find_vehicle(1).plate_number == "RAA123A"
            return ids

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(worker, range(4)))

        ids = [i for chunk in results for i in chunk]
        readings = store.query_readings(TelemetryKind.FUEL, ReadingFilter(), TimeWindow())

        assert len(set(ids)) == 100
        assert len(readings) == 100
        assert sorted(r.id for r in readings) == sorted(ids)
        assert store.find_device(1).last_ping is not None

    def test_close_releases_thread_cursors(self, vehicle):
        store = DuckDBTelemetryStore()
        store.register_vehicle(vehicle)
        with ThreadPoolExecutor(max_workers=2) as executor:
            found = list(executor.map(store.find_vehicle, [1, 1]))

        store.close()

        assert [v.plate_number for v in found] == ["RAA123A", "RAA123A"]
        with pytest.raises(PersistenceError):
            store.find_vehicle(1)


class TestTimeWindow:
    """Trailing interval resolution."""

    def test_calendar_month(self):
        assert TimeWindow(interval="month").bounds(datetime(2024, 3, 31, 12, 0, 0)) == (
            datetime(2024, 2, 29, 12, 0, 0), None
        )
        assert TimeWindow(interval="month").bounds(datetime(2024, 3, 15)) == (datetime(2024, 2, 15), None)

    def test_day_and_week(self):
        now = datetime(2024, 3, 10, 12, 0, 0)

        assert TimeWindow(interval="day").bounds(now) == (datetime(2024, 3, 9, 12, 0, 0), None)
        assert TimeWindow(interval="week").bounds(now) == (datetime(2024, 3, 3, 12, 0, 0), None)

    def test_aware_now(self):
        now = datetime(2024, 3, 10, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))

        assert TimeWindow(interval="day").bounds(now) == (datetime(2024, 3, 9, 12, 0, 0), None)

    def test_explicit_bounds(self):
        start, end = datetime(2024, 3, 1), datetime(2024, 3, 2)

        assert TimeWindow(start=start, end=end).bounds() == (start, end)
