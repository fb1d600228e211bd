"""
DuckDB-backed telemetry store.

Keeps vehicles, tracking devices, readings and alerts in an in-memory DuckDB
database. Kind-specific measurements are stored as a JSON document per
reading so the four telemetry kinds share one table; the fuel range filters
are evaluated inside DuckDB with ``json_extract_string``.

The store can be shared between threads: each thread runs its statements on
its own cursor of the one database, and statements are serialised so that
concurrent updates of a vehicle or device row never conflict.
"""

import json
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import duckdb

from fleet_telemetry.components.base import TelemetryStore
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
from fleet_telemetry.utils import get_logger, as_naive_utc, utc_now, PersistenceError

SHARED_COLUMNS = ("timestamp", "vehicle_id", "device_id", "plate_number")

SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS reading_ids START 1;
CREATE SEQUENCE IF NOT EXISTS alert_ids START 1;

CREATE TABLE IF NOT EXISTS vehicles (
    id INTEGER PRIMARY KEY,
    plate_number VARCHAR NOT NULL,
    owner_id INTEGER NOT NULL,
    status VARCHAR NOT NULL,
    fuel_type VARCHAR
);

CREATE TABLE IF NOT EXISTS tracking_devices (
    id INTEGER PRIMARY KEY,
    vehicle_id INTEGER NOT NULL,
    serial_number VARCHAR,
    last_ping TIMESTAMP
);

CREATE TABLE IF NOT EXISTS readings (
    id BIGINT PRIMARY KEY DEFAULT nextval('reading_ids'),
    kind VARCHAR NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    vehicle_id INTEGER NOT NULL,
    device_id INTEGER NOT NULL,
    plate_number VARCHAR NOT NULL,
    fields VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP,
    deleted BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE TABLE IF NOT EXISTS alerts (
    id BIGINT PRIMARY KEY DEFAULT nextval('alert_ids'),
    vehicle_id INTEGER NOT NULL,
    user_id INTEGER,
    type VARCHAR NOT NULL,
    title VARCHAR NOT NULL,
    message VARCHAR NOT NULL,
    severity VARCHAR NOT NULL,
    parameter VARCHAR NOT NULL,
    trigger_value VARCHAR NOT NULL,
    trigger_threshold VARCHAR NOT NULL,
    is_read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP NOT NULL
);
"""

COLUMNS = ("id", "kind", "timestamp", "vehicle_id", "device_id", "plate_number", "fields", "created_at", "updated_at")
READING_COLUMNS = ", ".join(f"r.{c}" for c in COLUMNS)


class DuckDBTelemetryStore(TelemetryStore):
    """Telemetry store on one DuckDB database, safe to share between threads."""

    def __init__(self, database: str = ':memory:'):
        """
        Open the database and create the schema.

        Args:
            database: DuckDB database path, in-memory by default
        """
        self.logger = get_logger(__name__)
        try:
            self.duckdb_conn = duckdb.connect(database)
            self.duckdb_conn.execute(SCHEMA)
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to initialise telemetry store: {e}") from e

        self._local = threading.local()
        self._lock = threading.RLock()
        self._cursors: List[duckdb.DuckDBPyConnection] = []

        self.logger.info(f"Telemetry store ready ({database})")

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        """The calling thread's cursor, opened on first use."""
        cursor = getattr(self._local, "cursor", None)
        if cursor is None:
            with self._lock:
                cursor = self.duckdb_conn.cursor()
                self._cursors.append(cursor)
            self._local.cursor = cursor
        return cursor

    def _execute(self, query: str, params: Optional[List[Any]] = None, fetch: Optional[str] = None):
        """Run one statement on the thread's cursor; ``fetch`` is None, "one" or "all"."""
        cursor = self._cursor()
        try:
            with self._lock:
                cursor.execute(query, params or [])
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
                return None
        except duckdb.Error as e:
            raise PersistenceError(f"Telemetry store query failed: {e}") from e

    def close(self) -> None:
        with self._lock:
            for cursor in self._cursors:
                cursor.close()
            self._cursors.clear()
            self.duckdb_conn.close()

    # ------------------------------------------------------------------
    # Fleet entities
    # ------------------------------------------------------------------

    def register_vehicle(self, vehicle: Vehicle) -> Vehicle:
        self._execute(
            "INSERT INTO vehicles VALUES (?, ?, ?, ?, ?)",
            [vehicle.id, vehicle.plate_number, vehicle.owner_id, vehicle.status.value, vehicle.fuel_type]
        )
        return vehicle

    def register_device(self, device: TrackingDevice) -> TrackingDevice:
        self._execute(
            "INSERT INTO tracking_devices VALUES (?, ?, ?, ?)",
            [device.id, device.vehicle_id, device.serial_number, device.last_ping]
        )
        return device

    def find_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        row = self._execute(
            "SELECT id, plate_number, owner_id, status, fuel_type FROM vehicles WHERE id = ?",
            [vehicle_id],
            fetch="one"
        )
        if row is None:
            return None
        return Vehicle(id=row[0], plate_number=row[1], owner_id=row[2], status=row[3], fuel_type=row[4])

    def find_device(self, device_id: int) -> Optional[TrackingDevice]:
        row = self._execute(
            "SELECT id, vehicle_id, serial_number, last_ping FROM tracking_devices WHERE id = ?",
            [device_id],
            fetch="one"
        )
        if row is None:
            return None
        return TrackingDevice(id=row[0], vehicle_id=row[1], serial_number=row[2], last_ping=row[3])

    def list_devices(self) -> List[TrackingDevice]:
        rows = self._execute(
            "SELECT id, vehicle_id, serial_number, last_ping FROM tracking_devices ORDER BY id",
            fetch="all"
        )
        return [
            TrackingDevice(id=r[0], vehicle_id=r[1], serial_number=r[2], last_ping=r[3])
            for r in rows
        ]

    def touch_device(self, device_id: int, when: datetime) -> None:
        self._execute("UPDATE tracking_devices SET last_ping = ? WHERE id = ?", [as_naive_utc(when), device_id])

    def update_vehicle_status(self, vehicle_id: int, status: VehicleStatus) -> None:
        self._execute("UPDATE vehicles SET status = ? WHERE id = ?", [status.value, vehicle_id])

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    @staticmethod
    def _to_stored(row: Tuple) -> StoredReading:
        return StoredReading(
            id=row[0],
            kind=row[1],
            timestamp=row[2],
            vehicle_id=row[3],
            device_id=row[4],
            plate_number=row[5],
            fields=json.loads(row[6]),
            created_at=row[7],
            updated_at=row[8]
        )

    def save_reading(self, kind: TelemetryKind, fields: Dict[str, Any]) -> StoredReading:
        measurements = {k: v for k, v in fields.items() if k not in SHARED_COLUMNS}
        row = self._execute(
            f"""
            INSERT INTO readings (kind, timestamp, vehicle_id, device_id, plate_number, fields, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING {', '.join(COLUMNS)}
            """,
            [
                kind.value,
                fields["timestamp"],
                fields["vehicle_id"],
                fields["device_id"],
                fields["plate_number"],
                json.dumps(measurements),
                utc_now()
            ],
            fetch="one"
        )
        stored = self._to_stored(row)
        self.logger.debug(f"Stored {kind.value} reading {stored.id} for vehicle {stored.vehicle_id}")
        return stored

    def get_reading(self, kind: TelemetryKind, reading_id: int) -> Optional[StoredReading]:
        row = self._execute(
            f"SELECT {READING_COLUMNS} FROM readings r WHERE r.id = ? AND r.kind = ? AND NOT r.deleted",
            [reading_id, kind.value],
            fetch="one"
        )
        return self._to_stored(row) if row is not None else None

    def update_reading(self, kind: TelemetryKind, reading_id: int, fields: Dict[str, Any]) -> Optional[StoredReading]:
        current = self.get_reading(kind, reading_id)
        if current is None:
            return None

        measurements = {**current.fields, **{k: v for k, v in fields.items() if k not in SHARED_COLUMNS}}
        self._execute(
            """
            UPDATE readings
            SET timestamp = ?, plate_number = ?, fields = ?, updated_at = ?
            WHERE id = ?
            """,
            [
                fields.get("timestamp", current.timestamp),
                fields.get("plate_number", current.plate_number),
                json.dumps(measurements),
                utc_now(),
                reading_id
            ]
        )
        return self.get_reading(kind, reading_id)

    def delete_reading(self, kind: TelemetryKind, reading_id: int) -> bool:
        if self.get_reading(kind, reading_id) is None:
            return False
        self._execute(
            "UPDATE readings SET deleted = TRUE, updated_at = ? WHERE id = ?",
            [utc_now(), reading_id]
        )
        return True

    def query_readings(
        self,
        kind: TelemetryKind,
        reading_filter: ReadingFilter,
        window: TimeWindow,
        now: Optional[datetime] = None
    ) -> List[StoredReading]:
        conditions = ["r.kind = ?", "NOT r.deleted"]
        params: List[Any] = [kind.value]

        start, end = window.bounds(now)
        if start is not None:
            conditions.append("r.timestamp >= ?")
            params.append(start)
        if end is not None:
            conditions.append("r.timestamp <= ?")
            params.append(end)

        column_filters = (
            ("r.vehicle_id = ?", reading_filter.vehicle_id),
            ("r.device_id = ?", reading_filter.device_id),
            ("r.plate_number = ?", reading_filter.plate_number),
            ("v.fuel_type = ?", reading_filter.fuel_type),
            ("v.status = ?", reading_filter.vehicle_status.value if reading_filter.vehicle_status else None),
            ("TRY_CAST(json_extract_string(r.fields, '$.fuel_level') AS DOUBLE) >= ?", reading_filter.min_fuel_level),
            ("TRY_CAST(json_extract_string(r.fields, '$.fuel_level') AS DOUBLE) <= ?", reading_filter.max_fuel_level),
            ("TRY_CAST(json_extract_string(r.fields, '$.fuel_consumption') AS DOUBLE) >= ?", reading_filter.min_consumption),
            ("TRY_CAST(json_extract_string(r.fields, '$.fuel_consumption') AS DOUBLE) <= ?", reading_filter.max_consumption),
        )
        for condition, value in column_filters:
            if value is not None:
                conditions.append(condition)
                params.append(value)

        rows = self._execute(
            f"""
            SELECT {READING_COLUMNS}
            FROM readings r
            LEFT JOIN vehicles v ON v.id = r.vehicle_id
            WHERE {' AND '.join(conditions)}
            ORDER BY r.timestamp, r.id
            """,
            params,
            fetch="all"
        )
        return [self._to_stored(row) for row in rows]

    def previous_reading(self, kind: TelemetryKind, vehicle_id: int, before: datetime) -> Optional[StoredReading]:
        row = self._execute(
            f"""
            SELECT {READING_COLUMNS}
            FROM readings r
            WHERE r.kind = ? AND r.vehicle_id = ? AND r.timestamp < ? AND NOT r.deleted
            ORDER BY r.timestamp DESC, r.id DESC
            LIMIT 1
            """,
            [kind.value, vehicle_id, as_naive_utc(before)],
            fetch="one"
        )
        return self._to_stored(row) if row is not None else None

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def save_alerts(self, alerts: List[Alert]) -> None:
        if not alerts:
            return
        rows = [
            [
                a.vehicle_id, a.user_id, a.type.value, a.title, a.message, a.severity.value,
                a.parameter, a.trigger_value, a.trigger_threshold, a.is_read, a.created_at
            ]
            for a in alerts
        ]
        cursor = self._cursor()
        try:
            with self._lock:
                cursor.executemany(
                    """
                    INSERT INTO alerts (vehicle_id, user_id, type, title, message, severity,
                                        parameter, trigger_value, trigger_threshold, is_read, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows
                )
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to save {len(alerts)} alert(s): {e}") from e

    def recent_alerts(self, vehicle_id: int, since: datetime) -> List[Alert]:
        rows = self._execute(
            """
            SELECT type, title, message, severity, parameter, trigger_value, trigger_threshold,
                   vehicle_id, user_id, is_read, created_at
            FROM alerts
            WHERE vehicle_id = ? AND created_at >= ?
            ORDER BY created_at, id
            """,
            [vehicle_id, as_naive_utc(since)],
            fetch="all"
        )
        return [
            Alert(
                type=r[0], title=r[1], message=r[2], severity=r[3], parameter=r[4],
                trigger_value=r[5], trigger_threshold=r[6], vehicle_id=r[7],
                user_id=r[8], is_read=r[9], created_at=r[10]
            )
            for r in rows
        ]

    def list_alerts(self, vehicle_id: Optional[int] = None) -> List[Alert]:
        """All stored alerts, optionally for one vehicle, oldest first."""
        if vehicle_id is not None:
            return self.recent_alerts(vehicle_id, datetime.min)
        rows = self._execute("SELECT DISTINCT vehicle_id FROM alerts ORDER BY vehicle_id", fetch="all")
        return [alert for (vid,) in rows for alert in self.recent_alerts(vid, datetime.min)]
