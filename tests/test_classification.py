"""
Tests for the reading classifier.

Covers bucket boundaries, advisory numbers, the per-kind status flags and
the single-reading detail views (OBD diagnostics, GPS route analysis).
"""

from datetime import datetime, timedelta

import pytest

from fleet_telemetry.components.classification import (
    ReadingClassifier,
    classify_efficiency,
    classify_level,
    classify_rpm,
    classify_temperature,
    classify_throttle,
    format_elapsed,
    haversine_km,
    initial_bearing,
    severity_bucket
)
from fleet_telemetry.config import EngineConfig
from fleet_telemetry.models import (
    EfficiencyStatus,
    EmissionReading,
    FuelReading,
    GpsReading,
    LevelStatus,
    ObdReading,
    TelemetryKind
)

SHARED = {"vehicle_id": 1, "device_id": 1, "plate_number": "RAA123A"}


def fuel(level, consumption):
    return FuelReading(fuel_level=level, fuel_consumption=consumption, **SHARED)


def emission(**gases):
    values = {"co2_percentage": 1.0, "co_percentage": 0.1, "o2_percentage": 15.0, "hc_ppm": 50}
    values.update(gases)
    return EmissionReading(**values, **SHARED)


def obd(rpm=2500, temperature=90, faults=()):
    return ObdReading(rpm=rpm, engine_temperature=temperature, fault_codes=list(faults), **SHARED)


def gps(latitude, longitude, speed, timestamp=None):
    return GpsReading(
        latitude=latitude, longitude=longitude, speed=speed,
        timestamp=timestamp or datetime(2024, 3, 1, 8, 0, 0), **SHARED
    )


class TestBuckets:
    """Inclusive bucket boundaries."""

    @pytest.mark.parametrize("level,expected", [
        (0, LevelStatus.LOW),
        (10, LevelStatus.LOW),
        (10.1, LevelStatus.NORMAL),
        (79.9, LevelStatus.NORMAL),
        (80, LevelStatus.HIGH),
        (100, LevelStatus.HIGH),
    ])
    def test_fuel_level(self, sample_config, level, expected):
        assert classify_level(level, sample_config.threshold("fuel_level")) == expected

    @pytest.mark.parametrize("consumption,expected", [
        (8, EfficiencyStatus.EFFICIENT),
        (8.01, EfficiencyStatus.NORMAL),
        (15, EfficiencyStatus.POOR),
    ])
    def test_consumption(self, sample_config, consumption, expected):
        assert classify_efficiency(consumption, sample_config.threshold("fuel_consumption")) == expected

    def test_severity_bucket(self, sample_config):
        rule = sample_config.threshold("hc_ppm")

        assert severity_bucket(199, rule) == "NORMAL"
        assert severity_bucket(200, rule) == "HIGH"
        assert severity_bucket(400, rule) == "CRITICAL"
        assert severity_bucket(None, rule) == "NORMAL"


class TestReadingClassifier:
    """Test suite for ReadingClassifier."""

    def test_init(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        assert classifier.config == sample_config
        assert classifier.logger is not None

    def test_advisory_numbers(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        # 50% of a 50 L tank at 8 km/L
        assert classifier.estimated_range(50) == pytest.approx(200)
        # 10 L/100km at 1.5 per litre
        assert classifier.cost_estimate(10) == pytest.approx(0.15)
        assert classifier.fuel_efficiency(10) == pytest.approx(10)
        assert classifier.fuel_efficiency(0) == 0

    def test_classify_is_deterministic(self, sample_config):
        classifier = ReadingClassifier(sample_config)
        reading = fuel(42, 11)

        assert classifier.classify(reading) == classifier.classify(reading)

    def test_fuel_flags(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        result = classifier.classify(fuel(4, 22))

        assert result.level_status == "LOW"
        assert result.efficiency_status == "POOR"
        assert result.flags.kind == TelemetryKind.FUEL
        assert result.flags.low_fuel is True
        assert result.flags.high_consumption is True

    def test_fuel_level_at_critical_bound(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        result = classifier.classify(fuel(5, 10))

        assert result.level_status == "LOW"
        assert result.flags.low_fuel is True
        assert result.flags.high_consumption is False

    def test_fuel_flags_at_bounds(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        at_bounds = classifier.classify(fuel(10, 15)).flags
        inside = classifier.classify(fuel(10.5, 14.9)).flags

        assert (at_bounds.low_fuel, at_bounds.high_consumption) == (True, True)
        assert (inside.low_fuel, inside.high_consumption) == (False, False)

    def test_efficiency_rating(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        assert classifier.efficiency_rating(12) == "EXCELLENT"
        assert classifier.efficiency_rating(8) == "GOOD"
        assert classifier.efficiency_rating(6) == "AVERAGE"
        assert classifier.efficiency_rating(5) == "POOR"

    def test_emission_level_is_worst_gas(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        assert classifier.classify(emission()).emission_level == "NORMAL"
        assert classifier.classify(emission(hc_ppm=250)).emission_level == "HIGH"
        assert classifier.classify(emission(hc_ppm=250, co_percentage=0.5)).emission_level == "CRITICAL"

    def test_co2_is_critical_only(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        below = classifier.classify(emission(co2_percentage=3.99))
        at_limit = classifier.classify(emission(co2_percentage=4.0))

        assert below.flags.exceeds_emission is False
        assert at_limit.emission_level == "CRITICAL"
        assert at_limit.flags.exceeds_emission is True

    def test_optional_gases_ignored_when_absent(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        assert classifier.classify(emission(nox_ppm=None, pm25_level=None)).emission_level == "NORMAL"
        assert classifier.classify(emission(pm25_level=30)).emission_level == "HIGH"

    def test_gps_flags(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        speeding = classifier.classify(gps(-1.95, 30.06, 60)).flags
        stationary = classifier.classify(gps(-1.95, 30.06, 4.9)).flags
        at_stationary_limit = classifier.classify(gps(-1.95, 30.06, 5)).flags

        assert speeding.speeding is True
        assert stationary.stationary is True and stationary.speeding is False
        assert at_stationary_limit.stationary is False

    def test_obd_flags(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        healthy = classifier.classify(obd())
        hot = classifier.classify(obd(temperature=100))
        faulty = classifier.classify(obd(faults=["P0300"] * 6))
        revving = classifier.classify(obd(rpm=8000))

        assert healthy.performance_score == 100
        assert healthy.level_status == "EXCELLENT"
        assert hot.flags.high_temperature is True
        assert faulty.flags.critical_faults is True and faulty.flags.has_faults is True
        assert revving.flags.critical_rpm is True

    def test_performance_score(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        # idle rpm (-15), critical temperature (-30), one fault (-10)
        assert classifier.performance_score(obd(rpm=600, temperature=110, faults=["P0101"])) == 45
        # high rpm band (-20), critical faults (-40), warning temperature (-15)
        assert classifier.performance_score(obd(rpm=7500, temperature=105, faults=["P1"] * 6)) == 25

    def test_efficiency_analysis(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        analysis = classifier.efficiency_analysis(fuel(50, 16))

        assert analysis.current_efficiency == pytest.approx(6.25)
        assert analysis.potential_savings == pytest.approx(12.0)
        assert len(analysis.improvement_suggestions) == 4
        assert analysis.annual_cost_estimate == pytest.approx(analysis.monthly_cost_estimate * 12)

    def test_thresholds_come_from_config(self):
        config = EngineConfig(thresholds={"fuel_level": {"warning": 20}})
        classifier = ReadingClassifier(config)

        assert classifier.classify(fuel(15, 10)).flags.low_fuel is True


class TestObdBuckets:
    """RPM, temperature and throttle bands."""

    @pytest.mark.parametrize("rpm,expected", [
        (0, "IDLE"),
        (799, "IDLE"),
        (800, "NORMAL"),
        (6999, "NORMAL"),
        (7000, "HIGH"),
        (8000, "REDLINE"),
    ])
    def test_rpm(self, sample_config, rpm, expected):
        assert classify_rpm(rpm, sample_config.obd, sample_config.threshold("rpm")) == expected

    @pytest.mark.parametrize("temperature,expected", [
        (90, "NORMAL"),
        (100, "HIGH"),
        (110, "OVERHEATING"),
    ])
    def test_temperature(self, sample_config, temperature, expected):
        assert classify_temperature(temperature, sample_config.threshold("engine_temperature")) == expected

    def test_throttle(self, sample_config):
        settings = sample_config.obd

        assert classify_throttle(None, settings) is None
        assert classify_throttle(20, settings) == "CLOSED"
        assert classify_throttle(50, settings) == "PARTIAL"
        assert classify_throttle(95, settings) == "FULL"


class TestObdDiagnostics:
    """Engine health and the single-reading diagnostics block."""

    def test_engine_health(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        assert classifier.engine_health(obd()) == "HEALTHY"
        assert classifier.engine_health(obd(faults=["P0420"])) == "WARNING"
        assert classifier.engine_health(obd(temperature=100)) == "WARNING"
        assert classifier.engine_health(obd(temperature=110)) == "CRITICAL"
        assert classifier.engine_health(obd(rpm=8000)) == "CRITICAL"
        assert classifier.engine_health(obd(faults=["P0300"] * 6)) == "CRITICAL"

    def test_healthy_reading(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        diagnostics = classifier.obd_diagnostics(obd())

        assert diagnostics.engine_health == "HEALTHY"
        assert diagnostics.temperature_status == "NORMAL"
        assert diagnostics.rpm_status == "NORMAL"
        assert diagnostics.throttle_status is None
        assert diagnostics.has_active_faults is False
        assert diagnostics.performance_score == 100
        assert diagnostics.health_rating == "EXCELLENT"
        assert diagnostics.issues == []
        assert diagnostics.maintenance_urgency == "LOW"

    def test_issues_and_recommendations(self, sample_config):
        classifier = ReadingClassifier(sample_config)
        reading = ObdReading(
            rpm=7500, engine_temperature=105, throttle_position=97,
            fault_codes=["P0420", "P0171"], **SHARED
        )

        diagnostics = classifier.obd_diagnostics(reading)

        assert diagnostics.issues == [
            "High engine temperature detected",
            "Excessive RPM detected",
            "2 active fault codes",
        ]
        assert diagnostics.recommendations == [
            "Check cooling system and coolant levels",
            "Avoid over-revving the engine",
            "Schedule diagnostic scan and repair",
        ]
        assert diagnostics.engine_health == "WARNING"
        assert diagnostics.maintenance_urgency == "HIGH"
        assert diagnostics.rpm_status == "HIGH"
        assert diagnostics.throttle_status == "FULL"
        assert diagnostics.fault_codes_count == 2
        # high rpm band (-20), warning temperature (-15), faults (-10)
        assert diagnostics.performance_score == 55
        assert diagnostics.health_rating == "FAIR"

    def test_critical_urgency(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        diagnostics = classifier.obd_diagnostics(obd(temperature=115))

        assert diagnostics.engine_health == "CRITICAL"
        assert diagnostics.temperature_status == "OVERHEATING"
        assert diagnostics.maintenance_urgency == "CRITICAL"

    def test_camel_case_dump(self, sample_config):
        dumped = ReadingClassifier(sample_config).obd_diagnostics(obd()).model_dump(by_alias=True)

        assert dumped["engineHealth"] == "HEALTHY"
        assert dumped["maintenanceUrgency"] == "LOW"


class TestRouteAnalysis:
    """Movement between consecutive GPS fixes."""

    def test_haversine(self):
        # One degree of longitude on the equator
        assert haversine_km(0, 0, 0, 1) == pytest.approx(111.19, abs=0.01)
        assert haversine_km(-1.95, 30.06, -1.95, 30.06) == 0

    @pytest.mark.parametrize("destination,expected", [
        ((1, 0), 0),
        ((0, 1), 90),
        ((-1, 0), 180),
        ((0, -1), 270),
    ])
    def test_bearing(self, destination, expected):
        assert initial_bearing(0, 0, *destination) == pytest.approx(expected)

    def test_format_elapsed(self):
        assert format_elapsed(timedelta(minutes=12, seconds=40)) == "12m"
        assert format_elapsed(timedelta(hours=1, minutes=5)) == "1h 5m"
        assert format_elapsed(timedelta(0)) == "0m"

    def test_against_previous_fix(self, sample_config):
        classifier = ReadingClassifier(sample_config)
        previous = gps(0, 0, 40)
        current = gps(0, 1, 55, timestamp=datetime(2024, 3, 1, 9, 5, 0))

        route = classifier.route_analysis(current, previous)

        assert route.has_previous is True
        assert route.distance_from_previous == pytest.approx(111.19, abs=0.01)
        assert route.time_from_previous == "1h 5m"
        assert route.bearing == pytest.approx(90)
        assert route.speed_change == pytest.approx(15)
        assert route.is_stationary is False

    def test_without_previous_fix(self, sample_config):
        classifier = ReadingClassifier(sample_config)

        route = classifier.route_analysis(gps(-1.95, 30.06, 3), None)

        assert route.has_previous is False
        assert route.distance_from_previous == 0
        assert route.time_from_previous == "0m"
        assert route.is_stationary is True
