"""
Tests for the threshold catalog and engine configuration.

Covers rule lookup, inclusive bound semantics, overrides layered over the
defaults and loading configuration from YAML.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from fleet_telemetry.config import EngineConfig, ThresholdCatalog, ThresholdRule, format_value
from fleet_telemetry.models import AlertType
from fleet_telemetry.utils.exceptions import ConfigurationError, InternalError, ThresholdLookupError


class TestThresholdRule:
    """Test suite for ThresholdRule."""

    def test_high_direction_is_inclusive(self):
        rule = ThresholdRule(parameter="fuel_consumption", label="Consumption", warning=15, critical=20)

        assert rule.breaches(15, rule.warning) is True
        assert rule.breaches(14.99, rule.warning) is False
        assert rule.breaches(20, rule.critical) is True

    def test_low_direction_is_inclusive(self):
        rule = ThresholdRule(parameter="fuel_level", label="Fuel level", direction="low", warning=10, critical=5)

        assert rule.breaches(10, rule.warning) is True
        assert rule.breaches(10.01, rule.warning) is False
        assert rule.breaches(5, rule.critical) is True

    def test_missing_bound_never_breaches(self):
        rule = ThresholdRule(parameter="co2_percentage", label="CO2", critical=4.0)

        assert rule.breaches(1000, rule.warning) is False

    def test_critical_must_not_be_milder_than_warning(self):
        with pytest.raises(PydanticValidationError):
            ThresholdRule(parameter="fuel_consumption", label="Consumption", warning=20, critical=15)

        with pytest.raises(PydanticValidationError):
            ThresholdRule(parameter="fuel_level", label="Fuel level", direction="low", warning=5, critical=10)

    def test_describe(self):
        level = ThresholdRule(parameter="fuel_level", label="Fuel level", unit="%", direction="low", critical=5)
        consumption = ThresholdRule(parameter="fuel_consumption", label="Consumption", unit=" L/100km", critical=20)

        assert level.describe(5) == "Fuel level <= 5%"
        assert consumption.describe(20.0) == "Consumption >= 20 L/100km"

    def test_format_value(self):
        assert format_value(5.0) == "5"
        assert format_value(4.5) == "4.5"


class TestThresholdCatalog:
    """Test suite for ThresholdCatalog."""

    def test_defaults(self):
        catalog = ThresholdCatalog.defaults()

        consumption = catalog.get("fuel_consumption")
        assert (consumption.warning, consumption.critical) == (15, 20)
        assert (consumption.min_value, consumption.max_value) == (8, 15)

        level = catalog.get("fuel_level")
        assert (level.warning, level.critical) == (10, 5)
        assert level.direction == "low"

        assert catalog.get("co2_percentage").critical == 4.0
        assert catalog.get("co2_percentage").warning is None
        assert catalog.get("speed").critical == 60
        assert catalog.get("device_offline_minutes").alert_type == AlertType.DEVICE_OFFLINE_ALERT

    def test_unconfigured_parameter_raises(self):
        catalog = ThresholdCatalog.defaults()

        with pytest.raises(ThresholdLookupError, match="tyre_pressure"):
            catalog.get("tyre_pressure")

        # Surfaced to callers as an internal error
        assert issubclass(ThresholdLookupError, InternalError)

    def test_duplicate_parameter_rejected(self):
        rule = ThresholdRule(parameter="speed", label="Speed", critical=60)

        with pytest.raises(ConfigurationError, match="speed"):
            ThresholdCatalog(rules=(rule, rule))

    def test_with_overrides_returns_new_catalog(self):
        catalog = ThresholdCatalog.defaults()

        overridden = catalog.with_overrides({"speed": {"critical": 80}})

        assert overridden.get("speed").critical == 80
        assert overridden.get("speed").label == "Speed"
        assert catalog.get("speed").critical == 60

    def test_has(self):
        catalog = ThresholdCatalog.defaults()

        assert catalog.has("rpm") is True
        assert catalog.has("tyre_pressure") is False

    def test_as_table(self):
        table = ThresholdCatalog.defaults().as_table("fuel_level")

        assert table == {"fuel_level": {"warning": 10, "critical": 5, "min": 10, "max": 80}}


class TestEngineConfig:
    """Test suite for EngineConfig."""

    def test_defaults_without_file(self):
        config = EngineConfig()

        assert config.fuel_economy.tank_capacity == 50
        assert config.alerts.cooldown_minutes == 0
        assert config.threshold("fuel_consumption").critical == 20
        assert len(config.efficiency_tips) == 4

    def test_threshold_mapping_merges_over_defaults(self):
        config = EngineConfig(thresholds={"fuel_consumption": {"warning": 12}})

        rule = config.threshold("fuel_consumption")
        assert rule.warning == 12
        assert rule.critical == 20
        assert config.threshold("fuel_level").critical == 5

    def test_unknown_section_rejected(self):
        with pytest.raises(PydanticValidationError):
            EngineConfig(pipeline={"name": "x"})

    def test_from_yaml(self, temp_dir):
        config_file = temp_dir / "engine.yaml"
        config_file.write_text(
            "thresholds:\n"
            "  speed:\n"
            "    critical: 90\n"
            "alerts:\n"
            "  cooldown_minutes: 15\n"
        )

        config = EngineConfig.from_yaml(config_file)

        assert config.threshold("speed").critical == 90
        assert config.threshold("speed").min_value == 5
        assert config.alerts.cooldown_minutes == 15

    def test_from_yaml_empty_file(self, temp_dir):
        config_file = temp_dir / "empty.yaml"
        config_file.write_text("")

        config = EngineConfig.from_yaml(config_file)

        assert config.threshold("fuel_level").warning == 10

    def test_from_yaml_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            EngineConfig.from_yaml(temp_dir / "missing.yaml")

    def test_bundled_default_yaml_matches_builtin_defaults(self):
        from fleet_telemetry.main import DEFAULT_CONFIG_PATH

        config = EngineConfig.from_yaml(DEFAULT_CONFIG_PATH)

        assert config.thresholds == EngineConfig().thresholds
        assert config.obd == EngineConfig().obd
        assert config.logging == EngineConfig().logging
