"""
Input validation component for the fleet telemetry engine.

Checks incoming readings, update payloads and query parameters before they
reach persistence or any computation. Every failure is reported as a
``ValidationError``; nothing is partially applied.
"""

import re
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

import numpy as np
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fleet_telemetry.components.base import EngineComponent
from fleet_telemetry.config import EngineConfig
from fleet_telemetry.models import (
    READING_MODELS,
    AnyReading,
    ReadingFilter,
    TelemetryKind,
    TimeWindow
)
from fleet_telemetry.utils import get_logger, ValidationError

REQUIRED_FIELDS = ("vehicle_id", "device_id", "plate_number")

# Payload keys accepted as synonyms of model field names
KEY_ALIASES = {
    "tracking_device_id": "device_id",
    "co2": "co2_percentage",
    "co": "co_percentage",
    "o2": "o2_percentage",
    "hc": "hc_ppm",
    "nox": "nox_ppm",
    "pm25": "pm25_level",
}

IMMUTABLE_FIELDS = {"vehicle_id", "device_id"}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_snake(key: str) -> str:
    """fuelLevel -> fuel_level, hcPPM -> hc_ppm."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def normalise_keys(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Accept camelCase or snake_case payload keys."""
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Expected an object of named fields, got {type(payload).__name__}")
    normalised = {}
    for key, value in payload.items():
        if not isinstance(key, str):
            raise ValidationError(f"Field names must be strings, got {key!r}")
        snake = to_snake(key)
        normalised[KEY_ALIASES.get(snake, snake)] = value
    return normalised


def _format_errors(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "payload"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class ReadingValidator(EngineComponent):
    """Validates raw payloads into typed readings, filters and windows."""

    def __init__(self, config: EngineConfig):
        """
        Initialize validator.

        Args:
            config: Engine configuration
        """
        super().__init__(config)
        self.logger = get_logger(__name__)

        self.stats = {
            "readings_validated": 0,
            "readings_rejected": 0,
            "queries_validated": 0
        }

    @staticmethod
    def parse_kind(kind: Union[str, TelemetryKind]) -> TelemetryKind:
        try:
            return TelemetryKind(kind.upper() if isinstance(kind, str) else kind)
        except ValueError as e:
            allowed = ", ".join(k.value for k in TelemetryKind)
            raise ValidationError(f"Unknown telemetry kind '{kind}'. Must be one of {allowed}") from e

    def validate_reading(self, kind: Union[str, TelemetryKind], payload: Dict[str, Any]) -> AnyReading:
        """
        Validate a raw reading payload.

        Args:
            kind: Telemetry kind of the payload
            payload: Raw fields (camelCase or snake_case keys)

        Returns:
            The typed, range-checked reading

        Raises:
            ValidationError: On a missing field, bad ID or out-of-range value
        """
        try:
            telemetry_kind = self.parse_kind(kind)
            model = READING_MODELS[telemetry_kind]
            fields = normalise_keys(payload or {})

            required = REQUIRED_FIELDS + tuple(
                name for name, info in model.model_fields.items()
                if info.is_required() and name not in REQUIRED_FIELDS
            )
            missing = [name for name in required if fields.get(name) is None]
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")

            self._check_finite(fields, model)

            try:
                reading = model(**fields)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid {telemetry_kind.value.lower()} reading: {_format_errors(e)}") from e

            self.stats["readings_validated"] += 1
            return reading

        except ValidationError as e:
            self.stats["readings_rejected"] += 1
            self.logger.warning(f"Rejected reading: {e}")
            raise

    def validate_update(self, kind: Union[str, TelemetryKind], changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Check an update payload before it is merged into a stored reading.

        Only measurements, plate number and timestamp may change; the owning
        vehicle and device are fixed once a reading is stored.
        """
        telemetry_kind = self.parse_kind(kind)
        model = READING_MODELS[telemetry_kind]
        fields = normalise_keys(changes or {})

        if not fields:
            raise ValidationError("No fields provided for update")

        locked = sorted(IMMUTABLE_FIELDS.intersection(fields))
        if locked:
            raise ValidationError(f"Fields cannot be updated: {', '.join(locked)}")

        unknown = sorted(set(fields) - set(model.model_fields))
        if unknown:
            raise ValidationError(f"Unknown fields for {telemetry_kind.value.lower()} reading: {', '.join(unknown)}")

        self._check_finite(fields, model)
        return fields

    def validate_query(
        self,
        reading_filter: Optional[Union[ReadingFilter, Dict[str, Any]]] = None,
        window: Optional[Union[TimeWindow, Dict[str, Any]]] = None
    ) -> Tuple[ReadingFilter, TimeWindow]:
        """Validate loosely-typed query parameters into a typed filter and window."""
        parsed_filter = self._coerce(ReadingFilter, reading_filter, "filter")
        parsed_window = self._coerce(TimeWindow, window, "window")
        self.stats["queries_validated"] += 1
        return parsed_filter, parsed_window

    @staticmethod
    def validate_id(value: Any, name: str) -> int:
        """Positive integer IDs only."""
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValidationError(f"Invalid {name}. Must be a positive integer.")
        try:
            number = int(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid {name}. Must be a positive integer.") from e
        if number <= 0:
            raise ValidationError(f"Invalid {name}. Must be a positive integer.")
        return number

    def _coerce(self, model: Type[BaseModel], value: Any, name: str):
        if value is None:
            return model()
        if isinstance(value, model):
            return value
        try:
            return model(**normalise_keys(value))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {name}: {_format_errors(e)}") from e

    @staticmethod
    def _check_finite(fields: Dict[str, Any], model: Type[BaseModel]) -> None:
        """NaN and infinity are rejected for every float field."""
        for name in model.model_fields:
            value = fields.get(name)
            if isinstance(value, float) and not np.isfinite(value):
                raise ValidationError(f"{name} must be a finite number")
