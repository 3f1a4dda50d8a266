"""
The ``sensor_data`` table stores one row per ESP8266 upload with:

  - id            : int    row id assigned by the store (ordering key)
  - created_at    : str    ISO-8601 insert time (optional on older tables)
  - weight_g      : float  load cell reading in grams
  - temperature_c : float  temperature in °C
  - gyro_x/y/z    : float  angular rate in deg/s
  - ir_value      : int    raw infrared level (finger presence)

``SensorReading.from_record()`` accepts those rows as delivered by either the
REST query or the realtime insert payload. Values arrive as numbers, numeric
strings or nulls depending on the column type, so every field is coerced and
anything unusable falls back to zero instead of raising.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)

FLOAT_FIELDS = ("weight_g", "temperature_c", "gyro_x", "gyro_y", "gyro_z")
INT_FIELDS = ("ir_value",)

# Fractional seconds followed by an optional UTC offset at the end of the string.
_FRACTION_RE = re.compile(r"\.(\d+)(?=(?:[+-]\d{2}(?::?\d{2})?)?$)")


class MalformedRecordError(ValueError):
    """Raised when an insert payload is not a record at all."""


def coerce_float(value: Any) -> float:
    """Return ``value`` as a finite float, or ``0.0`` when it is not numeric."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(result):
        return 0.0
    return result


def coerce_int(value: Any) -> int:
    """Return ``value`` truncated to an int, or ``0`` when it is not numeric."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        try:
            return int(value)
        except ValueError:
            pass
    # Numeric strings such as "123.7" truncate like parseInt would.
    return int(coerce_float(value))


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Postgres trims trailing zeros from the fraction; fromisoformat on 3.10
    # only takes 3 or 6 digits.
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable created_at value: %r", value)
        return None


@dataclass(frozen=True)
class SensorReading:
    id: int
    weight_g: float = 0.0
    temperature_c: float = 0.0
    gyro_x: float = 0.0
    gyro_y: float = 0.0
    gyro_z: float = 0.0
    ir_value: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "SensorReading":
        """
        Build a reading from a raw row.

        Missing, null or non-numeric fields become ``0`` / ``0.0``. Only a
        payload that is not a mapping raises :class:`MalformedRecordError`.
        """
        if not isinstance(record, Mapping):
            raise MalformedRecordError(
                f"Expected a mapping for a sensor row, got {type(record).__name__}"
            )
        return cls(
            id=coerce_int(record.get("id")),
            weight_g=coerce_float(record.get("weight_g")),
            temperature_c=coerce_float(record.get("temperature_c")),
            gyro_x=coerce_float(record.get("gyro_x")),
            gyro_y=coerce_float(record.get("gyro_y")),
            gyro_z=coerce_float(record.get("gyro_z")),
            ir_value=coerce_int(record.get("ir_value")),
            created_at=parse_timestamp(record.get("created_at")),
        )

    def to_record(self) -> dict[str, Any]:
        """Return the row as the store would deliver it."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "weight_g": self.weight_g,
            "temperature_c": self.temperature_c,
            "gyro_x": self.gyro_x,
            "gyro_y": self.gyro_y,
            "gyro_z": self.gyro_z,
            "ir_value": self.ir_value,
        }


__all__ = [
    "FLOAT_FIELDS",
    "INT_FIELDS",
    "MalformedRecordError",
    "SensorReading",
    "coerce_float",
    "coerce_int",
    "parse_timestamp",
]
