"""Pure transforms from a buffer snapshot into chart and table shapes."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np

from .models import FLOAT_FIELDS, SensorReading

DEFAULT_CHART_FIELDS = (*FLOAT_FIELDS, "ir_value")
DEFAULT_TABLE_ROWS = 10

TABLE_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("id", "ID"),
    ("created_at", "Time"),
    ("weight_g", "Weight (g)"),
    ("temperature_c", "Temp (°C)"),
    ("gyro_x", "Gyro X"),
    ("gyro_y", "Gyro Y"),
    ("gyro_z", "Gyro Z"),
    ("ir_value", "IR Value"),
)


@dataclass(frozen=True)
class ChartLine:
    field: str
    label: str
    color: str


@dataclass(frozen=True)
class ChartPanel:
    key: str
    title: str
    y_label: str
    lines: Tuple[ChartLine, ...]

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(line.field for line in self.lines)


CHART_PANELS: Tuple[ChartPanel, ...] = (
    ChartPanel(
        "weight",
        "Weight Over Time",
        "Weight (g)",
        (ChartLine("weight_g", "Weight", "#3B82F6"),),
    ),
    ChartPanel(
        "temperature",
        "Temperature Over Time",
        "Temp (°C)",
        (ChartLine("temperature_c", "Temperature", "#EF4444"),),
    ),
    ChartPanel(
        "gyro",
        "Gyroscope Over Time",
        "Gyro (°/s)",
        (
            ChartLine("gyro_x", "Gyro X", "#10B981"),
            ChartLine("gyro_y", "Gyro Y", "#F59E0B"),
            ChartLine("gyro_z", "Gyro Z", "#FF7300"),
        ),
    ),
    ChartPanel(
        "ir",
        "IR Value Over Time (Finger Presence)",
        "IR Raw Value",
        (ChartLine("ir_value", "IR Value", "#E882D8"),),
    ),
)


def _check_fields(fields: Sequence[str]) -> None:
    unknown = [name for name in fields if name not in DEFAULT_CHART_FIELDS]
    if unknown:
        raise ValueError(f"Unknown chart field(s): {', '.join(unknown)}")


def chart_series(
    snapshot: Sequence[SensorReading],
    fields: Sequence[str] = DEFAULT_CHART_FIELDS,
) -> List[Dict[str, Any]]:
    """Return ``[{"x": id, <field>: value, ...}, ...]`` in snapshot order."""
    _check_fields(fields)
    points = []
    for reading in snapshot:
        point: Dict[str, Any] = {"x": reading.id}
        for name in fields:
            point[name] = getattr(reading, name)
        points.append(point)
    return points


def chart_arrays(
    snapshot: Sequence[SensorReading],
    fields: Sequence[str] = DEFAULT_CHART_FIELDS,
) -> Tuple[np.ndarray, Dict[str, np.ndarray]]:
    """
    Return ``(x, {field: y})`` NumPy arrays for plotting backends.

    ``x`` holds the row ids as ``int64``; every ``y`` is ``float64``.
    """
    _check_fields(fields)
    count = len(snapshot)
    x = np.fromiter((r.id for r in snapshot), dtype=np.int64, count=count)
    ys = {
        name: np.fromiter((getattr(r, name) for r in snapshot), dtype=np.float64, count=count)
        for name in fields
    }
    return x, ys


def format_cell(field: str, reading: SensorReading) -> str:
    value = getattr(reading, field)
    if field == "created_at":
        if value is None:
            return ""
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.strftime("%H:%M:%S")
    if field in ("id", "ir_value"):
        return str(int(value))
    return f"{float(value):.1f}"


def table_rows(
    snapshot: Sequence[SensorReading],
    limit: int = DEFAULT_TABLE_ROWS,
) -> List[Dict[str, str]]:
    """Return the newest ``limit`` readings, newest first, as display strings."""
    if limit <= 0:
        return []
    newest = list(snapshot[-limit:])
    newest.reverse()
    return [
        {field: format_cell(field, reading) for field, _ in TABLE_COLUMNS}
        for reading in newest
    ]


__all__ = [
    "CHART_PANELS",
    "ChartLine",
    "ChartPanel",
    "DEFAULT_CHART_FIELDS",
    "DEFAULT_TABLE_ROWS",
    "TABLE_COLUMNS",
    "chart_arrays",
    "chart_series",
    "format_cell",
    "table_rows",
]
