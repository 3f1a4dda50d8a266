from __future__ import annotations

import time
from datetime import datetime, timezone

import numpy as np
import pytest

from sensoguard.core.models import SensorReading
from sensoguard.core.projection import (
    CHART_PANELS,
    DEFAULT_CHART_FIELDS,
    TABLE_COLUMNS,
    chart_arrays,
    chart_series,
    table_rows,
)


def _snapshot(count: int) -> tuple[SensorReading, ...]:
    return tuple(
        SensorReading(
            id=i,
            weight_g=i + 0.25,
            temperature_c=20.0 + i / 10.0,
            gyro_x=-i * 1.05,
            gyro_y=0.0,
            gyro_z=i * 0.5,
            ir_value=1000 + i,
            created_at=datetime(2024, 5, 1, 12, 0, i % 60),
        )
        for i in range(1, count + 1)
    )


def test_chart_series_selects_fields_in_order() -> None:
    points = chart_series(_snapshot(3), fields=("weight_g", "ir_value"))

    assert points == [
        {"x": 1, "weight_g": 1.25, "ir_value": 1001},
        {"x": 2, "weight_g": 2.25, "ir_value": 1002},
        {"x": 3, "weight_g": 3.25, "ir_value": 1003},
    ]


def test_chart_series_rejects_unknown_field() -> None:
    with pytest.raises(ValueError):
        chart_series(_snapshot(1), fields=("humidity",))


def test_chart_arrays_dtypes_and_values() -> None:
    x, ys = chart_arrays(_snapshot(4))

    assert x.dtype == np.int64
    np.testing.assert_array_equal(x, np.array([1, 2, 3, 4]))
    assert set(ys) == set(DEFAULT_CHART_FIELDS)
    assert ys["ir_value"].dtype == np.float64
    np.testing.assert_allclose(ys["gyro_z"], [0.5, 1.0, 1.5, 2.0])


def test_chart_arrays_empty_snapshot() -> None:
    x, ys = chart_arrays(())
    assert x.size == 0
    assert all(values.size == 0 for values in ys.values())


def test_table_rows_newest_first_and_formatted() -> None:
    rows = table_rows(_snapshot(15), limit=10)

    assert len(rows) == 10
    assert [row["id"] for row in rows] == [str(i) for i in range(15, 5, -1)]
    newest = rows[0]
    assert newest["weight_g"] == "15.2"
    assert newest["temperature_c"] == "21.5"
    assert newest["gyro_x"] == "-15.8"
    assert newest["gyro_y"] == "0.0"
    assert newest["ir_value"] == "1015"
    assert newest["created_at"] == "12:00:15"
    assert list(newest) == [field for field, _ in TABLE_COLUMNS]


def test_table_rows_zero_values_and_short_snapshot() -> None:
    rows = table_rows((SensorReading(id=1),), limit=10)

    assert rows == [
        {
            "id": "1",
            "created_at": "",
            "weight_g": "0.0",
            "temperature_c": "0.0",
            "gyro_x": "0.0",
            "gyro_y": "0.0",
            "gyro_z": "0.0",
            "ir_value": "0",
        }
    ]
    assert table_rows(_snapshot(3), limit=0) == []


@pytest.fixture
def local_tz_plus_two(monkeypatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    # POSIX sign convention: TST-2 is two hours ahead of UTC.
    monkeypatch.setenv("TZ", "TST-2")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_aware_created_at_is_shown_in_local_time(local_tz_plus_two) -> None:
    reading = SensorReading(id=1, created_at=datetime(2024, 5, 1, 10, 15, 30, tzinfo=timezone.utc))
    naive = SensorReading(id=2, created_at=datetime(2024, 5, 1, 10, 15, 30))

    rows = table_rows((reading, naive), limit=10)

    assert rows[1]["created_at"] == "12:15:30"
    assert rows[0]["created_at"] == "10:15:30"


def test_chart_panels_cover_every_chart_field() -> None:
    fields = [field for panel in CHART_PANELS for field in panel.fields]
    assert sorted(fields) == sorted(DEFAULT_CHART_FIELDS)
