from __future__ import annotations

import random

import pytest

from sensoguard.core.models import SensorReading
from sensoguard.remote.memory import InMemoryTransport, SyntheticFeeder, synthetic_row
from sensoguard.remote.transport import Subscription, TransportError


def test_query_orders_and_limits() -> None:
    transport = InMemoryTransport({"sensor_data": [{"id": i} for i in (2, 5, 1, 4, 3)]})

    assert [r["id"] for r in transport.query("sensor_data", limit=3)] == [5, 4, 3]
    assert [r["id"] for r in transport.query("sensor_data", descending=False, limit=2)] == [1, 2]
    assert transport.query("other_table") == []


def test_insert_assigns_ids_and_notifies() -> None:
    transport = InMemoryTransport()
    received: list[dict] = []
    subscription = transport.subscribe("sensor_data", received.append)

    first = transport.insert("sensor_data", {"weight_g": 1.0})
    second = transport.insert("sensor_data", {"weight_g": 2.0})

    assert (first["id"], second["id"]) == (1, 2)
    assert [row["id"] for row in received] == [1, 2]
    assert received[0]["created_at"]

    subscription.cancel()
    transport.insert("sensor_data", {"weight_g": 3.0})
    assert len(received) == 2
    assert transport.subscriber_count("sensor_data") == 0


def test_failure_hooks() -> None:
    transport = InMemoryTransport()
    transport.fail_next_query()
    with pytest.raises(TransportError):
        transport.query("sensor_data")
    assert transport.query("sensor_data") == []

    transport.fail_subscribe = True
    with pytest.raises(TransportError):
        transport.subscribe("sensor_data", lambda row: None)


def test_subscription_release_runs_once() -> None:
    calls: list[int] = []
    subscription = Subscription(lambda: calls.append(1))

    subscription.cancel()
    subscription.cancel()

    assert calls == [1]
    assert subscription.cancelled


def test_synthetic_rows_parse_cleanly() -> None:
    rng = random.Random(7)
    for step in range(20):
        reading = SensorReading.from_record({"id": step + 1, **synthetic_row(step, rng)})
        assert reading.weight_g > 0.0
        assert reading.ir_value > 0


def test_feeder_seed_rows() -> None:
    transport = InMemoryTransport()
    feeder = SyntheticFeeder(transport, rate_hz=1.0, seed=3)
    feeder.seed_rows(5)

    assert [r["id"] for r in transport.query("sensor_data")] == [5, 4, 3, 2, 1]
