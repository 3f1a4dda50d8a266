from __future__ import annotations

import random
import time
from typing import Any, Callable, Optional

import pytest

from sensoguard.core.synchronizer import SeriesSynchronizer, SyncOptions, SyncState
from sensoguard.remote.memory import InMemoryTransport
from sensoguard.remote.transport import Subscription, TransportError


def _row(row_id: int, **fields: Any) -> dict:
    row = {"id": row_id, "weight_g": float(row_id), "ir_value": row_id * 10}
    row.update(fields)
    return row


class StubTransport:
    """Transport double that keeps every callback it was given, even after unsubscribe."""

    def __init__(self, rows=None) -> None:
        self.rows = list(rows or [])
        self.query_error: Optional[BaseException] = None
        self.subscribe_error: Optional[BaseException] = None
        self.during_query: Optional[Callable[[], None]] = None
        self.query_calls: list[tuple] = []
        self.callbacks: list[tuple] = []
        self.recovered_callbacks: list[Callable[[], None]] = []
        self.unsubscribed = 0

    def query(self, table, order_column="id", descending=True, limit=100):
        self.query_calls.append((table, order_column, descending, limit))
        if self.during_query is not None:
            hook, self.during_query = self.during_query, None
            hook()
        if self.query_error is not None:
            raise self.query_error
        rows = sorted(self.rows, key=lambda r: r[order_column], reverse=descending)
        return rows[:limit]

    def subscribe(self, table, on_insert, on_error=None, on_recovered=None):
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.callbacks.append((on_insert, on_error))
        if on_recovered is not None:
            self.recovered_callbacks.append(on_recovered)

        def _release() -> None:
            self.unsubscribed += 1

        return Subscription(_release)

    def fire(self, row) -> None:
        for on_insert, _ in list(self.callbacks):
            on_insert(row)

    def fail(self, exc: BaseException) -> None:
        for _, on_error in list(self.callbacks):
            if on_error is not None:
                on_error(exc)

    def recover(self) -> None:
        for on_recovered in list(self.recovered_callbacks):
            on_recovered()


def _ids(sync: SeriesSynchronizer) -> list[int]:
    return [r.id for r in sync.snapshot()]


def test_initialize_installs_latest_rows_ascending() -> None:
    transport = StubTransport([_row(i) for i in (3, 1, 2)])
    sync = SeriesSynchronizer(transport, SyncOptions(limit=100))

    assert sync.state is SyncState.IDLE
    assert sync.initialize() is True

    assert sync.state is SyncState.LIVE
    assert _ids(sync) == [1, 2, 3]
    assert transport.query_calls == [("sensor_data", "id", True, 100)]
    assert len(transport.callbacks) == 1


def test_initialize_respects_limit() -> None:
    transport = StubTransport([_row(i) for i in range(1, 151)])
    sync = SeriesSynchronizer(transport, SyncOptions(limit=100))
    sync.initialize()

    assert _ids(sync) == list(range(51, 151))


def test_insert_after_full_load_evicts_oldest() -> None:
    transport = StubTransport([_row(i) for i in range(1, 51)])
    sync = SeriesSynchronizer(transport, SyncOptions(limit=50))
    sync.initialize()

    transport.fire(_row(51))

    assert _ids(sync) == list(range(2, 52))


def test_duplicate_insert_is_idempotent() -> None:
    transport = StubTransport([_row(i) for i in range(1, 6)])
    sync = SeriesSynchronizer(transport, SyncOptions(limit=10))
    sync.initialize()
    before = sync.snapshot()
    version = sync.version

    assert sync.on_insert_event(_row(5, weight_g=999.0)) is False

    assert sync.snapshot() == before
    assert sync.version == version


def test_random_insert_sequence_stays_bounded_and_unique() -> None:
    rng = random.Random(1234)
    transport = StubTransport([_row(i) for i in range(1, 21)])
    sync = SeriesSynchronizer(transport, SyncOptions(limit=25))
    sync.initialize()

    next_id = 21
    for _ in range(500):
        if rng.random() < 0.3:
            row_id = rng.randint(1, next_id)
        else:
            row_id = next_id
            next_id += 1
        transport.fire(_row(row_id))
        ids = _ids(sync)
        assert len(ids) <= 25
        assert len(ids) == len(set(ids))
        assert ids == sorted(ids)


def test_out_of_order_insert_is_dropped() -> None:
    transport = StubTransport([_row(10), _row(20)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()

    assert sync.on_insert_event(_row(15)) is False
    assert _ids(sync) == [10, 20]


def test_insert_during_load_is_replayed_once() -> None:
    transport = StubTransport([_row(i) for i in range(1, 101)])
    sync = SeriesSynchronizer(transport, SyncOptions(limit=100))

    def _insert_while_querying() -> None:
        assert sync.state is SyncState.LOADING
        transport.fire(_row(101))
        transport.fire(_row(100))

    transport.during_query = _insert_while_querying
    sync.initialize()

    assert sync.state is SyncState.LIVE
    assert _ids(sync) == list(range(2, 102))


def test_subscription_is_opened_before_query() -> None:
    order: list[str] = []
    transport = StubTransport([_row(1)])
    original_subscribe = transport.subscribe

    def _subscribe(*args, **kwargs):
        order.append("subscribe")
        return original_subscribe(*args, **kwargs)

    transport.subscribe = _subscribe  # type: ignore[method-assign]
    transport.during_query = lambda: order.append("query")

    SeriesSynchronizer(transport).initialize()

    assert order == ["subscribe", "query"]


def test_failed_query_leaves_buffer_empty_and_errors() -> None:
    transport = StubTransport([_row(1)])
    transport.query_error = TransportError("network down")
    sync = SeriesSynchronizer(transport)

    with pytest.raises(TransportError):
        sync.initialize()

    assert sync.state is SyncState.ERROR
    assert sync.snapshot() == ()
    assert isinstance(sync.last_error, TransportError)
    assert transport.unsubscribed == 1


def test_failed_subscribe_surfaces_transport_error() -> None:
    transport = StubTransport([_row(1)])
    transport.subscribe_error = TransportError("realtime unavailable")
    sync = SeriesSynchronizer(transport)

    with pytest.raises(TransportError):
        sync.initialize()

    assert sync.state is SyncState.ERROR
    assert transport.query_calls == []


def test_malformed_bulk_response_is_transport_error() -> None:
    transport = StubTransport()
    transport.query = lambda *args, **kwargs: {"message": "not a list"}  # type: ignore[method-assign]
    sync = SeriesSynchronizer(transport)

    with pytest.raises(TransportError):
        sync.initialize()
    assert sync.state is SyncState.ERROR


def test_retry_after_failed_load() -> None:
    transport = StubTransport([_row(1), _row(2)])
    transport.query_error = TransportError("timeout")
    sync = SeriesSynchronizer(transport)
    with pytest.raises(TransportError):
        sync.initialize()

    transport.query_error = None
    assert sync.initialize() is True

    assert sync.state is SyncState.LIVE
    assert _ids(sync) == [1, 2]
    assert sync.last_error is None
    # Callback from the first, released subscription must stay inert.
    first_on_insert, _ = transport.callbacks[0]
    first_on_insert(_row(3))
    assert _ids(sync) == [1, 2]


def test_initialize_is_noop_while_loading_or_live() -> None:
    transport = StubTransport([_row(1)])
    sync = SeriesSynchronizer(transport)
    nested: list[bool] = []
    transport.during_query = lambda: nested.append(sync.initialize())

    assert sync.initialize() is True
    assert nested == [False]
    assert sync.initialize() is False
    assert len(transport.query_calls) == 1


def test_teardown_is_idempotent_and_blocks_late_callbacks() -> None:
    transport = StubTransport([_row(1), _row(2)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()

    sync.teardown()
    sync.teardown()

    assert sync.state is SyncState.CLOSED
    assert transport.unsubscribed == 1

    transport.fire(_row(3))
    assert sync.on_insert_event(_row(4)) is False
    assert _ids(sync) == [1, 2]

    with pytest.raises(RuntimeError):
        sync.initialize()


def test_teardown_during_load_discards_result() -> None:
    transport = StubTransport([_row(1)])
    sync = SeriesSynchronizer(transport)
    transport.during_query = sync.teardown

    assert sync.initialize() is False
    assert sync.state is SyncState.CLOSED
    assert sync.snapshot() == ()
    assert transport.unsubscribed == 1


def test_subscription_error_keeps_last_good_buffer() -> None:
    transport = StubTransport([_row(1), _row(2)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()

    transport.fail(TransportError("socket closed"))

    assert sync.state is SyncState.ERROR
    assert _ids(sync) == [1, 2]
    assert isinstance(sync.last_error, TransportError)

    # A delivery on the same subscription means the channel came back.
    transport.fire(_row(3))
    assert sync.state is SyncState.LIVE
    assert _ids(sync) == [1, 2, 3]


def test_events_before_initialize_are_ignored() -> None:
    sync = SeriesSynchronizer(StubTransport())
    assert sync.on_insert_event(_row(1)) is False
    assert sync.snapshot() == ()


def test_malformed_insert_payload_is_dropped() -> None:
    transport = StubTransport([_row(1)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()

    assert sync.on_insert_event("garbage") is False  # type: ignore[arg-type]
    assert _ids(sync) == [1]


def test_snapshot_is_immutable_copy() -> None:
    transport = StubTransport([_row(1)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()
    before = sync.snapshot()

    transport.fire(_row(2))

    assert isinstance(before, tuple)
    assert [r.id for r in before] == [1]
    assert _ids(sync) == [1, 2]


def test_context_manager_tears_down() -> None:
    transport = StubTransport([_row(1)])
    with SeriesSynchronizer(transport) as sync:
        sync.initialize()
    assert sync.state is SyncState.CLOSED
    assert transport.unsubscribed == 1


def test_sync_options_validation() -> None:
    with pytest.raises(ValueError):
        SyncOptions(mode="carrier-pigeon")
    with pytest.raises(ValueError):
        SyncOptions(limit=0)
    with pytest.raises(ValueError):
        SyncOptions(poll_interval_s=0)


def test_poll_mode_picks_up_new_rows() -> None:
    transport = InMemoryTransport({"sensor_data": [_row(i) for i in range(1, 4)]})
    sync = SeriesSynchronizer(
        transport, SyncOptions(mode="poll", limit=5, poll_interval_s=0.02)
    )
    sync.initialize()
    assert _ids(sync) == [1, 2, 3]
    assert transport.subscriber_count("sensor_data") == 0

    for _ in range(4):
        transport.insert("sensor_data", {"weight_g": 1.0})

    deadline = time.time() + 2.0
    while time.time() < deadline and _ids(sync) != [3, 4, 5, 6, 7]:
        time.sleep(0.01)

    sync.teardown()
    assert _ids(sync) == [3, 4, 5, 6, 7]

    transport.insert("sensor_data", {"weight_g": 2.0})
    time.sleep(0.1)
    assert _ids(sync) == [3, 4, 5, 6, 7]


def test_push_mode_with_in_memory_transport() -> None:
    transport = InMemoryTransport({"sensor_data": [_row(1)]})
    sync = SeriesSynchronizer(transport, SyncOptions(limit=3))
    sync.initialize()

    for _ in range(3):
        transport.insert("sensor_data", {"temperature_c": 25.0})

    assert _ids(sync) == [2, 3, 4]
    sync.teardown()
    assert transport.subscriber_count("sensor_data") == 0


def test_subscription_recovery_without_new_rows_goes_live() -> None:
    transport = StubTransport([_row(1), _row(2)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()

    transport.fail(TransportError("socket closed"))
    assert sync.state is SyncState.ERROR

    transport.recover()

    assert sync.state is SyncState.LIVE
    assert sync.last_error is None
    assert _ids(sync) == [1, 2]


def test_recovery_is_ignored_outside_error_and_after_teardown() -> None:
    transport = StubTransport([_row(1)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()

    transport.recover()
    assert sync.state is SyncState.LIVE

    transport.fail(TransportError("socket closed"))
    sync.teardown()
    transport.recover()
    sync.on_subscription_recovered()
    assert sync.state is SyncState.CLOSED


def test_recovery_does_not_revive_a_failed_load() -> None:
    transport = StubTransport([_row(1)])
    transport.query_error = TransportError("timeout")
    sync = SeriesSynchronizer(transport)
    with pytest.raises(TransportError):
        sync.initialize()

    transport.recover()
    sync.on_subscription_recovered()

    assert sync.state is SyncState.ERROR
    assert sync.snapshot() == ()


def test_poll_mode_returns_to_live_after_a_failed_poll() -> None:
    transport = InMemoryTransport({"sensor_data": [_row(i) for i in range(1, 4)]})
    sync = SeriesSynchronizer(
        transport, SyncOptions(mode="poll", limit=5, poll_interval_s=0.02)
    )
    sync.initialize()
    time.sleep(0.1)

    transport.fail_next_query(1)
    failed_at = transport.query_count
    deadline = time.time() + 2.0
    while time.time() < deadline and (
        transport.query_count < failed_at + 3 or sync.state is not SyncState.LIVE
    ):
        time.sleep(0.01)
    state = sync.state
    sync.teardown()

    # Later polls succeed without new rows; the synchronizer must not stay in ERROR.
    assert transport.query_count >= failed_at + 3
    assert state is SyncState.LIVE
    assert sync.last_error is None
    assert _ids(sync) == [1, 2, 3]


def test_failed_retry_empties_window_and_bumps_version() -> None:
    transport = StubTransport([_row(1), _row(2)])
    sync = SeriesSynchronizer(transport)
    sync.initialize()
    transport.fail(TransportError("socket closed"))
    version = sync.version

    transport.query_error = TransportError("still down")
    with pytest.raises(TransportError):
        sync.initialize()

    # Views redraw on a version change, so they go blank without extra calls.
    assert sync.snapshot() == ()
    assert sync.version > version
    assert sync.state is SyncState.ERROR
