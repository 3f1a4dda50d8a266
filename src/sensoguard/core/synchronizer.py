"""
Keep a bounded, id-ordered window of the latest readings in sync with a table.

A :class:`SeriesSynchronizer` merges one bulk query ("the latest N rows")
with the change stream of newly inserted rows. The subscription is opened
*before* the bulk query; inserts that land while the query is in flight are
queued and replayed once the bulk rows are installed, so nothing inserted in
that gap is lost and nothing shows up twice.

State machine::

    IDLE -> LOADING -> LIVE -> ERROR -> LIVE ...
              |                  ^
              +------------------+      (failed load)
    any state -> CLOSED (teardown, terminal)
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, List, Optional

from ..remote.poller import PollingSubscription
from ..remote.transport import RawRecord, Subscription, Transport, TransportError
from ..tools.debug import time_block
from .models import MalformedRecordError, SensorReading
from .series_buffer import DEFAULT_CAPACITY, SeriesBuffer

logger = logging.getLogger(__name__)

SYNC_MODES = ("push", "poll")


class SyncState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class SyncOptions:
    """How the synchronizer talks to the table.

    ``mode="push"`` uses the transport's change subscription; ``mode="poll"``
    re-runs the bulk query every ``poll_interval_s`` seconds instead.
    """

    table: str = "sensor_data"
    mode: str = "push"
    limit: int = DEFAULT_CAPACITY
    poll_interval_s: float = 5.0

    def __post_init__(self) -> None:
        if self.mode not in SYNC_MODES:
            raise ValueError(f"mode must be one of {SYNC_MODES}, got {self.mode!r}")
        if int(self.limit) <= 0:
            raise ValueError("limit must be positive")
        if float(self.poll_interval_s) <= 0.0:
            raise ValueError("poll_interval_s must be positive")


class SeriesSynchronizer:
    """Owner of the reading buffer for one dashboard view."""

    def __init__(self, transport: Transport, options: SyncOptions | None = None) -> None:
        self._transport = transport
        self._options = options or SyncOptions()
        self._buffer = SeriesBuffer(self._options.limit)
        self._lock = threading.RLock()
        self._state = SyncState.IDLE
        self._last_error: Optional[BaseException] = None
        self._subscription: Optional[Subscription] = None
        # Cleared on teardown or failed load; callbacks captured against an
        # old token can no longer touch the buffer.
        self._alive: Optional[threading.Event] = None
        self._pending: List[SensorReading] = []

    # ----------------------------------------------------------------- state
    @property
    def options(self) -> SyncOptions:
        return self._options

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    @property
    def last_error(self) -> Optional[BaseException]:
        with self._lock:
            return self._last_error

    @property
    def version(self) -> int:
        return self._buffer.version

    def snapshot(self) -> tuple[SensorReading, ...]:
        """Return the current window, oldest first, as an immutable tuple."""
        return self._buffer.snapshot()

    def _set_state(self, state: SyncState) -> None:
        if state is not self._state:
            logger.debug("Synchronizer %s -> %s", self._state.value, state.value)
            self._state = state

    # ------------------------------------------------------------ operations
    def initialize(self) -> bool:
        """Subscribe, load the latest rows and go live.

        Returns ``True`` once the bulk rows are installed. Calling while a
        load is in flight (or already live) is a no-op returning ``False``.
        Raises :class:`TransportError` when the query or subscription fails;
        the buffer is then left empty and the state is ``ERROR``.
        """
        with self._lock:
            if self._state is SyncState.CLOSED:
                raise RuntimeError("Synchronizer has been torn down")
            if self._state in (SyncState.LOADING, SyncState.LIVE):
                logger.debug("initialize() ignored in state %s", self._state.value)
                return False
            stale = self._detach_subscription()
            self._set_state(SyncState.LOADING)
            self._last_error = None
            self._pending = []
            alive = threading.Event()
            alive.set()
            self._alive = alive
        if stale is not None:
            stale.cancel()

        try:
            subscription = self._open_subscription(alive)
        except TransportError as exc:
            self._fail_load(exc, alive)
            raise

        with self._lock:
            torn_down = not alive.is_set()
            if not torn_down:
                self._subscription = subscription
        if torn_down:
            subscription.cancel()
            return False

        try:
            rows = self._transport.query(
                self._options.table,
                order_column="id",
                descending=True,
                limit=self._options.limit,
            )
            readings = self._parse_rows(rows)
        except TransportError as exc:
            self._fail_load(exc, alive)
            raise

        with self._lock:
            if not alive.is_set():
                return False
            with time_block(f"install {len(readings)} readings"):
                installed = self._buffer.install(readings)
                pending, self._pending = self._pending, []
                replayed = sum(1 for reading in pending if self._buffer.append(reading))
            self._set_state(SyncState.LIVE)
        logger.info(
            "Loaded %d readings from %s (%d replayed from subscription, mode=%s)",
            installed,
            self._options.table,
            replayed,
            self._options.mode,
        )
        return True

    def on_insert_event(self, raw_record: RawRecord) -> bool:
        """Apply one inserted row; returns ``True`` when the buffer changed."""
        try:
            reading = SensorReading.from_record(raw_record)
        except MalformedRecordError as exc:
            logger.warning("Dropping malformed insert payload: %s", exc)
            return False

        with self._lock:
            state = self._state
            if state is SyncState.LOADING:
                self._pending.append(reading)
                return False
            if state is SyncState.ERROR:
                if self._subscription is None or self._subscription.cancelled:
                    return False
                # The subscription is delivering again, so the channel recovered.
                self._last_error = None
                self._set_state(SyncState.LIVE)
            elif state is not SyncState.LIVE:
                logger.debug("Ignoring insert id=%s in state %s", reading.id, state.value)
                return False

            if self._buffer.contains(reading.id):
                logger.debug("Duplicate insert id=%s discarded", reading.id)
                return False
            changed = self._buffer.append(reading)
            if not changed:
                logger.debug(
                    "Out-of-order insert id=%s dropped (newest is %s)",
                    reading.id,
                    self._buffer.last_id(),
                )
            return changed

    def on_subscription_error(self, exc: BaseException) -> None:
        """Mark the live subscription as failed while keeping the last good data."""
        with self._lock:
            if self._state is SyncState.CLOSED:
                return
            logger.warning("Change subscription failed: %s", exc)
            self._last_error = exc
            if self._state is SyncState.LIVE:
                self._set_state(SyncState.ERROR)

    def on_subscription_recovered(self) -> None:
        """Return to ``LIVE`` once the failed subscription works again."""
        with self._lock:
            if self._state is not SyncState.ERROR:
                return
            if self._subscription is None or self._subscription.cancelled:
                return
            logger.info("Change subscription for %s recovered", self._options.table)
            self._last_error = None
            self._set_state(SyncState.LIVE)

    def teardown(self) -> None:
        """Release the subscription and stop accepting updates. Idempotent."""
        with self._lock:
            if self._state is SyncState.CLOSED:
                return
            self._set_state(SyncState.CLOSED)
            self._pending = []
            subscription = self._detach_subscription()
        if subscription is not None:
            subscription.cancel()
        logger.debug("Synchronizer for %s closed", self._options.table)

    def __enter__(self) -> "SeriesSynchronizer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.teardown()

    # --------------------------------------------------------------- helpers
    def _open_subscription(self, alive: threading.Event) -> Subscription:
        def _on_insert(raw: RawRecord) -> None:
            if alive.is_set():
                self.on_insert_event(raw)

        def _on_error(exc: BaseException) -> None:
            if alive.is_set():
                self.on_subscription_error(exc)

        def _on_recovered() -> None:
            if alive.is_set():
                self.on_subscription_recovered()

        if self._options.mode == "poll":
            return PollingSubscription.start(
                self._transport,
                self._options.table,
                _on_insert,
                on_error=_on_error,
                on_recovered=_on_recovered,
                limit=self._options.limit,
                interval_s=self._options.poll_interval_s,
            )
        return self._transport.subscribe(
            self._options.table, _on_insert, _on_error, on_recovered=_on_recovered
        )

    def _detach_subscription(self) -> Optional[Subscription]:
        # Callers cancel the returned handle after dropping self._lock: a
        # worker thread may be blocked on the lock inside a callback.
        if self._alive is not None:
            self._alive.clear()
        subscription, self._subscription = self._subscription, None
        return subscription

    def _fail_load(self, exc: TransportError, alive: threading.Event) -> None:
        with self._lock:
            if self._alive is not alive:
                return
            logger.error("Initial load of %s failed: %s", self._options.table, exc)
            subscription = self._detach_subscription()
            self._buffer.clear()
            self._pending = []
            self._last_error = exc
            if self._state is not SyncState.CLOSED:
                self._set_state(SyncState.ERROR)
        if subscription is not None:
            subscription.cancel()

    def _parse_rows(self, rows: Any) -> List[SensorReading]:
        if not isinstance(rows, Sequence) or isinstance(rows, (str, bytes)):
            raise TransportError(
                f"Bulk query returned {type(rows).__name__}, expected a list of rows"
            )
        readings: List[SensorReading] = []
        for raw in reversed(rows):
            if not isinstance(raw, Mapping):
                logger.warning("Skipping non-object row in bulk result: %r", raw)
                continue
            readings.append(SensorReading.from_record(raw))
        readings.sort(key=lambda reading: reading.id)
        return readings


__all__ = ["SYNC_MODES", "SeriesSynchronizer", "SyncOptions", "SyncState"]
