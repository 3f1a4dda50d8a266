"""In-process stand-in for the managed table (tests and ``--demo`` mode)."""

from __future__ import annotations

import itertools
import logging
import math
import random
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .transport import ErrorCallback, InsertCallback, RawRecord, RecoveredCallback, Subscription, TransportError

logger = logging.getLogger(__name__)


class InMemoryTransport:
    """Thread-safe table of rows with insert notifications.

    ``insert()`` assigns increasing ids like the real store and then calls
    every subscriber of that table. Callbacks run outside the table lock so a
    subscriber may query or unsubscribe from inside its callback.
    """

    def __init__(self, rows: Optional[Mapping[str, List[RawRecord]]] = None) -> None:
        self._lock = threading.RLock()
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        self._subscribers: Dict[str, Dict[int, InsertCallback]] = {}
        self._next_token = itertools.count(1)
        self._next_id: Dict[str, int] = {}
        self._fail_queries = 0
        self.fail_subscribe = False
        self.query_count = 0
        for table, table_rows in (rows or {}).items():
            for row in table_rows:
                self._store(table, dict(row))

    # ----------------------------------------------------------------- query
    def query(
        self,
        table: str,
        order_column: str = "id",
        descending: bool = True,
        limit: int = 100,
    ) -> List[RawRecord]:
        with self._lock:
            self.query_count += 1
            if self._fail_queries > 0:
                self._fail_queries -= 1
                raise TransportError(f"Simulated query failure for {table!r}")
            rows = [dict(row) for row in self._tables.get(table, [])]
        rows.sort(key=lambda row: row.get(order_column) or 0, reverse=descending)
        return rows[: max(0, int(limit))]

    def fail_next_query(self, count: int = 1) -> None:
        with self._lock:
            self._fail_queries += max(0, int(count))

    # ------------------------------------------------------------- subscribe
    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_error: Optional[ErrorCallback] = None,
        on_recovered: Optional[RecoveredCallback] = None,
    ) -> Subscription:
        # The in-process table never drops a subscription, so the error hooks
        # are accepted but never called.
        if self.fail_subscribe:
            raise TransportError(f"Simulated subscription failure for {table!r}")
        token = next(self._next_token)
        with self._lock:
            self._subscribers.setdefault(table, {})[token] = on_insert

        def _release() -> None:
            with self._lock:
                self._subscribers.get(table, {}).pop(token, None)

        return Subscription(_release, label=f"memory:{table}#{token}")

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, {}))

    # ----------------------------------------------------------------- write
    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Store ``row`` (assigning ``id``/``created_at`` if absent) and notify subscribers."""
        with self._lock:
            stored = self._store(table, dict(row))
            callbacks = list(self._subscribers.get(table, {}).values())
        for callback in callbacks:
            try:
                callback(dict(stored))
            except Exception:
                logger.exception("Subscriber callback failed for %s row %r", table, stored)
        return stored

    def _store(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        next_id = self._next_id.get(table, 1)
        if row.get("id") is None:
            row["id"] = next_id
        try:
            self._next_id[table] = max(next_id, int(row["id"]) + 1)
        except (TypeError, ValueError):
            pass
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._tables.setdefault(table, []).append(row)
        return row


def synthetic_row(step: int, rng: random.Random | None = None) -> Dict[str, Any]:
    """Return a plausible ``sensor_data`` row for demo streams."""
    rng = rng or random
    phase = step / 10.0
    finger = math.sin(phase / 3.0) > -0.2
    return {
        "weight_g": round(250.0 + 40.0 * math.sin(phase) + rng.gauss(0.0, 2.0), 2),
        "temperature_c": round(24.0 + 0.5 * math.sin(phase / 5.0) + rng.gauss(0.0, 0.1), 2),
        "gyro_x": round(rng.gauss(0.0, 3.0), 2),
        "gyro_y": round(rng.gauss(0.0, 3.0), 2),
        "gyro_z": round(5.0 * math.cos(phase) + rng.gauss(0.0, 1.0), 2),
        "ir_value": int(rng.gauss(52_000.0, 800.0)) if finger else int(rng.gauss(1_200.0, 150.0)),
    }


class SyntheticFeeder:
    """Background thread inserting synthetic rows at ``rate_hz``."""

    def __init__(
        self,
        transport: InMemoryTransport,
        table: str = "sensor_data",
        *,
        rate_hz: float = 2.0,
        seed: int | None = None,
    ) -> None:
        self._transport = transport
        self._table = table
        self._interval_s = 1.0 / max(0.1, float(rate_hz))
        self._rng = random.Random(seed)
        self._step = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def seed_rows(self, count: int) -> None:
        for _ in range(max(0, int(count))):
            self._insert_one()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="SensoGuardSyntheticFeeder", daemon=True
        )
        self._thread.start()

    def stop(self, *, join: bool = False, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if join and self._thread is not None:
            self._thread.join(timeout)

    def _insert_one(self) -> None:
        self._transport.insert(self._table, synthetic_row(self._step, self._rng))
        self._step += 1

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval_s):
            self._insert_one()


__all__ = ["InMemoryTransport", "SyntheticFeeder", "synthetic_row"]
