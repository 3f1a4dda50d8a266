"""Turn periodic bulk queries into a stream of insert notifications."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any, List, Optional

from .transport import (
    ErrorCallback,
    InsertCallback,
    RawRecord,
    RecoveredCallback,
    Subscription,
    Transport,
    TransportError,
)

logger = logging.getLogger(__name__)


def _row_id(row: RawRecord) -> int:
    try:
        return int(float(row.get("id")))
    except (TypeError, ValueError, OverflowError):
        return 0


def newer_rows(rows: List[RawRecord], last_id: Optional[int]) -> List[RawRecord]:
    """Return rows with an id above ``last_id``, ascending by id."""
    fresh = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        row_id = _row_id(row)
        if last_id is None or row_id > last_id:
            fresh.append((row_id, row))
    fresh.sort(key=lambda item: item[0])
    return [row for _, row in fresh]


class PollingSubscription(Subscription):
    """Subscription that re-runs the "latest N rows" query on an interval.

    Each poll forwards only rows newer than the newest id seen so far. Query
    failures are reported through ``on_error`` and polling continues; the
    first successful poll after a failure calls ``on_recovered``, even when
    it brings no new rows.
    """

    def __init__(
        self,
        transport: Transport,
        table: str,
        on_insert: InsertCallback,
        *,
        on_error: Optional[ErrorCallback] = None,
        on_recovered: Optional[RecoveredCallback] = None,
        limit: int = 100,
        interval_s: float = 5.0,
        thread_name: Optional[str] = None,
    ) -> None:
        self._stop_event = threading.Event()
        super().__init__(self._stop_event.set, label=f"poll:{table}")
        self._transport = transport
        self._table = table
        self._on_insert = on_insert
        self._on_error = on_error
        self._on_recovered = on_recovered
        self._limit = max(1, int(limit))
        self._interval_s = max(0.01, float(interval_s))
        self.last_id: Optional[int] = None
        self._thread = threading.Thread(
            target=self._run,
            name=thread_name or f"SensoGuardPoller({table})",
            daemon=True,
        )

    @classmethod
    def start(cls, transport: Transport, table: str, on_insert: InsertCallback, **kwargs: Any) -> "PollingSubscription":
        subscription = cls(transport, table, on_insert, **kwargs)
        subscription._thread.start()
        return subscription

    def poll_once(self) -> int:
        """Run one query and forward the new rows; returns how many were sent."""
        rows = self._transport.query(
            self._table, order_column="id", descending=True, limit=self._limit
        )
        fresh = newer_rows(list(rows), self.last_id)
        for row in fresh:
            if self._stop_event.is_set():
                break
            self.last_id = _row_id(row)
            try:
                self._on_insert(row)
            except Exception:
                logger.exception("Insert callback failed for polled row %r", row)
        return len(fresh)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        logger.debug("Polling %s every %.1f s", self._table, self._interval_s)
        failing = False
        while not self._stop_event.wait(self._interval_s):
            try:
                self.poll_once()
            except TransportError as exc:
                logger.warning("Poll of %s failed: %s", self._table, exc)
                failing = True
                if self._on_error is not None and not self._stop_event.is_set():
                    self._on_error(exc)
                continue
            if failing:
                failing = False
                logger.info("Polling %s works again", self._table)
                if self._on_recovered is not None and not self._stop_event.is_set():
                    self._on_recovered()
        logger.debug("Poller for %s stopped", self._table)


__all__ = ["PollingSubscription", "newer_rows"]
