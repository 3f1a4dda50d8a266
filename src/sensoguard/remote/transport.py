"""Contracts shared by every remote data source adapter."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any, Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)

RawRecord = Mapping[str, Any]
InsertCallback = Callable[[RawRecord], None]
ErrorCallback = Callable[[BaseException], None]
RecoveredCallback = Callable[[], None]


class TransportError(RuntimeError):
    """The bulk query or the change subscription could not be completed."""


class Subscription:
    """Cancellation handle for a change subscription.

    ``cancel()`` is idempotent: the release hook runs at most once no matter
    how many times (or from which thread) it is called.
    """

    def __init__(self, release: Optional[Callable[[], None]] = None, *, label: str = "") -> None:
        self._release = release
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self.label = label

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            release, self._release = self._release, None
        if release is not None:
            try:
                release()
            except Exception:
                logger.exception("Failed to release subscription %s", self.label or self)


class Transport(Protocol):
    """What the synchronizer needs from a managed table.

    ``query`` returns raw rows ordered by ``order_column``; ``subscribe``
    starts delivering newly inserted rows to ``on_insert`` and returns a
    handle whose ``cancel()`` unsubscribes. Both raise
    :class:`TransportError` when the remote side cannot be reached.

    A subscription that reported a failure through ``on_error`` calls
    ``on_recovered`` once it is working again.
    """

    def query(
        self,
        table: str,
        order_column: str = "id",
        descending: bool = True,
        limit: int = 100,
    ) -> List[RawRecord]:
        ...

    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_error: Optional[ErrorCallback] = None,
        on_recovered: Optional[RecoveredCallback] = None,
    ) -> Subscription:
        ...


__all__ = [
    "ErrorCallback",
    "InsertCallback",
    "RawRecord",
    "RecoveredCallback",
    "Subscription",
    "Transport",
    "TransportError",
]
