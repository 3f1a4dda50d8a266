"""
Realtime insert notifications over the Phoenix-channel websocket.

The managed store pushes row changes on ``/realtime/v1/websocket``. A client
joins the topic ``realtime:<schema>:<table>`` asking for ``postgres_changes``
of type INSERT, keeps the socket alive with ``heartbeat`` messages on the
``phoenix`` topic, and then receives one message per inserted row::

    {"topic": "realtime:public:sensor_data",
     "event": "postgres_changes",
     "payload": {"data": {"type": "INSERT", "record": {...}}}}

Only ``payload.data.record`` is forwarded to the subscriber.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from websockets.exceptions import WebSocketException
from websockets.sync.client import ClientConnection, connect

from .transport import ErrorCallback, InsertCallback, RecoveredCallback, Subscription, TransportError

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_S = 25.0
RECONNECT_DELAY_S = 5.0


def realtime_url(base_url: str, api_key: str) -> str:
    """Map ``https://<project>.supabase.co`` to its realtime websocket URL."""
    parts = urlsplit(base_url.rstrip("/"))
    scheme = "ws" if parts.scheme == "http" else "wss"
    query = urlencode({"apikey": api_key, "vsn": "1.0.0"})
    return urlunsplit((scheme, parts.netloc, f"{parts.path}/realtime/v1/websocket", query, ""))


def channel_topic(table: str, schema: str = "public") -> str:
    return f"realtime:{schema}:{table}"


def join_message(table: str, ref: str, *, api_key: str = "", schema: str = "public") -> Dict[str, Any]:
    return {
        "topic": channel_topic(table, schema),
        "event": "phx_join",
        "payload": {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": [
                    {"event": "INSERT", "schema": schema, "table": table},
                ],
            },
            "access_token": api_key,
        },
        "ref": ref,
        "join_ref": ref,
    }


def heartbeat_message(ref: str) -> Dict[str, Any]:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": ref}


def inserted_record(message: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """Return the inserted row carried by ``message``, or ``None``."""
    if message.get("event") != "postgres_changes":
        return None
    payload = message.get("payload")
    if not isinstance(payload, Mapping):
        return None
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return None
    if str(data.get("type", "")).upper() != "INSERT":
        return None
    record = data.get("record")
    if not isinstance(record, Mapping):
        return None
    return record


def join_status(message: Mapping[str, Any], ref: str) -> Optional[str]:
    """Return the reply status for the join with ``ref`` (``"ok"``/``"error"``)."""
    if message.get("event") != "phx_reply" or str(message.get("ref")) != ref:
        return None
    payload = message.get("payload")
    if not isinstance(payload, Mapping):
        return "error"
    return str(payload.get("status", "error"))


class RealtimeSubscription(Subscription):
    """Websocket reader thread delivering inserted rows to ``on_insert``.

    ``start()`` blocks until the first join is acknowledged and raises
    :class:`TransportError` if it is not. Afterwards a dropped connection is
    reported through ``on_error`` and the thread reconnects after
    ``reconnect_delay_s``; a successful rejoin calls ``on_recovered``. Rows
    inserted while disconnected are not replayed.
    """

    def __init__(
        self,
        url: str,
        table: str,
        on_insert: InsertCallback,
        *,
        on_error: Optional[ErrorCallback] = None,
        on_recovered: Optional[RecoveredCallback] = None,
        api_key: str = "",
        schema: str = "public",
        open_timeout_s: float = 10.0,
        heartbeat_interval_s: float = HEARTBEAT_INTERVAL_S,
        reconnect_delay_s: float = RECONNECT_DELAY_S,
    ) -> None:
        self._stop_event = threading.Event()
        super().__init__(self._shutdown, label=f"realtime:{table}")
        self._url = url
        self._table = table
        self._schema = schema
        self._api_key = api_key
        self._on_insert = on_insert
        self._on_error = on_error
        self._on_recovered = on_recovered
        self._open_timeout_s = float(open_timeout_s)
        self._heartbeat_interval_s = float(heartbeat_interval_s)
        self._reconnect_delay_s = float(reconnect_delay_s)
        self._refs = itertools.count(1)
        self._ws: Optional[ClientConnection] = None
        self._ws_lock = threading.Lock()
        self._joined = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._thread = threading.Thread(
            target=self._run,
            name=f"SensoGuardRealtime({table})",
            daemon=True,
        )

    @classmethod
    def start(cls, url: str, table: str, on_insert: InsertCallback, **kwargs: Any) -> "RealtimeSubscription":
        subscription = cls(url, table, on_insert, **kwargs)
        subscription._thread.start()
        if not subscription._joined.wait(subscription._open_timeout_s * 2):
            subscription.cancel()
            raise TransportError(f"Timed out joining realtime channel for {table!r}")
        if subscription._startup_error is not None:
            subscription.cancel()
            raise TransportError(
                f"Could not subscribe to {table!r}: {subscription._startup_error}"
            ) from subscription._startup_error
        return subscription

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    # ---------------------------------------------------------------- thread
    def _run(self) -> None:
        established = False
        lost = False
        while not self._stop_event.is_set():
            try:
                with connect(self._url, open_timeout=self._open_timeout_s) as ws:
                    with self._ws_lock:
                        self._ws = ws
                    self._join(ws)
                    if not established:
                        established = True
                        self._joined.set()
                    logger.info("Subscribed to inserts on %s", self._table)
                    if lost:
                        lost = False
                        if self._on_recovered is not None:
                            self._on_recovered()
                    self._read_loop(ws)
            except (WebSocketException, OSError, TransportError) as exc:
                if self._stop_event.is_set():
                    break
                if not established:
                    self._startup_error = exc
                    self._joined.set()
                    return
                logger.warning("Realtime connection for %s lost: %s", self._table, exc)
                lost = True
                if self._on_error is not None:
                    self._on_error(exc)
                self._stop_event.wait(self._reconnect_delay_s)
            finally:
                with self._ws_lock:
                    self._ws = None
        logger.debug("Realtime reader for %s stopped", self._table)

    def _join(self, ws: ClientConnection) -> None:
        ref = str(next(self._refs))
        ws.send(json.dumps(join_message(self._table, ref, api_key=self._api_key, schema=self._schema)))
        deadline = time.monotonic() + self._open_timeout_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransportError("no reply to channel join")
            message = self._decode(ws.recv(timeout=remaining))
            if message is None:
                continue
            status = join_status(message, ref)
            if status is None:
                continue
            if status != "ok":
                raise TransportError(f"channel join rejected: {message.get('payload')!r}")
            return

    def _read_loop(self, ws: ClientConnection) -> None:
        next_heartbeat = time.monotonic() + self._heartbeat_interval_s
        while not self._stop_event.is_set():
            timeout = max(0.0, next_heartbeat - time.monotonic())
            try:
                raw = ws.recv(timeout=timeout)
            except TimeoutError:
                ws.send(json.dumps(heartbeat_message(str(next(self._refs)))))
                next_heartbeat = time.monotonic() + self._heartbeat_interval_s
                continue
            message = self._decode(raw)
            if message is None:
                continue
            if message.get("event") in {"phx_error", "phx_close"}:
                raise TransportError(f"channel closed by server ({message.get('event')})")
            record = inserted_record(message)
            if record is None:
                continue
            try:
                self._on_insert(record)
            except Exception:
                logger.exception("Insert callback failed for realtime row %r", record)

    @staticmethod
    def _decode(raw: str | bytes) -> Optional[Mapping[str, Any]]:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping malformed realtime frame: %r (%s)", raw, exc)
            return None
        if not isinstance(message, Mapping):
            logger.debug("Skipping non-object realtime frame: %r", message)
            return None
        return message

    def _shutdown(self) -> None:
        self._stop_event.set()
        with self._ws_lock:
            ws = self._ws
        if ws is not None:
            try:
                ws.close()
            except (WebSocketException, OSError) as exc:
                logger.debug("Error closing realtime socket: %s", exc)


__all__ = [
    "RealtimeSubscription",
    "channel_topic",
    "heartbeat_message",
    "inserted_record",
    "join_message",
    "join_status",
    "realtime_url",
]
