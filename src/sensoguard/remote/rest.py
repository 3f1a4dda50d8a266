"""
Transport for a Supabase-style table: PostgREST queries plus realtime inserts.

Bulk queries go to ``<base_url>/rest/v1/<table>`` with PostgREST ordering and
limit parameters; the anon key travels in both the ``apikey`` and bearer
``Authorization`` headers. Change subscriptions are opened through
:class:`~sensoguard.remote.realtime.RealtimeSubscription`.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from .realtime import RealtimeSubscription, realtime_url
from .transport import ErrorCallback, InsertCallback, RawRecord, RecoveredCallback, Subscription, TransportError

logger = logging.getLogger(__name__)


class RestTransport:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_s: float = 10.0,
        schema: str = "public",
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required (set SENSOGUARD_SUPABASE_URL)")
        if not api_key:
            raise ValueError("api_key is required (set SENSOGUARD_SUPABASE_KEY)")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._schema = schema
        self._timeout_s = float(timeout_s)
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            timeout=self._timeout_s,
            transport=http_transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def query(
        self,
        table: str,
        order_column: str = "id",
        descending: bool = True,
        limit: int = 100,
    ) -> List[RawRecord]:
        direction = "desc" if descending else "asc"
        params = {
            "select": "*",
            "order": f"{order_column}.{direction}",
            "limit": str(int(limit)),
        }
        try:
            response = self._client.get(f"/rest/v1/{table}", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text.strip()[:200]
            raise TransportError(
                f"Query on {table!r} failed with HTTP {exc.response.status_code}: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Query on {table!r} failed: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"Query on {table!r} returned invalid JSON: {exc}") from exc

        if not isinstance(payload, list):
            raise TransportError(
                f"Query on {table!r} returned {type(payload).__name__}, expected a JSON array"
            )
        logger.debug("Fetched %d rows from %s", len(payload), table)
        return payload

    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_error: Optional[ErrorCallback] = None,
        on_recovered: Optional[RecoveredCallback] = None,
    ) -> Subscription:
        return RealtimeSubscription.start(
            realtime_url(self._base_url, self._api_key),
            table,
            on_insert,
            on_error=on_error,
            on_recovered=on_recovered,
            api_key=self._api_key,
            schema=self._schema,
            open_timeout_s=self._timeout_s,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RestTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["RestTransport"]
