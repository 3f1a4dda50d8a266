"""Build the transport a dashboard or plotter session talks to."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .config.runtime import DashboardConfig
from .remote.memory import InMemoryTransport, SyntheticFeeder
from .remote.rest import RestTransport
from .remote.transport import Transport

logger = logging.getLogger(__name__)


@dataclass
class SessionHandles:
    """Transport plus the resources that must be released with it."""

    transport: Transport
    feeder: Optional[SyntheticFeeder] = None
    closers: list = field(default_factory=list)

    def close(self) -> None:
        if self.feeder is not None:
            self.feeder.stop(join=True, timeout=1.0)
        for closer in self.closers:
            closer()
        self.closers.clear()


def open_session(
    config: DashboardConfig,
    *,
    demo: bool = False,
    demo_rate_hz: float = 2.0,
    demo_seed_rows: int | None = None,
) -> SessionHandles:
    """
    Return the transport for ``config``.

    ``demo=True`` swaps the managed store for an :class:`InMemoryTransport`
    pre-filled with synthetic rows and fed by a background thread.
    """
    if demo:
        transport = InMemoryTransport()
        feeder = SyntheticFeeder(transport, config.table, rate_hz=demo_rate_hz)
        feeder.seed_rows(config.limit if demo_seed_rows is None else demo_seed_rows)
        feeder.start()
        logger.info("Demo mode: synthetic rows at %.1f Hz", demo_rate_hz)
        return SessionHandles(transport=transport, feeder=feeder)

    if not config.has_credentials():
        raise ValueError(
            "No store configured: set SENSOGUARD_SUPABASE_URL and SENSOGUARD_SUPABASE_KEY "
            "(or pass --config), or run with --demo"
        )
    rest = RestTransport(
        config.supabase_url,
        config.supabase_key,
        timeout_s=config.request_timeout_s,
    )
    logger.info("Connecting to %s (table=%s, mode=%s)", rest.base_url, config.table, config.mode)
    return SessionHandles(transport=rest, closers=[rest.close])


__all__ = ["SessionHandles", "open_session"]
