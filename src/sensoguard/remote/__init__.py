"""Adapters for the managed table that stores sensor readings.

:class:`RestTransport` queries the store over PostgREST and subscribes to
inserts over its realtime websocket, :class:`PollingSubscription` emulates
the insert stream by re-querying on an interval, and
:class:`InMemoryTransport` stands in for the store in tests and demo mode.
"""

from .memory import InMemoryTransport, SyntheticFeeder
from .poller import PollingSubscription
from .realtime import RealtimeSubscription
from .rest import RestTransport
from .transport import Subscription, Transport, TransportError

__all__ = [
    "InMemoryTransport",
    "PollingSubscription",
    "RealtimeSubscription",
    "RestTransport",
    "Subscription",
    "SyntheticFeeder",
    "Transport",
    "TransportError",
]
