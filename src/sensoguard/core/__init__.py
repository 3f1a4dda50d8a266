"""Core data flow: reading model, bounded series buffer, and synchronizer.

This package sits between the remote table adapters and the GUI. The
synchronizer merges the bulk query with live inserts into one
:class:`SeriesBuffer`, and :mod:`projection` turns its snapshots into the
shapes the charts and readings table draw.
"""

from .models import MalformedRecordError, SensorReading
from .series_buffer import SeriesBuffer

from .projection import CHART_PANELS, chart_arrays, chart_series, table_rows
from .synchronizer import SeriesSynchronizer, SyncOptions, SyncState

__all__ = [
    "CHART_PANELS",
    "MalformedRecordError",
    "SensorReading",
    "SeriesBuffer",
    "SeriesSynchronizer",
    "SyncOptions",
    "SyncState",
    "chart_arrays",
    "chart_series",
    "table_rows",
]
