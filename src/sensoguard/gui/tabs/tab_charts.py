"""Live line charts for weight, temperature, gyroscope and IR readings."""

from __future__ import annotations

from typing import Dict, Optional, Sequence

import pyqtgraph as pg
from PySide6.QtWidgets import QVBoxLayout, QWidget

from ...core.models import SensorReading
from ...core.projection import CHART_PANELS, DEFAULT_CHART_FIELDS, chart_arrays

AXIS_COLOR = "#9CA3AF"
GRID_ALPHA = 0.3


class ChartsTab(QWidget):
    """
    Two-by-two grid of PyQtGraph plots, one per :data:`CHART_PANELS` entry.

    The tab is passive: :meth:`update_snapshot` is called by the main window
    timer whenever the synchronizer's buffer has changed.
    """

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self._glw = pg.GraphicsLayoutWidget(self)
        self._glw.setBackground("#111827")
        layout.addWidget(self._glw)

        self._plots: Dict[str, pg.PlotItem] = {}
        self._lines: Dict[str, pg.PlotDataItem] = {}
        self._build_plots()

    def _build_plots(self) -> None:
        for index, panel in enumerate(CHART_PANELS):
            plot = self._glw.addPlot(row=index // 2, col=index % 2, title=panel.title)
            plot.setMenuEnabled(False)
            plot.hideButtons()
            plot.showGrid(x=True, y=True, alpha=GRID_ALPHA)
            plot.enableAutoRange(x=True, y=True)
            plot.setLabel("bottom", "Row ID", color=AXIS_COLOR)
            plot.setLabel("left", panel.y_label, color=AXIS_COLOR)
            if len(panel.lines) > 1:
                plot.addLegend(offset=(10, 10))
            for line in panel.lines:
                pen = pg.mkPen(color=line.color, width=2)
                self._lines[line.field] = plot.plot([], [], pen=pen, name=line.label)
            self._plots[panel.key] = plot

    def update_snapshot(self, snapshot: Sequence[SensorReading]) -> None:
        x, ys = chart_arrays(snapshot, DEFAULT_CHART_FIELDS)
        for name, line in self._lines.items():
            line.setData(x, ys[name])
