from __future__ import annotations

from typing import Optional, Sequence

from PySide6.QtCore import Qt
from PySide6.QtWidgets import QAbstractItemView, QHeaderView, QTableWidget, QTableWidgetItem, QVBoxLayout, QWidget

from ...core.models import SensorReading
from ...core.projection import DEFAULT_TABLE_ROWS, TABLE_COLUMNS, table_rows


class ReadingsTab(QWidget):
    """Table of the most recent readings, newest first."""

    def __init__(self, row_limit: int = DEFAULT_TABLE_ROWS, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._row_limit = max(1, int(row_limit))

        self._table = QTableWidget(0, len(TABLE_COLUMNS), self)
        self._table.setHorizontalHeaderLabels([label for _, label in TABLE_COLUMNS])
        self._table.verticalHeader().setVisible(False)
        self._table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self._table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self._table.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)

        layout = QVBoxLayout(self)
        layout.addWidget(self._table)

    def update_snapshot(self, snapshot: Sequence[SensorReading]) -> None:
        rows = table_rows(snapshot, self._row_limit)
        self._table.setRowCount(len(rows))
        for row_idx, row in enumerate(rows):
            for col_idx, (field, _) in enumerate(TABLE_COLUMNS):
                item = QTableWidgetItem(row[field])
                item.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
                self._table.setItem(row_idx, col_idx, item)
