"""Main window for the SensoGuard dashboard."""

from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QThread, QTimer, Slot
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from ..config.runtime import DashboardConfig
from ..core.synchronizer import SeriesSynchronizer, SyncState
from ..remote.transport import Transport
from .sync_worker import SyncInitWorker
from .tabs.tab_charts import ChartsTab
from .tabs.tab_readings import ReadingsTab

EMPTY_MESSAGE = "No sensor data yet. Make sure your ESP8266 is running and sending data."


class MainWindow(QMainWindow):
    """Real-time dashboard window.

    Owns one :class:`SeriesSynchronizer` for its lifetime: the initial load
    runs in a worker thread, a timer redraws the tabs whenever the buffer
    version changes, and closing the window tears the synchronizer down.
    """

    def __init__(
        self,
        transport: Transport,
        config: DashboardConfig | None = None,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("SensoGuard Real-Time Dashboard")
        self._logger = logging.getLogger(__name__)

        self._config = config or DashboardConfig().sanitized()
        self._synchronizer = SeriesSynchronizer(transport, self._config.sync_options())
        self._drawn_version = -1
        self._init_thread: Optional[QThread] = None
        self._init_worker: Optional[SyncInitWorker] = None

        self._build_ui()

        self._refresh_timer = QTimer(self)
        self._refresh_timer.setInterval(self._config.refresh_interval_ms())
        self._refresh_timer.timeout.connect(self._on_refresh_tick)

    @property
    def synchronizer(self) -> SeriesSynchronizer:
        return self._synchronizer

    def _build_ui(self) -> None:
        self.charts_tab = ChartsTab(self)
        self.readings_tab = ReadingsTab(row_limit=self._config.table_rows, parent=self)

        self._tabs = QTabWidget()
        self._tabs.addTab(self.charts_tab, self.tr("Charts"))
        self._tabs.addTab(self.readings_tab, self.tr("Recent Readings"))

        self._status_label = QLabel(self.tr("Loading sensor data..."))
        self._retry_button = QPushButton(self.tr("Retry"))
        self._retry_button.setVisible(False)
        self._retry_button.clicked.connect(self.start)

        status_row = QHBoxLayout()
        status_row.addWidget(self._status_label, stretch=1)
        status_row.addWidget(self._retry_button)

        container = QWidget()
        layout = QVBoxLayout(container)
        layout.addLayout(status_row)
        layout.addWidget(self._tabs, stretch=1)
        self.setCentralWidget(container)

    # ------------------------------------------------------------- lifecycle
    @Slot()
    def start(self) -> None:
        """Kick off (or retry) the initial load in a background thread."""
        if self._init_thread is not None:
            return
        self._retry_button.setVisible(False)
        self._status_label.setText(self.tr("Loading sensor data..."))

        thread = QThread(self)
        worker = SyncInitWorker(self._synchronizer)
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.loaded.connect(self._on_loaded)
        worker.failed.connect(self._on_load_failed)
        worker.finished.connect(thread.quit)
        worker.finished.connect(worker.deleteLater)
        thread.finished.connect(self._on_init_thread_finished)

        self._init_thread = thread
        self._init_worker = worker
        thread.start()
        self._refresh_timer.start()

    def closeEvent(self, event: QCloseEvent) -> None:
        self._refresh_timer.stop()
        self._synchronizer.teardown()
        if self._init_thread is not None:
            self._init_thread.quit()
            self._init_thread.wait(2000)
        super().closeEvent(event)

    # ----------------------------------------------------------------- slots
    @Slot(bool)
    def _on_loaded(self, installed: bool) -> None:
        self._logger.info("Initial load finished (installed=%s)", installed)
        self._on_refresh_tick()

    @Slot(str)
    def _on_load_failed(self, message: str) -> None:
        self._logger.error("Initial load failed: %s", message)
        self._show_error(message)

    @Slot()
    def _on_init_thread_finished(self) -> None:
        if self._init_thread is not None:
            self._init_thread.deleteLater()
        self._init_thread = None
        self._init_worker = None

    @Slot()
    def _on_refresh_tick(self) -> None:
        state = self._synchronizer.state
        version = self._synchronizer.version
        if version != self._drawn_version:
            snapshot = self._synchronizer.snapshot()
            self.charts_tab.update_snapshot(snapshot)
            self.readings_tab.update_snapshot(snapshot)
            self._drawn_version = version
        self._update_status(state)

    def _update_status(self, state: SyncState) -> None:
        if state is SyncState.LOADING or state is SyncState.IDLE:
            self._clear_error_style()
            self._status_label.setText(self.tr("Loading sensor data..."))
            return
        if state is SyncState.ERROR:
            error = self._synchronizer.last_error
            self._show_error(str(error) if error else self.tr("Unknown error"))
            return
        self._clear_error_style()
        count = len(self._synchronizer.snapshot())
        if count == 0:
            self._status_label.setText(self.tr(EMPTY_MESSAGE))
        else:
            mode = self._config.mode
            self._status_label.setText(
                self.tr("Live ({0}): {1} readings").format(mode, count)
            )
        self._retry_button.setVisible(False)

    def _show_error(self, message: str) -> None:
        self._status_label.setText(self.tr("Error: {0}").format(message))
        self._status_label.setStyleSheet("color: #EF4444;")
        # A live subscription can recover by itself; only a failed load needs Retry.
        self._retry_button.setVisible(self._init_thread is None and not self._synchronizer.snapshot())

    def _clear_error_style(self) -> None:
        self._status_label.setStyleSheet("")
