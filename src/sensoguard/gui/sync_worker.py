"""Worker that runs the synchronizer's initial load off the GUI thread."""

from __future__ import annotations

from PySide6.QtCore import QObject, Signal, Slot

from ..core.synchronizer import SeriesSynchronizer
from ..remote.transport import TransportError


class SyncInitWorker(QObject):
    """QObject-based worker wrapping :meth:`SeriesSynchronizer.initialize`.

    It is meant to live in its own QThread: the subscription handshake and
    bulk query block on the network, so they must not run on the Qt main
    thread. Results come back to the GUI via ``loaded``/``failed``.
    """

    loaded = Signal(bool)
    failed = Signal(str)
    finished = Signal()

    def __init__(self, synchronizer: SeriesSynchronizer, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._synchronizer = synchronizer

    @Slot()
    def run(self) -> None:
        """Entry point for the QThread."""
        try:
            installed = self._synchronizer.initialize()
        except TransportError as exc:
            self.failed.emit(str(exc))
        except RuntimeError as exc:
            # Torn down while the thread was starting.
            self.failed.emit(str(exc))
        else:
            self.loaded.emit(installed)
        finally:
            self.finished.emit()
