"""PySide6 dashboard: main window, chart/table tabs and the load worker."""
