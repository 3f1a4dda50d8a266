"""Qt application entry point for the SensoGuard dashboard.

This module wires up argument parsing and logging, opens the transport for
the configured store (or the synthetic demo table), builds the
:class:`~sensoguard.gui.main_window.MainWindow`, and starts the Qt event
loop. ``python -m sensoguard``, ``python -m sensoguard.gui.application`` and
the ``sensoguard`` console script all go through ``main()`` here.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Tuple

import pyqtgraph as pg
from PySide6.QtCore import QLoggingCategory
from PySide6.QtWidgets import QApplication, QMainWindow

from ..config.runtime import DashboardConfig, load_config
from ..remote.transport import Transport
from ..session import open_session
from ..tools.debug import debug_enabled
from .main_window import MainWindow

_PG_CONFIGURED = False


def configure_pyqtgraph() -> None:
    """Apply global PyQtGraph options once, before any plot is created."""
    global _PG_CONFIGURED
    if _PG_CONFIGURED:
        return
    pg.setConfigOptions(antialias=True, foreground="#9CA3AF")
    _PG_CONFIGURED = True


def configure_logging(level_name: str | None) -> None:
    if level_name:
        level = getattr(logging, level_name.upper(), logging.INFO)
    else:
        level = logging.DEBUG if debug_enabled() else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SensoGuard real-time sensor dashboard")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML file with store credentials and dashboard settings",
    )
    parser.add_argument(
        "--mode",
        choices=("push", "poll"),
        default=None,
        help="push: realtime inserts; poll: re-query every poll interval (default: from config)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Number of readings kept in the chart window (default: 100)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between queries in poll mode (default: 5)",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Use a synthetic in-memory table instead of the managed store",
    )
    parser.add_argument(
        "--demo-rate",
        type=float,
        default=2.0,
        help="Synthetic insert rate in Hz for --demo (default: 2)",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=None,
        help="Logging level (default: INFO, or DEBUG when SENSOGUARD_DEBUG is set)",
    )
    return parser


def _parse_cli_args(
    argv: list[str],
) -> tuple[argparse.Namespace, list[str]]:
    parser = _build_arg_parser()
    args, qt_args = parser.parse_known_args(argv[1:])
    qt_argv = [argv[0], *qt_args]
    return args, qt_argv


def config_from_args(args: argparse.Namespace) -> DashboardConfig:
    config = load_config(args.config)
    overrides = {}
    if args.mode is not None:
        overrides["mode"] = args.mode
    if args.limit is not None:
        overrides["limit"] = args.limit
    if args.poll_interval is not None:
        overrides["poll_interval_s"] = args.poll_interval
    if not overrides:
        return config
    for name, value in overrides.items():
        setattr(config, name, value)
    return config.sanitized()


def create_app(
    transport: Transport,
    argv: list[str] | None = None,
    *,
    config: DashboardConfig | None = None,
) -> Tuple[QApplication, QMainWindow]:
    """
    Create the QApplication and the dashboard window.

    Returns
    -------
    app:
        The QApplication instance (owned by caller).
    window:
        The main window, not yet shown or started.
    """
    qt_args = argv if argv is not None else sys.argv
    configure_pyqtgraph()
    app = QApplication.instance() or QApplication(qt_args)

    # Suppress noisy QObject::connect warnings from QStyleHints and similar internals
    QLoggingCategory.setFilterRules("qt.core.qobject.connect=false")

    window = MainWindow(transport, config=config)
    return app, window


def main(argv: list[str] | None = None) -> None:
    raw_argv = argv if argv is not None else sys.argv
    args, qt_argv = _parse_cli_args(raw_argv)
    configure_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        config = config_from_args(args)
        session = open_session(config, demo=args.demo, demo_rate_hz=args.demo_rate)
    except ValueError as exc:
        logger.error("%s", exc)
        raise SystemExit(2) from exc

    try:
        app, win = create_app(session.transport, qt_argv, config=config)
        win.show()
        win.start()
        exit_code = app.exec()
    finally:
        session.close()
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
