#!/usr/bin/env python3
"""
One-shot Matplotlib plot of the latest sensor readings.

Fetches the newest ``--limit`` rows through the same synchronizer the GUI
uses, then draws the four dashboard panels (weight, temperature, gyroscope,
IR) and a text table of the newest rows. With ``--output`` the figure is
written to disk using the non-interactive Agg backend; otherwise a standard
Matplotlib window is opened.

Examples::

    python -m sensoguard.tools.plotter --demo --output latest.png
    SENSOGUARD_SUPABASE_URL=... SENSOGUARD_SUPABASE_KEY=... \\
        python -m sensoguard.tools.plotter --limit 50
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

import matplotlib

from ..config.runtime import load_config
from ..core.models import SensorReading
from ..core.projection import CHART_PANELS, DEFAULT_CHART_FIELDS, chart_arrays, table_rows
from ..core.synchronizer import SeriesSynchronizer
from ..remote.transport import TransportError
from ..session import open_session

logger = logging.getLogger(__name__)


def fetch_snapshot(synchronizer: SeriesSynchronizer) -> tuple[SensorReading, ...]:
    """Run one bulk load and return the resulting window."""
    with synchronizer:
        synchronizer.initialize()
        return synchronizer.snapshot()


def build_figure(snapshot: Sequence[SensorReading], *, table_limit: int = 10):
    import matplotlib.pyplot as plt

    x, ys = chart_arrays(snapshot, DEFAULT_CHART_FIELDS)
    fig, axes = plt.subplots(3, 2, figsize=(12, 10))
    flat_axes = axes.ravel()

    for ax, panel in zip(flat_axes, CHART_PANELS):
        for line in panel.lines:
            ax.plot(x, ys[line.field], color=line.color, label=line.label, linewidth=1.5)
        ax.set_title(panel.title)
        ax.set_xlabel("Row ID")
        ax.set_ylabel(panel.y_label)
        ax.grid(True, alpha=0.3)
        if len(panel.lines) > 1:
            ax.legend(loc="upper left")

    table_ax = fig.add_subplot(3, 1, 3)
    for ax in flat_axes[len(CHART_PANELS):]:
        ax.remove()
    table_ax.axis("off")
    rows = table_rows(snapshot, table_limit)
    if rows:
        columns = list(rows[0].keys())
        table = table_ax.table(
            cellText=[[row[col] for col in columns] for row in rows],
            colLabels=columns,
            loc="center",
        )
        table.auto_set_font_size(False)
        table.set_fontsize(8)
    else:
        table_ax.text(0.5, 0.5, "No sensor data yet.", ha="center", va="center")

    fig.suptitle(f"SensoGuard: latest {len(snapshot)} readings")
    fig.tight_layout()
    return fig


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plot the latest SensoGuard readings")
    parser.add_argument("--config", type=str, default=None, help="Dashboard YAML config")
    parser.add_argument("--limit", type=int, default=None, help="Readings to fetch (default: 100)")
    parser.add_argument("--rows", type=int, default=10, help="Rows in the text table (default: 10)")
    parser.add_argument("--output", type=str, default=None, help="Save to this file instead of showing")
    parser.add_argument("--demo", action="store_true", help="Plot synthetic data")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.output:
        matplotlib.use("Agg")

    config = load_config(args.config)
    if args.limit is not None:
        config.limit = args.limit
        config = config.sanitized()

    try:
        session = open_session(config, demo=args.demo)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    try:
        # Poll mode avoids opening a websocket for a one-shot fetch.
        options = replace(config.sync_options(), mode="poll", poll_interval_s=3600.0)
        snapshot = fetch_snapshot(SeriesSynchronizer(session.transport, options))
    except TransportError as exc:
        logger.error("Could not load readings: %s", exc)
        return 1
    finally:
        session.close()

    fig = build_figure(snapshot, table_limit=args.rows)
    if args.output:
        out_path = Path(args.output).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, dpi=120)
        logger.info("Wrote %s", out_path)
    else:
        import matplotlib.pyplot as plt

        plt.show()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
