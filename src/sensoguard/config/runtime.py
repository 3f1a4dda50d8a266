"""Runtime configuration for the dashboard: store connection and sync tuning."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml

from ..core.synchronizer import SYNC_MODES, SyncOptions

ENV_PREFIX = "SENSOGUARD_"


@dataclass(slots=True)
class DashboardConfig:
    """
    Connection details and tuning knobs for one dashboard window.

    The defaults mirror the live page: the latest 100 rows of ``sensor_data``,
    pushed via realtime inserts, with the newest 10 shown in the table.
    """

    supabase_url: str = ""
    supabase_key: str = ""
    table: str = "sensor_data"

    mode: str = "push"
    limit: int = 100
    poll_interval_s: float = 5.0

    table_rows: int = 10
    refresh_hz: float = 4.0
    request_timeout_s: float = 10.0

    def sanitized(self) -> DashboardConfig:
        """Return a copy with derived limits applied."""
        mode = str(self.mode or "").strip().lower()
        if mode in {"realtime", "subscribe"}:
            mode = "push"
        if mode not in SYNC_MODES:
            mode = "push"
        return DashboardConfig(
            supabase_url=str(self.supabase_url or "").strip().rstrip("/"),
            supabase_key=str(self.supabase_key or "").strip(),
            table=str(self.table or "sensor_data").strip() or "sensor_data",
            mode=mode,
            limit=max(1, int(self.limit)),
            poll_interval_s=max(0.5, float(self.poll_interval_s)),
            table_rows=max(1, int(self.table_rows)),
            refresh_hz=min(60.0, max(0.2, float(self.refresh_hz))),
            request_timeout_s=max(0.5, float(self.request_timeout_s)),
        )

    def sync_options(self) -> SyncOptions:
        return SyncOptions(
            table=self.table,
            mode=self.mode,
            limit=self.limit,
            poll_interval_s=self.poll_interval_s,
        )

    def refresh_interval_ms(self) -> int:
        """Return the GUI timer interval that corresponds to ``refresh_hz``."""
        return max(1, int(round(1000.0 / self.refresh_hz)))

    def has_credentials(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _recognized_fields() -> set[str]:
    """Return the dataclass field names accepted by :class:`DashboardConfig`."""
    return {f.name for f in fields(DashboardConfig)}


def _normalize_mapping(data: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Flatten known nesting patterns (top-level ``dashboard``/``supabase`` keys)."""
    merged: MutableMapping[str, Any] = {}
    for key, value in data.items():
        if key == "dashboard" and isinstance(value, Mapping):
            merged.update(value)
        elif key == "supabase" and isinstance(value, Mapping):
            if "url" in value:
                merged["supabase_url"] = value["url"]
            if "key" in value:
                merged["supabase_key"] = value["key"]
        else:
            merged[key] = value
    return merged


def config_from_mapping(data: Mapping[str, Any] | None) -> DashboardConfig:
    """Build :class:`DashboardConfig` from ``data`` (ignoring unknown keys)."""
    if not data:
        return DashboardConfig().sanitized()
    normalized = _normalize_mapping(data)
    known = _recognized_fields()
    payload = {key: normalized[key] for key in normalized.keys() & known}
    return DashboardConfig(**payload).sanitized()


def apply_env_overrides(
    config: DashboardConfig,
    environ: Mapping[str, str] | None = None,
) -> DashboardConfig:
    """
    Overlay ``SENSOGUARD_*`` environment variables on ``config``.

    Recognized: ``SUPABASE_URL``, ``SUPABASE_KEY``, ``TABLE``, ``MODE``,
    ``LIMIT`` and ``POLL_INTERVAL_S`` (each with the prefix).
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for name in ("supabase_url", "supabase_key", "table", "mode", "limit", "poll_interval_s"):
        value = env.get(ENV_PREFIX + name.upper())
        if value not in (None, ""):
            overrides[name] = value
    if not overrides:
        return config
    try:
        return replace(config, **overrides).sanitized()
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {ENV_PREFIX}* environment override: {exc}") from exc


def load_config(path: str | Path | None, *, environ: Mapping[str, str] | None = None) -> DashboardConfig:
    """
    Load configuration from ``path`` and apply environment overrides.

    Missing files fall back to default :class:`DashboardConfig`.
    """
    config = DashboardConfig().sanitized()
    if path is not None:
        cfg_path = Path(path).expanduser()
        if cfg_path.exists():
            with cfg_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            if not isinstance(raw, Mapping):
                raise ValueError(f"Expected mapping in {cfg_path}, got {type(raw).__name__}")
            config = config_from_mapping(raw)
    return apply_env_overrides(config, environ)


__all__ = [
    "DashboardConfig",
    "apply_env_overrides",
    "config_from_mapping",
    "load_config",
]
