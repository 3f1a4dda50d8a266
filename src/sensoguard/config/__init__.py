"""Configuration objects and helpers for SensoGuard.

Settings come from an optional ``dashboard.yaml`` (see
``dashboard.example.yaml`` at the repository root) with ``SENSOGUARD_*``
environment variables layered on top, so the store's URL and anon key never
need to live in the file. The resulting :class:`DashboardConfig` feeds the
synchronizer options and GUI refresh timers.
"""

from .runtime import DashboardConfig, apply_env_overrides, config_from_mapping, load_config

__all__ = ["DashboardConfig", "apply_env_overrides", "config_from_mapping", "load_config"]
