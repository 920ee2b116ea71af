"""
ascent.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for infrastructure settings and the reward catalog
tables.  Secrets (``DATABASE_URL``, ``JWT_SECRET``) stay in the
environment / ``.env``.

Usage::

    from ascent.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.app_name)                 # "Ascent"
    print(cfg.catalog.level_thresholds) # (100, 250, 500, ...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from ascent.constants import EVENT_BUFFER_CAPACITY
from ascent.engine.catalog import CatalogError, RewardCatalog


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AscentConfig:
    """Immutable configuration loaded from ``config.yaml``.

    ``catalog`` is validated while loading, so a malformed table stops the
    process at startup instead of failing a request later.
    """

    # Identity
    app_name: str

    # Dashboard
    dashboard_port: int

    # Streak day boundaries (IANA zone name)
    streak_timezone: str = "UTC"

    # Undrained notifications kept in memory
    event_buffer_size: int = EVENT_BUFFER_CAPACITY

    # Reward tables
    catalog: RewardCatalog = field(default_factory=RewardCatalog)

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.streak_timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AscentConfig:
    """Read *path* and return an :class:`AscentConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    CatalogError
        If the ``catalog`` section or ``streak_timezone`` is invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    streak_timezone = str(raw.get("streak_timezone") or "UTC")
    try:
        ZoneInfo(streak_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise CatalogError(f"Unknown streak_timezone: {streak_timezone!r}") from exc

    return AscentConfig(
        app_name=raw["app_name"],
        dashboard_port=int(raw["dashboard_port"]),
        streak_timezone=streak_timezone,
        event_buffer_size=int(raw.get("event_buffer_size", EVENT_BUFFER_CAPACITY)),
        catalog=RewardCatalog.from_mapping(raw.get("catalog")),
    )
