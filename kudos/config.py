"""
kudos.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for the engine's tunables (level thresholds, streak
window, local time zone) and the API identity.  The database URL is *not*
stored here; it comes from ``DATABASE_URL`` (see
:mod:`kudos.database.engine`).

Usage::

    from kudos.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.level_thresholds)  # (100, 250, 500, ...)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from kudos.constants import LEVEL_THRESHOLDS, STREAK_WINDOW_DAYS, validate_thresholds


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class KudosConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str = "Kudos"

    # Streak day boundaries are computed in this zone
    timezone: str = "UTC"

    # Leveling
    level_thresholds: tuple[int, ...] = LEVEL_THRESHOLDS

    # Streak scan bound (days before yesterday that are inspected)
    streak_window_days: int = STREAK_WINDOW_DAYS

    # API
    api_port: int = 8000

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> KudosConfig:
    """Read *path* and return a :class:`KudosConfig` instance.

    Keys that are absent fall back to the dataclass defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If the threshold table, streak window or time zone is invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = KudosConfig()

    thresholds = validate_thresholds(
        raw.get("level_thresholds") or defaults.level_thresholds
    )

    window = int(raw.get("streak_window_days", defaults.streak_window_days))
    if window < 1:
        raise ValueError(f"streak_window_days must be at least 1, got {window}.")

    timezone = str(raw.get("timezone", defaults.timezone))
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown time zone: {timezone!r}") from exc

    return KudosConfig(
        app_name=str(raw.get("app_name", defaults.app_name)),
        timezone=timezone,
        level_thresholds=thresholds,
        streak_window_days=window,
        api_port=int(raw.get("api_port", defaults.api_port)),
    )
