"""
kudos.engine.streak — Consecutive-Day Streak Calculation
=========================================================

Pure calculation over ledger timestamps.  No database I/O.

A streak is the run of consecutive *local* calendar days with at least one
ledger entry that ends **yesterday**, plus one if **today** is active too.
Today being quiet does not break the streak, because the day is not over:

    activity on -3, -2, -1        → 3
    activity on -3, -2, -1 and 0  → 4
    activity on 0 only            → 1
    no activity on -1 nor 0       → 0

The backward scan inspects at most ``window_days`` days before today.  When
every inspected day is active the scan stops anyway and the result is a
*lower bound*, flagged with ``truncated=True``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo

from kudos.constants import STREAK_WINDOW_DAYS


@dataclass(frozen=True, slots=True)
class StreakResult:
    days: int
    truncated: bool = False


def as_utc(ts: datetime) -> datetime:
    """Treat naive timestamps (as SQLite returns them) as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts


def local_date(ts: datetime, tz: tzinfo = UTC) -> date:
    """Calendar day of *ts* in *tz*."""
    return as_utc(ts).astimezone(tz).date()


def window_start(as_of: datetime, tz: tzinfo = UTC, window_days: int = STREAK_WINDOW_DAYS) -> datetime:
    """Local midnight of the oldest day a scan from *as_of* can inspect."""
    first_day = local_date(as_of, tz) - timedelta(days=window_days)
    return datetime.combine(first_day, datetime.min.time(), tzinfo=tz)


def calculate_streak(
    timestamps: Iterable[datetime],
    as_of: datetime,
    *,
    tz: tzinfo = UTC,
    window_days: int = STREAK_WINDOW_DAYS,
) -> StreakResult:
    """Count consecutive active days ending yesterday (plus today if active)."""
    if window_days < 1:
        raise ValueError(f"window_days must be at least 1, got {window_days}")

    active_days = {local_date(ts, tz) for ts in timestamps}
    if not active_days:
        return StreakResult(days=0)

    today = local_date(as_of, tz)
    days = 0
    truncated = False
    cursor = today - timedelta(days=1)
    for _ in range(window_days):
        if cursor not in active_days:
            break
        days += 1
        cursor -= timedelta(days=1)
    else:
        truncated = True

    if today in active_days:
        days += 1
    return StreakResult(days=days, truncated=truncated)
