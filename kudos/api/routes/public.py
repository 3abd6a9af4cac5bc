"""
kudos.api.routes.public — Read-only public endpoints
=====================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from kudos.api.deps import get_config, get_engine, get_store
from kudos.config import KudosConfig
from kudos.database.models import (
    Achievement,
    Badge,
    BadgeCategory,
    PointTransaction,
    UserAchievement,
    UserBadge,
)
from kudos.database.store import PointsStore
from kudos.services import (
    achievement_service,
    badge_service,
    points_service,
    streak_service,
)

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _transaction_dict(t: PointTransaction) -> dict:
    return {
        "id": t.id,
        "points": t.points,
        "category": t.category,
        "action": t.action,
        "resource_id": t.resource_id,
        "resource_type": t.resource_type,
        "metadata": t.metadata_ or {},
        "created_at": _iso(t.created_at),
    }


def _achievement_dict(a: Achievement) -> dict:
    return {
        "id": a.id,
        "key": a.key,
        "name": a.name,
        "description": a.description,
        "category": a.category,
        "points": a.points,
    }


def _user_achievement_dict(ua: UserAchievement) -> dict:
    return {
        **_achievement_dict(ua.achievement),
        "earned_at": _iso(ua.earned_at),
        "progress": ua.progress or {},
    }


def _badge_dict(b: Badge) -> dict:
    return {
        "id": b.id,
        "key": b.key,
        "name": b.name,
        "description": b.description,
        "tier": b.tier,
        "category": b.category,
        "requirement": b.requirement,
        "points": b.points,
    }


def _user_badge_dict(ub: UserBadge) -> dict:
    return {
        **_badge_dict(ub.badge),
        "earned_at": _iso(ub.earned_at),
        "progress": ub.progress,
    }


# ---------------------------------------------------------------------------
# GET /users/{user_id}/points
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/points")
def get_user_points(
    user_id: str,
    engine: Engine = Depends(get_engine),
    cfg: KudosConfig = Depends(get_config),
):
    """Points summary, level progress and all-time rank."""
    summary = points_service.get_user_points(engine, user_id, cfg.level_thresholds)
    summary["rank"] = points_service.get_user_rank(engine, user_id, "all_time")
    return summary


# ---------------------------------------------------------------------------
# GET /users/{user_id}/history
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/history")
def get_point_history(
    user_id: str,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    engine: Engine = Depends(get_engine),
):
    rows = points_service.get_point_history(engine, user_id, limit=limit)
    return [_transaction_dict(t) for t in rows]


# ---------------------------------------------------------------------------
# GET /users/{user_id}/streak
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/streak")
def get_streak(
    user_id: str,
    store: PointsStore = Depends(get_store),
    cfg: KudosConfig = Depends(get_config),
):
    result = streak_service.get_streak(
        store, user_id, tz=cfg.tzinfo, window_days=cfg.streak_window_days,
    )
    return {"user_id": user_id, "consecutive_days": result.days, "truncated": result.truncated}


# ---------------------------------------------------------------------------
# GET /users/{user_id}/achievements
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/achievements")
def get_user_achievements(
    user_id: str,
    include_progress: bool = False,
    category: str | None = None,
    engine: Engine = Depends(get_engine),
):
    """Earned achievements; with ``include_progress`` also unearned visible ones."""
    if include_progress:
        rows = achievement_service.get_user_achievement_progress(engine, user_id, category)
    else:
        rows = achievement_service.get_user_achievements(engine, user_id)
        if category is not None:
            rows = [ua for ua in rows if ua.achievement.category == category]
    return [_user_achievement_dict(ua) for ua in rows]


# ---------------------------------------------------------------------------
# GET /achievements
# ---------------------------------------------------------------------------
@router.get("/achievements")
def list_achievements(engine: Engine = Depends(get_engine)):
    """Public catalog.  Hidden achievements are not listed."""
    return [_achievement_dict(a) for a in achievement_service.get_all_achievements(engine)]


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    period: Literal["weekly", "monthly", "all_time"] = "all_time",
    category: Literal["overall", "feedback", "voting", "research"] = "overall",
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    engine: Engine = Depends(get_engine),
):
    return {
        "period": period,
        "category": category,
        "entries": points_service.get_top_point_earners(
            engine, period=period, category=category, limit=limit,
        ),
    }


# ---------------------------------------------------------------------------
# GET /achievements/stats
# ---------------------------------------------------------------------------
@router.get("/achievements/stats")
def get_achievement_stats(engine: Engine = Depends(get_engine)):
    return achievement_service.get_achievement_stats(engine)


# ---------------------------------------------------------------------------
# GET /users/{user_id}/badges
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/badges")
def get_user_badges(
    user_id: str,
    include_progress: bool = False,
    category: BadgeCategory | None = None,
    engine: Engine = Depends(get_engine),
):
    """Earned badges; with ``include_progress`` every tracked badge."""
    if include_progress:
        rows = badge_service.get_user_badge_progress(engine, user_id, category)
    else:
        rows = badge_service.get_user_badges(engine, user_id)
        if category is not None:
            rows = [ub for ub in rows if ub.badge.category == category]
    return [_user_badge_dict(ub) for ub in rows]


# ---------------------------------------------------------------------------
# GET /badges
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(
    category: BadgeCategory | None = None,
    engine: Engine = Depends(get_engine),
):
    return [_badge_dict(b) for b in badge_service.get_all_badges(engine, category)]


# ---------------------------------------------------------------------------
# GET /badges/stats
# ---------------------------------------------------------------------------
@router.get("/badges/stats")
def get_badge_stats(engine: Engine = Depends(get_engine)):
    return badge_service.get_badge_stats(engine)


# ---------------------------------------------------------------------------
# GET /leaderboard/stats
# ---------------------------------------------------------------------------
@router.get("/leaderboard/stats")
def get_leaderboard_stats(engine: Engine = Depends(get_engine)):
    return points_service.get_leaderboard_stats(engine)


# ---------------------------------------------------------------------------
# GET /users/{user_id}/leaderboard
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/leaderboard")
def get_nearby_leaderboard(
    user_id: str,
    period: Literal["weekly", "monthly", "all_time"] = "all_time",
    category: Literal["overall", "feedback", "voting", "research"] = "overall",
    range_: Annotated[int, Query(alias="range", ge=1, le=25)] = 5,
    engine: Engine = Depends(get_engine),
):
    """Entries around *user_id*; empty when the user has no standing."""
    return {
        "period": period,
        "category": category,
        "entries": points_service.get_nearby_leaderboard(
            engine, user_id, period=period, category=category, range_=range_,
        ),
    }
