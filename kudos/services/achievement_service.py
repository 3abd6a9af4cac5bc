"""
kudos.services.achievement_service — Achievement Evaluation
============================================================

``evaluate_achievements`` is meant to be called after *every* qualifying
action, so repeated calls must be cheap no-ops once an achievement is
earned.  The at-most-once guarantee does not rely on the "already earned"
read: the earned transition is a conditional write
(``UPDATE … WHERE earned_at IS NULL``), and only the evaluator whose write
matched awards the bonus.

The ``badge_earned`` ledger row is written in the same transaction as the
stamp.  If that transaction fails the achievement stays unearned and is
retried on the next evaluation; if only the later aggregate increment fails,
reconciliation restores the total from the ledger.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

from sqlalchemy import Engine, func, or_, select
from sqlalchemy.orm import Session, contains_eager

from kudos.constants import LEVEL_THRESHOLDS, STREAK_WINDOW_DAYS
from kudos.database.models import Achievement, EventType, UserAchievement
from kudos.database.store import PointsStore
from kudos.engine.achievements import UserStatsSnapshot, check_requirement
from kudos.engine.events import EventSink, GamificationEvent, emit_safely
from kudos.errors import StoreError
from kudos.services.points_service import bonus_ledger_entry, credit_bonus
from kudos.services.streak_service import consecutive_days

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActivityCounts:
    """Counts and cohort flags gathered from the wider application."""

    feedback_count: int = 0
    vote_count: int = 0
    questionnaire_count: int = 0
    session_count: int = 0
    early_user: bool = False


def build_stats_snapshot(
    store: PointsStore,
    user_id: str,
    counts: ActivityCounts,
    *,
    as_of: datetime | None = None,
    tz: tzinfo = UTC,
    window_days: int = STREAK_WINDOW_DAYS,
) -> UserStatsSnapshot:
    """Combine the aggregate projection, the streak, the badge collection
    and *counts*."""
    aggregate = store.read_aggregate(user_id)
    return UserStatsSnapshot(
        level=aggregate.level if aggregate else 1,
        total_points=aggregate.total_points if aggregate else 0,
        feedback_count=counts.feedback_count,
        vote_count=counts.vote_count,
        questionnaire_count=counts.questionnaire_count,
        consecutive_days=consecutive_days(
            store, user_id, as_of, tz=tz, window_days=window_days,
        ),
        early_user=counts.early_user,
        all_badges=store.has_all_badges(user_id),
    )


def evaluate_achievements(
    store: PointsStore,
    user_id: str,
    stats: UserStatsSnapshot,
    *,
    sink: EventSink | None = None,
    now: datetime | None = None,
    thresholds: Sequence[int] = LEVEL_THRESHOLDS,
) -> list[str]:
    """Award every catalog achievement *stats* newly satisfies.

    Returns the keys earned by this call, in catalog order.  A second call
    with the same (or better) stats returns ``[]``.
    """
    now = now or datetime.now(UTC)
    progress = stats.as_progress()
    newly_earned: list[str] = []

    for achievement in store.list_achievements():
        state = store.read_or_create_progress(user_id, achievement.id)
        if state.earned_at is not None:
            continue

        if not check_requirement(achievement.requirement, stats, achievement_key=achievement.key):
            store.update_progress(user_id, achievement.id, progress)
            continue

        bonus = None
        if achievement.points > 0:
            bonus = bonus_ledger_entry(
                achievement.points,
                resource_id=str(achievement.id),
                resource_type="achievement",
                metadata={"achievement_key": achievement.key},
            )
        try:
            won = store.conditional_set_earned(
                user_id, achievement.id, now, progress, bonus=bonus,
            )
        except StoreError:
            logger.error(
                "Could not record achievement %s for %s; left unearned for the next evaluation",
                achievement.key, user_id,
            )
            continue
        if not won:
            logger.debug(
                "Achievement %s for %s was earned by a concurrent evaluation",
                achievement.key, user_id,
            )
            continue

        logger.info("Achievement earned: %s by %s", achievement.key, user_id)
        if bonus is not None:
            credit_bonus(store, user_id, bonus, sink=sink, thresholds=thresholds)

        newly_earned.append(achievement.key)
        emit_safely(sink, GamificationEvent(
            user_id=user_id,
            type=EventType.ACHIEVEMENT_EARNED,
            payload={
                "achievement_id": achievement.id,
                "key": achievement.key,
                "name": achievement.name,
                "description": achievement.description,
                "points": achievement.points,
            },
        ))

    return newly_earned


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def get_all_achievements(engine: Engine, include_hidden: bool = False) -> list[Achievement]:
    """Catalog for public listings; hidden entries only on request."""
    stmt = select(Achievement)
    if not include_hidden:
        stmt = stmt.where(Achievement.hidden.is_(False))
    stmt = stmt.order_by(Achievement.category, Achievement.points, Achievement.id)
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).all())


def _user_achievements_query(user_id: str, earned_only: bool):
    stmt = (
        select(UserAchievement)
        .join(UserAchievement.achievement)
        .options(contains_eager(UserAchievement.achievement))
        .where(UserAchievement.user_id == user_id)
    )
    if earned_only:
        return stmt.where(UserAchievement.earned_at.is_not(None))
    return stmt.where(
        or_(UserAchievement.earned_at.is_not(None), Achievement.hidden.is_(False))
    )


def get_user_achievements(
    engine: Engine, user_id: str, *, earned_only: bool = True,
) -> list[UserAchievement]:
    """Progress rows for *user_id* with their definitions loaded.

    Earned rows come first (newest first).  Hidden achievements the user has
    not earned are never returned.
    """
    stmt = _user_achievements_query(user_id, earned_only).order_by(
        UserAchievement.earned_at.is_(None),
        UserAchievement.earned_at.desc(),
        Achievement.points.desc(),
    )
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).unique().all())


def get_user_achievement_progress(
    engine: Engine, user_id: str, category: str | None = None,
) -> list[UserAchievement]:
    """Earned and in-progress rows, optionally limited to one category."""
    stmt = _user_achievements_query(user_id, earned_only=False)
    if category is not None:
        stmt = stmt.where(Achievement.category == str(category))
    stmt = stmt.order_by(
        UserAchievement.earned_at.is_(None),
        UserAchievement.earned_at.desc(),
        Achievement.points.desc(),
    )
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).unique().all())


def get_achievement_stats(engine: Engine) -> dict:
    """Catalog size, total earned count and the five rarest earned achievements."""
    earned = UserAchievement.earned_at.is_not(None)
    holders = func.count(UserAchievement.user_id)
    with Session(engine) as session:
        total = session.scalar(select(func.count()).select_from(Achievement)) or 0
        earned_count = session.scalar(
            select(func.count()).select_from(UserAchievement).where(earned)
        ) or 0
        rarest = session.execute(
            select(Achievement.key, Achievement.name, holders.label("count"))
            .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
            .where(earned)
            .group_by(Achievement.id, Achievement.key, Achievement.name)
            .order_by(holders, Achievement.key)
            .limit(5)
        ).all()
    return {
        "total_achievements": total,
        "earned_achievements": earned_count,
        "rarest_achievements": [
            {"key": row.key, "name": row.name, "count": row.count} for row in rarest
        ],
    }
