"""
kudos.services.notification_service — Notification Rows for Events
====================================================================

Default :class:`~kudos.engine.events.EventSink`: turns ``level_up``,
``achievement_earned`` and ``badge_earned`` events into ``notifications``
rows that the web UI lists.  Delivery (email, push) happens elsewhere.

Text construction lives in the ``build_*`` helpers so the sink only
persists.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from kudos.database.engine import get_session
from kudos.database.models import EventType, Notification
from kudos.engine.events import GamificationEvent

logger = logging.getLogger(__name__)

ACHIEVEMENTS_LINK = "/achievements"


def build_level_up_notification(event: GamificationEvent) -> Notification:
    level = event.payload.get("level")
    return Notification(
        user_id=event.user_id,
        type=EventType.LEVEL_UP.value,
        title=f"Level Up! You're now Level {level}",
        body=(
            f"Congratulations! You've reached Level {level}. "
            "Keep up the great contributions!"
        ),
        link=ACHIEVEMENTS_LINK,
    )


def build_achievement_notification(event: GamificationEvent) -> Notification:
    payload = event.payload
    description = payload.get("description") or ""
    points = payload.get("points", 0)
    body = f"{description} You earned {points} bonus points!".strip()
    return Notification(
        user_id=event.user_id,
        type=EventType.ACHIEVEMENT_EARNED.value,
        title=f"Achievement Unlocked: {payload.get('name', payload.get('key'))}",
        body=body,
        link=ACHIEVEMENTS_LINK,
    )


def build_badge_notification(event: GamificationEvent) -> Notification:
    payload = event.payload
    name = payload.get("name", payload.get("key"))
    description = payload.get("description") or ""
    return Notification(
        user_id=event.user_id,
        type=EventType.BADGE_EARNED.value,
        title=f"Badge Earned: {name}",
        body=f"Congratulations! You've earned the {name} badge. {description}".strip(),
        link=ACHIEVEMENTS_LINK,
    )


_BUILDERS = {
    EventType.LEVEL_UP: build_level_up_notification,
    EventType.ACHIEVEMENT_EARNED: build_achievement_notification,
    EventType.BADGE_EARNED: build_badge_notification,
}


class NotificationSink:
    """Persist one notification per event."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def emit(self, event: GamificationEvent) -> None:
        builder = _BUILDERS.get(event.type)
        if builder is None:
            logger.debug("No notification for event type %s", event.type)
            return
        with get_session(self.engine) as session:
            session.add(builder(event))
        logger.info("Notification created: %s for %s", event.type, event.user_id)


def get_notifications(
    engine: Engine, user_id: str, *, unread_only: bool = False, limit: int = 50,
) -> list[Notification]:
    """Newest-first notifications for *user_id*."""
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(stmt).all())
