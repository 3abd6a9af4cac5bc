"""
kudos.engine.events — Gamification Events & Sinks
==================================================

The engine reports ``level_up`` and ``achievement_earned`` through an
:class:`EventSink`.  Sinks are downstream collaborators: a failing sink is
logged and ignored, it never undoes or blocks the award that produced the
event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from kudos.database.models import EventType

__all__ = ["CollectingSink", "EventSink", "GamificationEvent", "emit_safely"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GamificationEvent:
    """Something a user should hear about."""

    user_id: str
    type: EventType
    payload: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventSink(Protocol):
    def emit(self, event: GamificationEvent) -> None: ...


class CollectingSink:
    """Keeps events in memory (tests, batch jobs that forward later)."""

    def __init__(self) -> None:
        self.events: list[GamificationEvent] = []

    def emit(self, event: GamificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[GamificationEvent]:
        return [e for e in self.events if e.type == event_type]


def emit_safely(sink: EventSink | None, event: GamificationEvent) -> None:
    """Hand *event* to *sink*, logging instead of raising on failure."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception:
        logger.exception(
            "Event sink failed for %s event (user=%s)", event.type, event.user_id
        )
