"""
kudos.database.store — Atomic Storage Primitives
=================================================

The services never read-modify-write shared rows.  Everything that touches
the per-user aggregate or a progress row is a single SQL statement:

* increments are ``INSERT … ON CONFLICT DO UPDATE SET x = x + :n RETURNING``;
* level raises are ``UPDATE … WHERE level < :new``;
* the earned transition is ``UPDATE … WHERE earned_at IS NULL``.

Works on PostgreSQL (production) and SQLite (tests); both dialects share the
``on_conflict_*`` / ``RETURNING`` API.  Any SQLAlchemy failure is re-raised
as :class:`~kudos.errors.StoreError`, which callers may retry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kudos.database.engine import get_session
from kudos.database.models import (
    CATEGORY_COLUMNS,
    Achievement,
    Badge,
    PointCategory,
    PointTransaction,
    UserAchievement,
    UserBadge,
    UserPoints,
)
from kudos.errors import StoreError

logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class PointsStore:
    """Ledger, aggregate and progress storage backed by a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        insert = _INSERTS.get(engine.dialect.name)
        if insert is None:
            raise StoreError(
                f"Unsupported database dialect {engine.dialect.name!r}; "
                "atomic upserts need PostgreSQL or SQLite."
            )
        self._insert = insert

    @contextmanager
    def _call(self, operation: str) -> Iterator[Session]:
        try:
            with get_session(self.engine) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.warning("Store operation %s failed: %s", operation, exc)
            raise StoreError(f"{operation} failed") from exc

    # -----------------------------------------------------------------------
    # Ledger
    # -----------------------------------------------------------------------
    def append_ledger_entry(
        self,
        *,
        user_id: str,
        points: int,
        category: PointCategory,
        action: str,
        resource_id: str | None = None,
        resource_type: str | None = None,
        metadata: dict | None = None,
        created_at: datetime | None = None,
    ) -> int:
        """Append one immutable ledger row and return its id."""
        with self._call("append_ledger_entry") as session:
            entry = self._new_ledger_row(
                user_id=user_id,
                points=points,
                category=category,
                action=action,
                resource_id=resource_id,
                resource_type=resource_type,
                metadata=metadata,
                created_at=created_at,
            )
            session.add(entry)
            session.flush()
            return entry.id

    @staticmethod
    def _new_ledger_row(
        *,
        user_id: str,
        points: int,
        category: PointCategory,
        action: str,
        resource_id: str | None = None,
        resource_type: str | None = None,
        metadata: dict | None = None,
        created_at: datetime | None = None,
    ) -> PointTransaction:
        return PointTransaction(
            user_id=user_id,
            points=points,
            category=str(category),
            action=str(action),
            resource_id=resource_id,
            resource_type=resource_type,
            metadata_=metadata or {},
            created_at=created_at.astimezone(UTC) if created_at else datetime.now(UTC),
        )

    def read_ledger_since(self, user_id: str, since: datetime) -> list[PointTransaction]:
        """Ledger rows for *user_id* created at or after *since*, newest first."""
        if since.tzinfo is not None:
            since = since.astimezone(UTC)
        with self._call("read_ledger_since") as session:
            rows = session.scalars(
                select(PointTransaction)
                .where(
                    PointTransaction.user_id == user_id,
                    PointTransaction.created_at >= since,
                )
                .order_by(PointTransaction.created_at.desc())
            ).all()
            session.expunge_all()
            return list(rows)

    # -----------------------------------------------------------------------
    # Aggregate projection
    # -----------------------------------------------------------------------
    def upsert_aggregate_with_increment(
        self,
        user_id: str,
        category: PointCategory,
        points: int,
        *,
        initial_threshold: int,
    ) -> tuple[int, int]:
        """Atomically add *points* to the user's aggregate row.

        Creates the row (level 1) if absent.  Returns
        ``(total_points, stored_level)`` as seen by this statement, so
        concurrent callers each observe their own post-increment total.
        """
        table = UserPoints.__table__
        column = CATEGORY_COLUMNS[PointCategory(category)]

        values = {
            "user_id": user_id,
            "total_points": points,
            "feedback_points": 0,
            "voting_points": 0,
            "research_points": 0,
            "quality_points": 0,
            "weekly_points": points,
            "monthly_points": points,
            "level": 1,
            "next_level_threshold": initial_threshold,
        }
        increments = {
            "total_points": table.c.total_points + points,
            "weekly_points": table.c.weekly_points + points,
            "monthly_points": table.c.monthly_points + points,
            "updated_at": func.now(),
        }
        if column is not None:
            values[column] = points
            increments[column] = table.c[column] + points

        stmt = (
            self._insert(table)
            .values(**values)
            .on_conflict_do_update(index_elements=[table.c.user_id], set_=increments)
            .returning(table.c.total_points, table.c.level)
        )
        with self._call("upsert_aggregate_with_increment") as session:
            row = session.execute(stmt).one()
            return row.total_points, row.level

    def raise_level(self, user_id: str, level: int, next_threshold: int) -> bool:
        """Set the stored level to *level* only if it is currently lower.

        Returns True when this call performed the raise.
        """
        table = UserPoints.__table__
        stmt = (
            update(table)
            .where(table.c.user_id == user_id, table.c.level < level)
            .values(level=level, next_level_threshold=next_threshold, updated_at=func.now())
        )
        with self._call("raise_level") as session:
            return session.execute(stmt).rowcount == 1

    def read_aggregate(self, user_id: str) -> UserPoints | None:
        with self._call("read_aggregate") as session:
            row = session.get(UserPoints, user_id)
            if row is not None:
                session.expunge(row)
            return row

    # -----------------------------------------------------------------------
    # Achievement catalog & progress
    # -----------------------------------------------------------------------
    def list_achievements(self) -> list[Achievement]:
        with self._call("list_achievements") as session:
            rows = session.scalars(select(Achievement).order_by(Achievement.id)).all()
            session.expunge_all()
            return list(rows)

    def read_or_create_progress(self, user_id: str, achievement_id: int) -> UserAchievement:
        """Fetch the progress row for the pair, inserting an empty one if absent."""
        table = UserAchievement.__table__
        stmt = (
            self._insert(table)
            .values(user_id=user_id, achievement_id=achievement_id, progress={})
            .on_conflict_do_nothing(index_elements=[table.c.user_id, table.c.achievement_id])
        )
        with self._call("read_or_create_progress") as session:
            session.execute(stmt)
            row = session.get(UserAchievement, (user_id, achievement_id))
            session.expunge(row)
            return row

    def _stamp_earned(self, operation: str, stmt, user_id: str, bonus: dict | None) -> bool:
        """Run the conditional earned *stmt* and, if it matched, append the
        *bonus* ledger row in the same transaction.

        Either both are committed or neither is, so a failed bonus write
        leaves the item unearned and the next evaluation retries it.
        """
        with self._call(operation) as session:
            if session.execute(stmt).rowcount != 1:
                return False
            if bonus is not None:
                session.add(self._new_ledger_row(user_id=user_id, **bonus))
                session.flush()
            return True

    def conditional_set_earned(
        self,
        user_id: str,
        achievement_id: int,
        earned_at: datetime,
        progress: dict,
        *,
        bonus: dict | None = None,
    ) -> bool:
        """Stamp ``earned_at`` if and only if it is still NULL.

        *bonus* holds the ``badge_earned`` ledger fields to write atomically
        with the stamp.  Returns False when another evaluator already won
        the transition.
        """
        table = UserAchievement.__table__
        stmt = (
            update(table)
            .where(
                table.c.user_id == user_id,
                table.c.achievement_id == achievement_id,
                table.c.earned_at.is_(None),
            )
            .values(earned_at=earned_at, progress=progress, updated_at=func.now())
        )
        return self._stamp_earned("conditional_set_earned", stmt, user_id, bonus)

    def update_progress(self, user_id: str, achievement_id: int, progress: dict) -> None:
        """Refresh the display snapshot of a not-yet-earned achievement."""
        table = UserAchievement.__table__
        stmt = (
            update(table)
            .where(
                table.c.user_id == user_id,
                table.c.achievement_id == achievement_id,
                table.c.earned_at.is_(None),
            )
            .values(progress=progress, updated_at=func.now())
        )
        with self._call("update_progress") as session:
            session.execute(stmt)

    # -----------------------------------------------------------------------
    # Badge catalog & progress
    # -----------------------------------------------------------------------
    def list_badges(self, category: str | None = None) -> list[Badge]:
        """Badges ordered by requirement, optionally for one category."""
        query = select(Badge).order_by(Badge.requirement, Badge.id)
        if category is not None:
            query = query.where(Badge.category == str(category))
        with self._call("list_badges") as session:
            rows = session.scalars(query).all()
            session.expunge_all()
            return list(rows)

    def read_or_create_badge_progress(self, user_id: str, badge_id: int) -> UserBadge:
        table = UserBadge.__table__
        stmt = (
            self._insert(table)
            .values(user_id=user_id, badge_id=badge_id, progress=0)
            .on_conflict_do_nothing(index_elements=[table.c.user_id, table.c.badge_id])
        )
        with self._call("read_or_create_badge_progress") as session:
            session.execute(stmt)
            row = session.get(UserBadge, (user_id, badge_id))
            session.expunge(row)
            return row

    def conditional_set_badge_earned(
        self,
        user_id: str,
        badge_id: int,
        earned_at: datetime,
        progress: int,
        *,
        bonus: dict | None = None,
    ) -> bool:
        """Badge counterpart of :meth:`conditional_set_earned`."""
        table = UserBadge.__table__
        stmt = (
            update(table)
            .where(
                table.c.user_id == user_id,
                table.c.badge_id == badge_id,
                table.c.earned_at.is_(None),
            )
            .values(earned_at=earned_at, progress=progress, updated_at=func.now())
        )
        return self._stamp_earned("conditional_set_badge_earned", stmt, user_id, bonus)

    def update_badge_progress(self, user_id: str, badge_id: int, progress: int) -> None:
        table = UserBadge.__table__
        stmt = (
            update(table)
            .where(
                table.c.user_id == user_id,
                table.c.badge_id == badge_id,
                table.c.earned_at.is_(None),
            )
            .values(progress=progress, updated_at=func.now())
        )
        with self._call("update_badge_progress") as session:
            session.execute(stmt)

    def has_all_badges(self, user_id: str) -> bool:
        """True when the catalog is non-empty and the user earned every badge."""
        with self._call("has_all_badges") as session:
            total = session.scalar(select(func.count()).select_from(Badge)) or 0
            if total == 0:
                return False
            earned = session.scalar(
                select(func.count())
                .select_from(UserBadge)
                .where(UserBadge.user_id == user_id, UserBadge.earned_at.is_not(None))
            ) or 0
            return earned >= total
