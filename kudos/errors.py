"""
kudos.errors — Exception Taxonomy
==================================

Everything the gamification core raises derives from
:class:`GamificationError`, so callers that attach awards to a primary user
action can catch one type and carry on.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for all errors raised by the gamification core."""

    retryable: bool = False


class UnknownActionError(GamificationError, ValueError):
    """``award_points`` was called with an action missing from the point table."""

    def __init__(self, action: object) -> None:
        super().__init__(f"Unknown point action: {action!r}")
        self.action = action


class InvalidAwardError(GamificationError, ValueError):
    """The award request is well-formed but its amount is not acceptable."""


class StoreError(GamificationError, RuntimeError):
    """A storage call failed.  Safe to retry; the ledger stays authoritative."""

    retryable = True
