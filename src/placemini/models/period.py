"""Voting period state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class PeriodState:
    """Deadline of the current voting round.

    The round is open while now < closes_at and expired once
    now >= closes_at.
    """
    closes_at: datetime

    def remaining(self, now: datetime) -> timedelta:
        """Time left in the round, never negative."""
        left = self.closes_at - now
        return left if left > timedelta(0) else timedelta(0)
