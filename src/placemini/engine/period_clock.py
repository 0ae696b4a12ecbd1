"""Period clock — round deadlines, expiry, and countdown text."""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo

from placemini.models.period import PeriodState


def open_period(duration: timedelta, now: datetime) -> PeriodState:
    """Start a round that closes one full duration after now."""
    return PeriodState(closes_at=now + duration)


def is_expired(period: PeriodState, now: datetime) -> bool:
    return now >= period.closes_at


def is_same_day(created_utc: datetime, now: datetime, zone: tzinfo) -> bool:
    """True while now falls on the calendar day the session was created."""
    return created_utc.astimezone(zone).date() == now.astimezone(zone).date()


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" + ("" if value == 1 else "s")


def remaining_text(remaining: timedelta) -> str:
    """Render a countdown as e.g. "4 minutes", "1 hour, 2 minutes" or "42 seconds".

    Seconds are only shown once less than a minute remains; hours and
    minutes are shown when non-zero.
    """
    total_ms = max(int(remaining.total_seconds() * 1000), 0)
    seconds = (total_ms // 1000) % 60
    minutes = (total_ms // 60_000) % 60
    hours = (total_ms // 3_600_000) % 24

    parts = []
    if hours > 0:
        parts.append(_plural(hours, "hour"))
    if minutes > 0:
        parts.append(_plural(minutes, "minute"))
    if total_ms < 60_000:
        parts.append(_plural(seconds, "second"))
    return ", ".join(parts) if parts else "0 seconds"
