"""Canvas service — unified facade for the voting canvas.

This is the primary interface for programmatic access to Place Mini.
It orchestrates:
- Session bootstrap (creation time, first round, size-migrated grid)
- Cell selection (vote counts and "already voted" for one cell)
- Vote intake (validation, ledger update)
- Settlement ticks (round expiry, canvas commit, history frames)
- Frame navigation (browsing settled rounds)

All operations produce typed results and re-read state from the
key-value store before acting; nothing held in memory is trusted for
decisions that affect other callers. Vote intake and settlement for a
session run under the same per-session lock, so within one process a
vote can never be lost to a concurrent vote or settlement. Separate
processes sharing a store remain subject to the lost-update and
double-settlement races of a store without compare-and-swap.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from placemini.engine.intake import cast_vote, validate_target
from placemini.engine.period_clock import is_same_day, open_period, remaining_text
from placemini.engine.settlement import SettlementEngine
from placemini.history.frames import HistoryLog
from placemini.models.canvas import Canvas, Cell, is_dark
from placemini.models.period import PeriodState
from placemini.models.votes import REJECTION_MESSAGES, VoteLedger, VoteRejection
from placemini.persistence.event_log import EventKind, EventLog, EventRecord
from placemini.persistence.kv_store import KeyValueStore
from placemini.persistence.state_store import CanvasStateStore
from placemini.policy.resolver import CanvasPolicy


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class SessionLocks:
    """One lock per session key, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, session_key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_key)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_key] = lock
            return lock


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CanvasService:
    """Voting canvas facade.

    Usage:
        policy = PolicyResolver.from_config_dir(config_dir).canvas_policy()
        service = CanvasService(policy, SqliteStore(data_dir / "canvas.db"))

        service.open_session("post-123")
        service.select_cell("post-123", "alice", 0, 0)
        service.cast_vote("post-123", "alice", 0, 0, "#E50000")

        # Once per tick interval, from a scheduler:
        service.tick("post-123")

        # Browsing history after voting has closed:
        service.navigate_frame("post-123", current=3, delta=-1)
    """

    def __init__(
        self,
        policy: CanvasPolicy,
        store: KeyValueStore,
        event_log: Optional[EventLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._policy = policy
        self._state = CanvasStateStore(store, policy)
        self._history = HistoryLog(self._state)
        self._settlement = SettlementEngine(self._state, self._history)
        self._locks = SessionLocks()
        self._clock = clock or _utcnow

        self._event_log = event_log

        # Set when an audit append fails after state was already written.
        # Canvas state is authoritative; the audit log is missing entries.
        self._audit_degraded: bool = False

    @property
    def policy(self) -> CanvasPolicy:
        return self._policy

    @property
    def history(self) -> HistoryLog:
        return self._history

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_session(
        self, session_key: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Bootstrap a session's persisted state if it does not exist yet.

        Safe to call on every render: existing state is kept, except that
        a persisted grid of another size is migrated to the configured
        size and written back.
        """
        if not session_key or not session_key.strip():
            return ServiceResult(success=False, errors=["session_key must be non-empty"])
        now = now or self.now()
        with self._locks.get(session_key):
            created, period, canvas = self._bootstrap(session_key, now)
        return ServiceResult(
            success=True,
            data={
                "session_key": session_key,
                "created_utc": created.isoformat(),
                "closes_at": period.closes_at.isoformat(),
                "grid_size": canvas.size,
                "frame_count": self._history.frame_count(session_key),
            },
        )

    def is_active(self, session_key: str, now: Optional[datetime] = None) -> bool:
        """True while the session is still open for voting.

        A session is live on the calendar day it was created; sessions
        that were never opened are not live.
        """
        created = self._state.load_created(session_key)
        if created is None:
            return False
        return is_same_day(created, now or self.now(), self._policy.zone)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def select_cell(
        self, session_key: str, voter_id: str, row: int, col: int,
    ) -> ServiceResult:
        """Return the latest color and vote counts for one cell."""
        cell = (row, col)
        canvas = self._load_canvas(session_key)
        if not canvas.contains(cell):
            return ServiceResult(
                success=False,
                errors=[REJECTION_MESSAGES[VoteRejection.INVALID_CELL]],
            )
        ledger = self._state.load_ledger(session_key)
        return ServiceResult(success=True, data=self._cell_data(canvas, ledger, cell, voter_id))

    def cast_vote(
        self,
        session_key: str,
        voter_id: str,
        row: int,
        col: int,
        color: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Record voter_id's vote for color on (row, col).

        Rejections are user-facing messages in errors, with the reason
        code in data["rejection"]; nothing is written on rejection.
        """
        if not voter_id or not voter_id.strip():
            return ServiceResult(success=False, errors=["voter_id must be non-empty"])
        now = now or self.now()
        cell = (row, col)

        with self._locks.get(session_key):
            created, _, canvas = self._bootstrap(session_key, now)
            ledger = self._state.load_ledger(session_key)

            rejection: Optional[VoteRejection] = None
            if not is_same_day(created, now, self._policy.zone):
                rejection = VoteRejection.VOTING_CLOSED
            else:
                rejection = validate_target(canvas, cell, color, self._policy.palette)

            if rejection is None:
                outcome = cast_vote(ledger, cell, color, voter_id, canvas.color_at(cell))
                rejection = outcome.rejection
                if outcome.accepted:
                    ledger = outcome.ledger
                    self._state.save_ledger(session_key, ledger)

        if rejection is not None:
            logger.info(
                "Rejected vote by %s on %s in session %s: %s",
                voter_id, cell, session_key, rejection.value,
            )
            self._record_event(
                EventKind.VOTE_REJECTED, session_key, voter_id,
                {"row": row, "col": col, "color": color, "reason": rejection.value},
                now,
            )
            return ServiceResult(
                success=False,
                errors=[REJECTION_MESSAGES[rejection]],
                data={"rejection": rejection.value},
            )

        self._record_event(
            EventKind.VOTE_CAST, session_key, voter_id,
            {"row": row, "col": col, "color": color},
            now,
        )
        return ServiceResult(success=True, data=self._cell_data(canvas, ledger, cell, voter_id))

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def tick(self, session_key: str, now: Optional[datetime] = None) -> ServiceResult:
        """Run one settlement check for the session."""
        now = now or self.now()
        with self._locks.get(session_key):
            result = self._settlement.check(session_key, now)

        if result.settled:
            self._record_event(
                EventKind.ROUND_SETTLED, session_key, "system",
                {
                    "frame_index": result.frame_index,
                    "votes_tallied": result.votes_tallied,
                    "cells_changed": len(result.winners),
                    "next_close": result.period.closes_at.isoformat(),
                },
                now,
            )

        data: dict[str, Any] = {
            "settled": result.settled,
            "remaining_ms": int(result.remaining.total_seconds() * 1000),
            "remaining_text": remaining_text(result.remaining),
            "closes_at": result.period.closes_at.isoformat(),
            "frame_count": self._history.frame_count(session_key),
        }
        if result.settled:
            data["frame_index"] = result.frame_index
            data["grid"] = result.canvas.to_lists()
            data["winners"] = {
                f"{r},{c}": color for (r, c), color in sorted(result.winners.items())
            }
        return ServiceResult(success=True, data=data)

    def record_ticker_stopped(self, session_key: str, reason: str) -> None:
        self._record_event(
            EventKind.TICKER_STOPPED, session_key, "system", {"reason": reason}, self.now(),
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def navigate_frame(
        self, session_key: str, current: int, delta: int,
    ) -> ServiceResult:
        """Move from frame current by delta; no-op outside [0, frame_count]."""
        target = self._history.navigate(session_key, current, delta)
        if target is None:
            return ServiceResult(
                success=False,
                errors=[f"Frame {current + delta} does not exist"],
                data={"frame": current},
            )
        canvas = self._history.read(session_key, target)
        if canvas is None:
            return ServiceResult(
                success=False,
                errors=[f"Frame {target} is missing from the history log"],
                data={"frame": current},
            )
        return ServiceResult(
            success=True,
            data={
                "frame": target,
                "frame_count": self._history.frame_count(session_key),
                "grid": canvas.to_lists(),
            },
        )

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def view(
        self,
        session_key: str,
        voter_id: str = "",
        selected: Optional[Cell] = (0, 0),
        frame: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Build the display model for one viewer.

        While the session is live this is the current canvas with a
        countdown; afterwards it shows a history frame (the latest one
        unless frame is given) with a "Frame i / n" caption. A frame outside
        [0, frame_count] falls back to the latest one. Each palette swatch
        carries its vote count and a white or black text color.
        """
        now = now or self.now()
        active = self.is_active(session_key, now)
        frame_count = self._history.frame_count(session_key)
        ledger = self._state.load_ledger(session_key)
        canvas = self._load_canvas(session_key)

        shown_frame = frame_count if frame is None else frame
        if not active and frame_count > 0:
            historical = self._history.read(session_key, shown_frame)
            if historical is None and shown_frame != frame_count:
                logger.warning(
                    "Frame %d does not exist for session %s; showing frame %d",
                    shown_frame, session_key, frame_count,
                )
                shown_frame = frame_count
                historical = self._history.read(session_key, shown_frame)
            if historical is not None:
                canvas = historical

        has_voted = (
            bool(voter_id)
            and selected is not None
            and ledger.has_voted(selected, voter_id)
        )
        if active:
            period = self._state.load_period(session_key)
            remaining = period.remaining(now) if period else self._policy.round_duration
            caption = f"{'Voted, ' if has_voted else ''}{remaining_text(remaining)} remaining"
        elif frame_count > 0:
            caption = f"Frame {shown_frame + 1} / {frame_count + 1}"
        else:
            caption = "Voting has concluded"

        counts: dict[str, int] = {}
        if selected is not None and canvas.contains(selected):
            cell_counts = ledger.counts(selected)
            counts = {color: cell_counts.get(color, 0) for color in self._policy.palette}

        # Vote counts are drawn on each palette swatch.
        swatches = [
            {
                "color": color,
                "votes": counts.get(color, 0),
                "text_color": "white" if is_dark(color) else "black",
            }
            for color in self._policy.palette
        ]

        return {
            "active": active,
            "grid": canvas.to_lists(),
            "selected": list(selected) if selected is not None else None,
            "counts": counts,
            "swatches": swatches,
            "has_voted": has_voted,
            "caption": caption,
            "frame": shown_frame,
            "frame_count": frame_count,
        }

    def status(self, session_key: str, now: Optional[datetime] = None) -> dict[str, Any]:
        """Return a summary of the session's persisted state."""
        now = now or self.now()
        period = self._state.load_period(session_key)
        created = self._state.load_created(session_key)
        ledger = self._state.load_ledger(session_key)
        return {
            "session_key": session_key,
            "created_utc": created.isoformat() if created else None,
            "active": self.is_active(session_key, now),
            "closes_at": period.closes_at.isoformat() if period else None,
            "remaining_ms": (
                int(period.remaining(now).total_seconds() * 1000) if period else None
            ),
            "votes": {
                "total": ledger.total_votes,
                "cells": len(ledger.cells),
            },
            "frame_count": self._history.frame_count(session_key),
            "grid_size": self._policy.grid_size,
            "audit_degraded": self._audit_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _bootstrap(
        self, session_key: str, now: datetime,
    ) -> tuple[datetime, PeriodState, Canvas]:
        """Create missing session keys. Caller holds the session lock."""
        created = self._state.load_created(session_key)
        first_open = created is None
        if created is None:
            created = now
            self._state.save_created(session_key, created)

        period = self._state.load_period(session_key)
        if period is None:
            period = open_period(self._policy.round_duration, now)
            self._state.save_period(session_key, period)

        canvas = self._state.migrate_canvas(session_key)
        if canvas is None:
            canvas = Canvas.blank(self._policy.grid_size, self._policy.background_color)
            self._state.save_canvas(session_key, canvas)

        if first_open:
            logger.info("Opened session %s", session_key)
            self._record_event(
                EventKind.SESSION_OPENED, session_key, "system",
                {"grid_size": canvas.size, "closes_at": period.closes_at.isoformat()},
                now,
            )
        return created, period, canvas

    def _load_canvas(self, session_key: str) -> Canvas:
        canvas = self._state.load_canvas(session_key)
        if canvas is None:
            return Canvas.blank(self._policy.grid_size, self._policy.background_color)
        return canvas

    def _cell_data(
        self, canvas: Canvas, ledger: VoteLedger, cell: Cell, voter_id: str,
    ) -> dict[str, Any]:
        cell_counts = ledger.counts(cell)
        return {
            "row": cell[0],
            "col": cell[1],
            "color": canvas.color_at(cell),
            "counts": {color: cell_counts.get(color, 0) for color in self._policy.palette},
            "has_voted": ledger.has_voted(cell, voter_id),
            "voted_color": ledger.vote_of(cell, voter_id),
        }

    def _next_event_id(self) -> str:
        """Generate an event ID unique across processes sharing one log file."""
        return f"EVT-{uuid.uuid4().hex}"

    def _record_event(
        self,
        kind: EventKind,
        session_key: str,
        actor_id: str,
        payload: dict[str, Any],
        now: datetime,
    ) -> None:
        if self._event_log is None:
            return
        try:
            self._event_log.append(EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                session_key=session_key,
                actor_id=actor_id,
                payload=payload,
                timestamp_utc=now,
            ))
        except (ValueError, OSError) as e:
            self._audit_degraded = True
            logger.error("Audit log append failed for %s: %s", kind.value, e)
