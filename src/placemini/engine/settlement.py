"""Settlement engine — resolves an expired round into a new canvas.

On each check the engine re-reads period, canvas and ledger from the
store. If the round has not expired nothing is written. If it has:

1. The next deadline (now + round duration) is written first, so any
   concurrent checker that re-reads the period sees an open round.
2. Winners are resolved for every voted cell and applied to the canvas
   in one batch; the canvas is committed.
3. The ledger is reset to empty.
4. The new canvas is appended to the history log.

Winner rule: the color with the highest count wins. Ties go to the color
earliest in palette order; colors outside the palette rank after every
palette color, alphabetically. Cells with no votes keep their color,
and ledger cells outside the grid are discarded.

Callers serialize checks per session (see CanvasService); the write
ordering above narrows the cross-process double-settlement window but
cannot close it without a compare-and-swap primitive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from placemini.engine.period_clock import is_expired, open_period
from placemini.history.frames import HistoryLog
from placemini.models.canvas import Canvas, Cell
from placemini.models.period import PeriodState
from placemini.models.votes import VoteLedger
from placemini.persistence.state_store import CanvasStateStore
from placemini.policy.resolver import CanvasPolicy


logger = logging.getLogger(__name__)


def resolve_winners(ledger: VoteLedger, policy: CanvasPolicy) -> dict[Cell, str]:
    """Return the winning color per voted cell.

    A pure function of the ledger and the palette order.
    """
    winners: dict[Cell, str] = {}
    for cell, pixel in ledger.cells.items():
        best: Optional[str] = None
        best_count = 0
        for color in sorted(pixel, key=policy.palette_rank):
            count = pixel[color].count
            if count > best_count:
                best, best_count = color, count
        if best is not None:
            winners[cell] = best
    return winners


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of one settlement check."""
    settled: bool
    period: PeriodState
    remaining: timedelta
    canvas: Optional[Canvas] = None
    frame_index: Optional[int] = None
    winners: dict[Cell, str] = field(default_factory=dict)
    votes_tallied: int = 0


class SettlementEngine:
    """Runs the expiry check and settlement for a session."""

    def __init__(self, state: CanvasStateStore, history: HistoryLog) -> None:
        self._state = state
        self._history = history

    def check(self, session_key: str, now: datetime) -> SettlementResult:
        """Settle the session's round if its deadline has passed."""
        policy = self._state.policy
        period = self._state.load_period(session_key)
        if period is None:
            period = open_period(policy.round_duration, now)
            self._state.save_period(session_key, period)
            logger.info("Opened first round for session %s", session_key)
            return SettlementResult(
                settled=False, period=period, remaining=period.remaining(now),
            )

        if not is_expired(period, now):
            return SettlementResult(
                settled=False, period=period, remaining=period.remaining(now),
            )

        next_period = open_period(policy.round_duration, now)
        self._state.save_period(session_key, next_period)

        canvas = self._state.load_canvas(session_key)
        if canvas is None:
            canvas = Canvas.blank(policy.grid_size, policy.background_color)
        ledger = self._state.load_ledger(session_key)

        winners = resolve_winners(ledger, policy)
        dropped = [cell for cell in winners if not canvas.contains(cell)]
        for cell in dropped:
            del winners[cell]
        if dropped:
            logger.warning(
                "Discarded %d ledger cells outside the %dx%d grid for session %s",
                len(dropped), canvas.size, canvas.size, session_key,
            )

        new_canvas = canvas.with_colors(winners)
        self._state.save_canvas(session_key, new_canvas)
        self._state.save_ledger(session_key, VoteLedger())
        frame_index = self._history.append(session_key, new_canvas)

        logger.info(
            "Settled round for session %s: %d votes, %d cells changed, frame %d",
            session_key, ledger.total_votes, len(winners), frame_index,
        )
        return SettlementResult(
            settled=True,
            period=next_period,
            remaining=next_period.remaining(now),
            canvas=new_canvas,
            frame_index=frame_index,
            winners=winners,
            votes_tallied=ledger.total_votes,
        )
