"""Vote intake — validates a single vote against the current ledger.

Rules, checked in order:
1. The vote must not be for the cell's current color.
2. The voter must not already hold a vote on the cell this round.
3. Otherwise the vote is recorded under (cell, color).

Votes cannot be retracted or changed within a round. Intake never
touches the canvas; only settlement does.
"""

from __future__ import annotations

from typing import Optional, Sequence

from placemini.models.canvas import Canvas, Cell
from placemini.models.votes import VoteLedger, VoteOutcome, VoteRejection


def validate_target(
    canvas: Canvas,
    cell: Cell,
    color: str,
    palette: Sequence[str],
) -> Optional[VoteRejection]:
    """Check that the cell exists and the color is votable."""
    if not canvas.contains(cell):
        return VoteRejection.INVALID_CELL
    if color not in palette:
        return VoteRejection.UNKNOWN_COLOR
    return None


def cast_vote(
    ledger: VoteLedger,
    cell: Cell,
    color: str,
    voter_id: str,
    current_color: str,
) -> VoteOutcome:
    """Record one vote, or reject it leaving the ledger unchanged."""
    if color == current_color:
        return VoteOutcome(
            accepted=False, ledger=ledger,
            rejection=VoteRejection.ALREADY_CURRENT_COLOR,
        )
    if ledger.has_voted(cell, voter_id):
        return VoteOutcome(
            accepted=False, ledger=ledger,
            rejection=VoteRejection.DUPLICATE_VOTE,
        )
    return VoteOutcome(accepted=True, ledger=ledger.record(cell, color, voter_id))
