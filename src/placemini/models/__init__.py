"""Core data models for Place Mini."""

from placemini.models.canvas import Canvas, Cell, is_dark
from placemini.models.period import PeriodState
from placemini.models.votes import (
    REJECTION_MESSAGES,
    VoteDetail,
    VoteLedger,
    VoteOutcome,
    VoteRejection,
)

__all__ = [
    "Canvas",
    "Cell",
    "is_dark",
    "PeriodState",
    "REJECTION_MESSAGES",
    "VoteDetail",
    "VoteLedger",
    "VoteOutcome",
    "VoteRejection",
]
