"""Vote ledger data models.

The ledger holds the votes of the current round only. It maps a cell to
its PixelVotes (color -> VoteDetail). An absent cell means no votes were
recorded for it this round.

Invariants:
- VoteDetail.count == len(VoteDetail.voters).
- A voter appears in at most one VoteDetail per cell. This is enforced
  at write time by vote intake, not structurally.

Ledgers are values: record() returns a new ledger and leaves the
original untouched, so callers always pass freshly loaded state in and
get updated state back.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from placemini.models.canvas import Cell


class VoteRejection(str, enum.Enum):
    """Reasons a vote is refused. Nothing is mutated on rejection."""
    ALREADY_CURRENT_COLOR = "already_current_color"
    DUPLICATE_VOTE = "duplicate_vote"
    INVALID_CELL = "invalid_cell"
    UNKNOWN_COLOR = "unknown_color"
    VOTING_CLOSED = "voting_closed"


REJECTION_MESSAGES: dict[VoteRejection, str] = {
    VoteRejection.ALREADY_CURRENT_COLOR: "You cannot vote for the color the pixel already is.",
    VoteRejection.DUPLICATE_VOTE: "You have already voted for this pixel in this period.",
    VoteRejection.INVALID_CELL: "That pixel is not on the canvas.",
    VoteRejection.UNKNOWN_COLOR: "That color is not in the palette.",
    VoteRejection.VOTING_CLOSED: "Voting has concluded.",
}


@dataclass(frozen=True)
class VoteDetail:
    """Votes for one color on one cell.

    voters keeps submission order so the persisted list is stable.
    """
    count: int
    voters: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"Vote count must be >= 0, got {self.count}")
        if self.count != len(self.voters):
            raise ValueError(
                f"Vote count {self.count} does not match {len(self.voters)} voters"
            )
        if len(set(self.voters)) != len(self.voters):
            raise ValueError("A voter may appear only once per vote detail")

    def with_voter(self, voter_id: str) -> VoteDetail:
        return VoteDetail(count=self.count + 1, voters=self.voters + (voter_id,))


@dataclass(frozen=True)
class VoteLedger:
    """Per-cell, per-color tallies for the current round."""

    cells: Mapping[Cell, Mapping[str, VoteDetail]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.cells

    def pixel_votes(self, cell: Cell) -> dict[str, VoteDetail]:
        """Return a copy of the color -> VoteDetail map for one cell."""
        return dict(self.cells.get(cell, {}))

    def counts(self, cell: Cell) -> dict[str, int]:
        return {color: detail.count for color, detail in self.cells.get(cell, {}).items()}

    def has_voted(self, cell: Cell, voter_id: str) -> bool:
        """True if the voter holds a vote for any color on this cell."""
        return any(
            voter_id in detail.voters
            for detail in self.cells.get(cell, {}).values()
        )

    def vote_of(self, cell: Cell, voter_id: str) -> Optional[str]:
        """Return the color the voter chose on this cell, if any."""
        for color, detail in self.cells.get(cell, {}).items():
            if voter_id in detail.voters:
                return color
        return None

    def record(self, cell: Cell, color: str, voter_id: str) -> VoteLedger:
        """Return a new ledger with one more vote for color on cell.

        Does not check for duplicates; vote intake does that first.
        """
        pixel = dict(self.cells.get(cell, {}))
        detail = pixel.get(color, VoteDetail(count=0))
        pixel[color] = detail.with_voter(voter_id)
        cells = dict(self.cells)
        cells[cell] = pixel
        return VoteLedger(cells=cells)

    @property
    def total_votes(self) -> int:
        return sum(
            detail.count
            for pixel in self.cells.values()
            for detail in pixel.values()
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Encode as {"row,col": {color: {"count": n, "userIds": [...]}}}."""
        return {
            f"{row},{col}": {
                color: {"count": detail.count, "userIds": list(detail.voters)}
                for color, detail in pixel.items()
            }
            for (row, col), pixel in self.cells.items()
        }

    @staticmethod
    def from_dict(data: Any) -> VoteLedger:
        """Decode the persisted shape.

        Raises ValueError (or TypeError/KeyError wrapped as ValueError) on
        any structural problem so the caller can fall back to an empty
        ledger.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Ledger must be an object, got {type(data).__name__}")
        cells: dict[Cell, dict[str, VoteDetail]] = {}
        for key, pixel in data.items():
            parts = str(key).split(",")
            if len(parts) != 2:
                raise ValueError(f"Malformed cell key: {key!r}")
            try:
                cell = (int(parts[0]), int(parts[1]))
            except ValueError as e:
                raise ValueError(f"Malformed cell key: {key!r}") from e
            if not isinstance(pixel, dict):
                raise ValueError(f"Votes for cell {key!r} must be an object")
            decoded: dict[str, VoteDetail] = {}
            for color, detail in pixel.items():
                if not isinstance(detail, dict):
                    raise ValueError(f"Vote detail for {key!r}/{color!r} must be an object")
                voters = detail.get("userIds")
                count = detail.get("count")
                if not isinstance(voters, list) or not isinstance(count, int):
                    raise ValueError(f"Vote detail for {key!r}/{color!r} is malformed")
                decoded[color] = VoteDetail(
                    count=count,
                    voters=tuple(str(v) for v in voters),
                )
            if decoded:
                cells[cell] = decoded
        return VoteLedger(cells=cells)


@dataclass(frozen=True)
class VoteOutcome:
    """Result of a vote intake attempt.

    On rejection, ledger is the unchanged input ledger.
    """
    accepted: bool
    ledger: VoteLedger
    rejection: Optional[VoteRejection] = None

    @property
    def message(self) -> str:
        if self.rejection is None:
            return ""
        return REJECTION_MESSAGES[self.rejection]
