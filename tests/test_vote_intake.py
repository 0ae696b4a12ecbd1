"""Tests for vote intake and the ledger — proves one vote per voter per cell."""

import pytest

from placemini.engine.intake import cast_vote, validate_target
from placemini.models.canvas import Canvas
from placemini.models.votes import (
    VoteDetail,
    VoteLedger,
    VoteRejection,
)


PALETTE = ("A", "B", "C")


def _canvas() -> Canvas:
    return Canvas.blank(2, "A")


class TestVoteDetail:
    def test_count_must_match_voters(self) -> None:
        with pytest.raises(ValueError, match="does not match"):
            VoteDetail(count=2, voters=("v1",))

    def test_duplicate_voters_rejected(self) -> None:
        with pytest.raises(ValueError, match="only once"):
            VoteDetail(count=2, voters=("v1", "v1"))

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            VoteDetail(count=-1)


class TestCastVote:
    def test_two_voters_same_color(self) -> None:
        ledger = VoteLedger()
        first = cast_vote(ledger, (0, 0), "B", "v1", current_color="A")
        second = cast_vote(first.ledger, (0, 0), "B", "v2", current_color="A")
        assert first.accepted and second.accepted
        detail = second.ledger.pixel_votes((0, 0))["B"]
        assert detail.count == 2
        assert set(detail.voters) == {"v1", "v2"}

    def test_vote_for_current_color_rejected(self) -> None:
        ledger = VoteLedger()
        outcome = cast_vote(ledger, (0, 0), "A", "v1", current_color="A")
        assert not outcome.accepted
        assert outcome.rejection == VoteRejection.ALREADY_CURRENT_COLOR
        assert outcome.ledger is ledger
        assert outcome.ledger.is_empty
        assert "already is" in outcome.message

    def test_second_vote_on_same_cell_rejected(self) -> None:
        first = cast_vote(VoteLedger(), (1, 1), "B", "v1", current_color="A")
        second = cast_vote(first.ledger, (1, 1), "C", "v1", current_color="A")
        assert not second.accepted
        assert second.rejection == VoteRejection.DUPLICATE_VOTE
        assert second.ledger.counts((1, 1)) == {"B": 1}
        assert "already voted" in second.message

    def test_same_color_twice_rejected(self) -> None:
        first = cast_vote(VoteLedger(), (1, 1), "B", "v1", current_color="A")
        second = cast_vote(first.ledger, (1, 1), "B", "v1", current_color="A")
        assert second.rejection == VoteRejection.DUPLICATE_VOTE
        assert second.ledger.counts((1, 1)) == {"B": 1}

    def test_same_voter_different_cells_allowed(self) -> None:
        ledger = cast_vote(VoteLedger(), (0, 0), "B", "v1", current_color="A").ledger
        outcome = cast_vote(ledger, (0, 1), "B", "v1", current_color="A")
        assert outcome.accepted
        assert outcome.ledger.total_votes == 2

    def test_voter_appears_in_exactly_one_detail(self) -> None:
        ledger = VoteLedger()
        for color in ["B", "C", "B", "C", "A"]:
            ledger = cast_vote(ledger, (0, 0), color, "v1", current_color="A").ledger
        holders = [
            color for color, detail in ledger.pixel_votes((0, 0)).items()
            if "v1" in detail.voters
        ]
        assert holders == ["B"]

    def test_record_does_not_mutate_input(self) -> None:
        ledger = VoteLedger()
        cast_vote(ledger, (0, 0), "B", "v1", current_color="A")
        assert ledger.is_empty


class TestValidateTarget:
    def test_valid_target(self) -> None:
        assert validate_target(_canvas(), (1, 0), "B", PALETTE) is None

    @pytest.mark.parametrize("cell", [(-1, 0), (0, 2), (2, 2)])
    def test_cell_off_canvas(self, cell) -> None:
        assert validate_target(_canvas(), cell, "B", PALETTE) == VoteRejection.INVALID_CELL

    def test_unknown_color(self) -> None:
        assert validate_target(_canvas(), (0, 0), "Z", PALETTE) == VoteRejection.UNKNOWN_COLOR


class TestLedgerSerialization:
    def test_persisted_shape(self) -> None:
        ledger = VoteLedger().record((0, 1), "B", "v1").record((0, 1), "B", "v2")
        assert ledger.to_dict() == {"0,1": {"B": {"count": 2, "userIds": ["v1", "v2"]}}}

    def test_decodes_persisted_shape(self) -> None:
        ledger = VoteLedger.from_dict(
            {"3,4": {"B": {"count": 1, "userIds": ["v1"]}, "C": {"count": 0, "userIds": []}}}
        )
        assert ledger.counts((3, 4)) == {"B": 1, "C": 0}
        assert ledger.has_voted((3, 4), "v1")
        assert ledger.vote_of((3, 4), "v1") == "B"

    @pytest.mark.parametrize("raw", [
        [],
        {"0-0": {}},
        {"a,b": {}},
        {"0,0": []},
        {"0,0": {"B": {"count": 2, "userIds": ["v1"]}}},
        {"0,0": {"B": {"count": "1", "userIds": ["v1"]}}},
        {"0,0": {"B": "lots"}},
    ])
    def test_malformed_raises_value_error(self, raw) -> None:
        with pytest.raises(ValueError):
            VoteLedger.from_dict(raw)
