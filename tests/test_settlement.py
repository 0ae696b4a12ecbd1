"""Tests for the settlement engine — proves rounds settle once and deterministically."""

from datetime import datetime, timedelta, timezone

import pytest

from placemini.engine.settlement import SettlementEngine, resolve_winners
from placemini.history.frames import HistoryLog
from placemini.models.canvas import Canvas
from placemini.models.period import PeriodState
from placemini.models.votes import VoteLedger
from placemini.persistence.kv_store import MemoryStore
from placemini.persistence.state_store import CanvasStateStore
from placemini.policy.resolver import CanvasPolicy


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
SESSION = "post-1"


@pytest.fixture
def policy() -> CanvasPolicy:
    return CanvasPolicy(grid_size=2, palette=("A", "B", "C"), background_color="A")


@pytest.fixture
def state(policy: CanvasPolicy) -> CanvasStateStore:
    return CanvasStateStore(MemoryStore(), policy)


@pytest.fixture
def engine(state: CanvasStateStore) -> SettlementEngine:
    return SettlementEngine(state, HistoryLog(state))


def _ledger(*votes: tuple[tuple[int, int], str, str]) -> VoteLedger:
    ledger = VoteLedger()
    for cell, color, voter in votes:
        ledger = ledger.record(cell, color, voter)
    return ledger


def _expired(state: CanvasStateStore) -> None:
    state.save_period(SESSION, PeriodState(closes_at=NOW - timedelta(seconds=1)))


class TestResolveWinners:
    def test_highest_count_wins(self, policy: CanvasPolicy) -> None:
        ledger = _ledger(((0, 0), "B", "v1"), ((0, 0), "C", "v2"), ((0, 0), "C", "v3"))
        assert resolve_winners(ledger, policy) == {(0, 0): "C"}

    def test_tie_goes_to_palette_order(self, policy: CanvasPolicy) -> None:
        # C was voted first, but B precedes C in the palette
        ledger = _ledger(((1, 1), "C", "v1"), ((1, 1), "B", "v2"))
        assert resolve_winners(ledger, policy) == {(1, 1): "B"}

    def test_unknown_colors_rank_after_palette(self, policy: CanvasPolicy) -> None:
        ledger = _ledger(((0, 0), "Z", "v1"), ((0, 0), "C", "v2"), ((0, 1), "Y", "v3"), ((0, 1), "X", "v4"))
        assert resolve_winners(ledger, policy) == {(0, 0): "C", (0, 1): "X"}

    def test_zero_count_cells_produce_no_winner(self, policy: CanvasPolicy) -> None:
        ledger = VoteLedger.from_dict({"0,0": {"B": {"count": 0, "userIds": []}}})
        assert resolve_winners(ledger, policy) == {}

    def test_deterministic(self, policy: CanvasPolicy) -> None:
        ledger = _ledger(
            ((0, 0), "C", "v1"), ((0, 0), "B", "v2"),
            ((1, 0), "B", "v3"), ((1, 0), "C", "v4"), ((1, 0), "C", "v5"),
        )
        assert resolve_winners(ledger, policy) == resolve_winners(ledger, policy)


class TestCheck:
    def test_open_round_is_untouched(
        self, engine: SettlementEngine, state: CanvasStateStore,
    ) -> None:
        period = PeriodState(closes_at=NOW + timedelta(minutes=2))
        state.save_period(SESSION, period)
        state.save_ledger(SESSION, _ledger(((0, 0), "B", "v1")))

        result = engine.check(SESSION, NOW)
        assert not result.settled
        assert result.remaining == timedelta(minutes=2)
        assert state.load_ledger(SESSION).total_votes == 1
        assert state.load_frame_count(SESSION) == 0
        assert state.load_period(SESSION) == period

    def test_missing_period_opens_first_round(
        self, engine: SettlementEngine, state: CanvasStateStore, policy: CanvasPolicy,
    ) -> None:
        result = engine.check(SESSION, NOW)
        assert not result.settled
        assert state.load_period(SESSION).closes_at == NOW + policy.round_duration

    def test_scenario_two_votes_settle(
        self, engine: SettlementEngine, state: CanvasStateStore, policy: CanvasPolicy,
    ) -> None:
        state.save_canvas(SESSION, Canvas.blank(2, "A"))
        state.save_ledger(SESSION, _ledger(((0, 0), "B", "v1"), ((0, 0), "B", "v2")))
        _expired(state)

        result = engine.check(SESSION, NOW)

        assert result.settled
        assert result.frame_index == 1
        assert state.load_canvas(SESSION).to_lists() == [["B", "A"], ["A", "A"]]
        assert state.load_ledger(SESSION).is_empty
        assert state.load_frame_count(SESSION) == 1
        assert state.load_frame(SESSION, 1).to_lists() == [["B", "A"], ["A", "A"]]
        assert state.load_period(SESSION).closes_at == NOW + policy.round_duration
        assert result.remaining == policy.round_duration

    def test_settlement_anchors_to_now_not_old_deadline(
        self, engine: SettlementEngine, state: CanvasStateStore, policy: CanvasPolicy,
    ) -> None:
        state.save_period(SESSION, PeriodState(closes_at=NOW - timedelta(hours=3)))
        engine.check(SESSION, NOW)
        assert state.load_period(SESSION).closes_at == NOW + policy.round_duration

    def test_cells_without_votes_keep_color(
        self, engine: SettlementEngine, state: CanvasStateStore,
    ) -> None:
        state.save_canvas(SESSION, Canvas(rows=(("C", "B"), ("B", "C"))))
        state.save_ledger(SESSION, _ledger(((1, 1), "A", "v1")))
        _expired(state)

        engine.check(SESSION, NOW)
        assert state.load_canvas(SESSION).to_lists() == [["C", "B"], ["B", "A"]]

    def test_empty_round_still_appends_frame(
        self, engine: SettlementEngine, state: CanvasStateStore,
    ) -> None:
        state.save_canvas(SESSION, Canvas.blank(2, "A"))
        _expired(state)
        result = engine.check(SESSION, NOW)
        assert result.settled
        assert state.load_frame_count(SESSION) == 1
        assert result.votes_tallied == 0

    def test_out_of_bounds_ledger_cells_discarded(
        self, engine: SettlementEngine, state: CanvasStateStore,
    ) -> None:
        state.save_canvas(SESSION, Canvas.blank(2, "A"))
        state.save_ledger(SESSION, _ledger(((5, 5), "B", "v1"), ((0, 1), "C", "v2")))
        _expired(state)

        result = engine.check(SESSION, NOW)
        assert result.winners == {(0, 1): "C"}
        assert state.load_canvas(SESSION).to_lists() == [["A", "C"], ["A", "A"]]

    def test_second_check_in_same_round_is_noop(
        self, engine: SettlementEngine, state: CanvasStateStore,
    ) -> None:
        _expired(state)
        first = engine.check(SESSION, NOW)
        second = engine.check(SESSION, NOW + timedelta(seconds=1))
        assert first.settled
        assert not second.settled
        assert state.load_frame_count(SESSION) == 1

    def test_consecutive_rounds_number_frames(
        self, engine: SettlementEngine, state: CanvasStateStore, policy: CanvasPolicy,
    ) -> None:
        _expired(state)
        engine.check(SESSION, NOW)
        state.save_ledger(SESSION, _ledger(((0, 0), "C", "v1")))
        later = NOW + policy.round_duration
        result = engine.check(SESSION, later)
        assert result.frame_index == 2
        assert state.load_frame(SESSION, 1).color_at((0, 0)) == "A"
        assert state.load_frame(SESSION, 2).color_at((0, 0)) == "C"
