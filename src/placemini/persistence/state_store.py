"""Canvas state store — key naming and JSON encoding for one session.

Persisted keys per session S:

    grid:S               N×N color matrix (JSON list of lists)
    votes:S              vote ledger (JSON object keyed "row,col")
    periodClose:S        round deadline, epoch milliseconds
    created:S            session creation time, epoch milliseconds
    history:S:<index>    canvas snapshot for one settled round
    historyCount:S       number of snapshots appended

Every load goes to the underlying store; nothing is cached here. Loads
never fail on malformed data: a value that does not decode is logged and
reported as absent (grid, period, created) or empty (ledger, count), so
the caller falls back to fresh defaults.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from placemini.models.canvas import Canvas
from placemini.models.period import PeriodState
from placemini.models.votes import VoteLedger
from placemini.persistence.kv_store import KeyValueStore
from placemini.policy.resolver import CanvasPolicy


logger = logging.getLogger(__name__)


def grid_key(session_key: str) -> str:
    return f"grid:{session_key}"


def votes_key(session_key: str) -> str:
    return f"votes:{session_key}"


def period_key(session_key: str) -> str:
    return f"periodClose:{session_key}"


def created_key(session_key: str) -> str:
    return f"created:{session_key}"


def history_key(session_key: str, index: int) -> str:
    return f"history:{session_key}:{index}"


def history_count_key(session_key: str) -> str:
    return f"historyCount:{session_key}"


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class CanvasStateStore:
    """Typed access to a session's persisted canvas state."""

    def __init__(self, store: KeyValueStore, policy: CanvasPolicy) -> None:
        self._store = store
        self._policy = policy

    @property
    def policy(self) -> CanvasPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Grid
    # ------------------------------------------------------------------

    def load_canvas(self, session_key: str) -> Optional[Canvas]:
        """Load the grid fitted to the configured size, or None if absent."""
        raw = self._load_json(grid_key(session_key))
        if raw is None:
            return None
        return self._fit(raw, grid_key(session_key))

    def migrate_canvas(self, session_key: str) -> Optional[Canvas]:
        """Load the grid and write it back only if fitting changed it.

        Unchanged grids are not rewritten, so a bootstrap never
        overwrites a canvas committed concurrently by settlement.
        """
        key = grid_key(session_key)
        raw = self._load_json(key)
        if raw is None:
            return None
        canvas = self._fit(raw, key)
        if canvas.to_lists() != raw:
            self.save_canvas(session_key, canvas)
        return canvas

    def save_canvas(self, session_key: str, canvas: Canvas) -> None:
        self._store.set(grid_key(session_key), json.dumps(canvas.to_lists()))

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def load_ledger(self, session_key: str) -> VoteLedger:
        raw = self._load_json(votes_key(session_key))
        if raw is None:
            return VoteLedger()
        try:
            return VoteLedger.from_dict(raw)
        except ValueError as e:
            logger.warning(
                "Discarding malformed ledger at %s: %s", votes_key(session_key), e,
            )
            return VoteLedger()

    def save_ledger(self, session_key: str, ledger: VoteLedger) -> None:
        self._store.set(votes_key(session_key), json.dumps(ledger.to_dict()))

    # ------------------------------------------------------------------
    # Period and session timestamps
    # ------------------------------------------------------------------

    def load_period(self, session_key: str) -> Optional[PeriodState]:
        closes_at = self._load_timestamp(period_key(session_key))
        return PeriodState(closes_at=closes_at) if closes_at is not None else None

    def save_period(self, session_key: str, period: PeriodState) -> None:
        self._store.set(period_key(session_key), str(to_epoch_ms(period.closes_at)))

    def load_created(self, session_key: str) -> Optional[datetime]:
        return self._load_timestamp(created_key(session_key))

    def save_created(self, session_key: str, created_utc: datetime) -> None:
        self._store.set(created_key(session_key), str(to_epoch_ms(created_utc)))

    # ------------------------------------------------------------------
    # History frames
    # ------------------------------------------------------------------

    def load_frame_count(self, session_key: str) -> int:
        raw = self._store.get(history_count_key(session_key))
        if raw is None:
            return 0
        try:
            count = int(raw)
        except ValueError:
            logger.warning("Malformed frame count %r for session %s", raw, session_key)
            return 0
        return max(count, 0)

    def save_frame_count(self, session_key: str, count: int) -> None:
        self._store.set(history_count_key(session_key), str(count))

    def load_frame(self, session_key: str, index: int) -> Optional[Canvas]:
        key = history_key(session_key, index)
        raw = self._load_json(key)
        if raw is None:
            return None
        return self._fit(raw, key)

    def save_frame(self, session_key: str, index: int, canvas: Canvas) -> None:
        self._store.set(history_key(session_key, index), json.dumps(canvas.to_lists()))

    # ------------------------------------------------------------------
    # Decoding helpers
    # ------------------------------------------------------------------

    def _load_json(self, key: str) -> Optional[Any]:
        raw = self._store.get(key)
        if raw is None or raw == "":
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring undecodable value at %s: %s", key, e)
            return None

    def _load_timestamp(self, key: str) -> Optional[datetime]:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            value = int(raw)
        except ValueError:
            logger.warning("Ignoring malformed timestamp %r at %s", raw, key)
            return None
        # 0 is the "never set" marker
        return from_epoch_ms(value) if value > 0 else None

    def _fit(self, raw: Any, key: str) -> Canvas:
        size = self._policy.grid_size
        if not isinstance(raw, list):
            logger.warning("Grid at %s is not a list; using a blank canvas", key)
        elif len(raw) != size:
            logger.info("Resizing grid at %s from %d rows to %d", key, len(raw), size)
        return Canvas.fit(raw, size, self._policy.background_color)
