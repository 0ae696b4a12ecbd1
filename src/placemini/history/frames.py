"""History log — append-only numbered canvas snapshots.

Frame i (1 <= i <= frame_count) is the canvas as committed by the i-th
settlement of the session. Frame 0 is the blank starting canvas; it is
never stored, every session begins from it.

Append writes the snapshot before bumping the counter, so the counter
never points at a frame that was not written.
"""

from __future__ import annotations

import logging
from typing import Optional

from placemini.models.canvas import Canvas
from placemini.persistence.state_store import CanvasStateStore


logger = logging.getLogger(__name__)


class HistoryLog:
    """Frame storage and navigation for one store.

    Only the settlement engine appends; everything else reads.
    """

    def __init__(self, state: CanvasStateStore) -> None:
        self._state = state

    def frame_count(self, session_key: str) -> int:
        return self._state.load_frame_count(session_key)

    def append(self, session_key: str, canvas: Canvas) -> int:
        """Store canvas as the next frame and return its index."""
        index = self._state.load_frame_count(session_key) + 1
        self._state.save_frame(session_key, index, canvas)
        self._state.save_frame_count(session_key, index)
        logger.debug("Appended frame %d for session %s", index, session_key)
        return index

    def read(self, session_key: str, index: int) -> Optional[Canvas]:
        """Return the frame, or None if index is outside [0, frame_count]."""
        if index < 0 or index > self._state.load_frame_count(session_key):
            return None
        if index == 0:
            policy = self._state.policy
            return Canvas.blank(policy.grid_size, policy.background_color)
        return self._state.load_frame(session_key, index)

    def navigate(self, session_key: str, current: int, delta: int) -> Optional[int]:
        """Return current + delta if it is a readable frame, else None.

        Moves past either end are rejected, not clamped or wrapped.
        """
        target = current + delta
        if target < 0 or target > self._state.load_frame_count(session_key):
            return None
        return target
