"""Settlement ticker — drives the round clock for one session.

Runs CanvasService.tick on a daemon thread every tick interval while
the session is live for voting. Once the session stops being live the
ticker stops itself; it only runs again after an explicit start().

A failing tick is logged and the loop carries on with the next one;
the store's own retry policy is outside this loop.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from placemini.service import CanvasService, ServiceResult


logger = logging.getLogger(__name__)


class SettlementTicker:
    """Recurring settlement check for a single session.

    Usage:
        ticker = SettlementTicker(service, "post-123")
        ticker.start()
        ...
        ticker.stop()
    """

    def __init__(
        self,
        service: CanvasService,
        session_key: str,
        interval_seconds: Optional[float] = None,
        on_tick: Optional[Callable[[ServiceResult], None]] = None,
    ) -> None:
        self._service = service
        self._session_key = session_key
        self._interval = interval_seconds or service.policy.tick_interval_seconds
        self._on_tick = on_tick
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> bool:
        """Start ticking. Returns False if already running or not live."""
        with self._state_lock:
            if self.running:
                return False
            if not self._service.is_active(self._session_key):
                logger.info(
                    "Not starting ticker for session %s: voting has concluded",
                    self._session_key,
                )
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event,),
                daemon=True,
                name=f"settlement-{self._session_key}",
            )
            self._thread.start()
            logger.info(
                "Started ticker for session %s every %.2fs",
                self._session_key, self._interval,
            )
            return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop ticking and wait for the thread to exit."""
        with self._state_lock:
            self._stop_event.set()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def run_once(self) -> Optional[ServiceResult]:
        """Run a single tick synchronously.

        Returns None (and records the stop) if the session is no longer
        live.
        """
        if not self._service.is_active(self._session_key):
            self._stop_event.set()
            logger.info("Session %s is no longer live; ticker stopped", self._session_key)
            self._service.record_ticker_stopped(self._session_key, "session_inactive")
            return None
        result = self._service.tick(self._session_key)
        if self._on_tick is not None:
            self._on_tick(result)
        return result

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                if self.run_once() is None:
                    return
            except Exception:
                logger.exception("Settlement tick failed for session %s", self._session_key)
            stop_event.wait(self._interval)
