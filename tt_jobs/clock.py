"""Live elapsed-time ticker for a running session."""

from __future__ import annotations

import logging
import sched
from collections.abc import Callable

from tt_jobs.db import ActiveSession
from tt_jobs.store import TimeStore

logger = logging.getLogger(__name__)


class LiveClock:
    """Reports elapsed seconds of the active session once per interval.

    Ticks are events on a sched.scheduler that the host runs; nothing here
    starts a thread. The pending event is cancelled whenever the store's
    active session changes and on close(), so no tick outlives its session.
    Readings are display-only: the store computes entry durations from its
    own clock at stop time.

    Use as a context manager:

        with LiveClock(store, on_tick=render) as live:
            scheduler.run()
    """

    def __init__(
        self,
        store: TimeStore,
        on_tick: Callable[[int], None],
        *,
        scheduler: sched.scheduler | None = None,
        interval: float = 1.0,
    ) -> None:
        self._store = store
        self._on_tick = on_tick
        self.scheduler = scheduler if scheduler is not None else sched.scheduler()
        self._interval = interval
        self._session: ActiveSession | None = None
        self._event: sched.Event | None = None
        self._last_reading = 0
        self._closed = False
        self._unsubscribe = store.subscribe(self._on_session_change)
        self._sync(store.active_session)

    def __enter__(self) -> "LiveClock":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    @property
    def elapsed_seconds(self) -> int:
        """Current reading; 0 when no session is running."""
        if self._session is None:
            return 0
        self._last_reading = self._reading(self._session)
        return self._last_reading

    @property
    def is_ticking(self) -> bool:
        return self._event is not None

    def close(self) -> None:
        """Cancel the pending tick and stop listening to the store."""
        if self._closed:
            return
        self._closed = True
        self._cancel()
        self._unsubscribe()
        self._session = None
        logger.debug("Live clock closed")

    def _on_session_change(self, session: ActiveSession | None) -> None:
        self._sync(session)

    def _sync(self, session: ActiveSession | None) -> None:
        self._cancel()
        self._session = session
        self._last_reading = 0
        if session is None or self._closed:
            return
        logger.debug("Live clock following %s", session.job_number)
        self._event = self.scheduler.enter(0, 0, self._tick)

    def _cancel(self) -> None:
        if self._event is None:
            return
        try:
            self.scheduler.cancel(self._event)
        except ValueError:
            # Already run or removed by the scheduler
            pass
        self._event = None

    def _reading(self, session: ActiveSession) -> int:
        elapsed = max(0, (self._store.now() - session.start_timestamp) // 1000)
        return max(self._last_reading, elapsed)

    def _tick(self) -> None:
        self._event = None
        session = self._session
        if session is None or self._closed:
            return
        self._last_reading = self._reading(session)
        self._on_tick(self._last_reading)
        # on_tick may have stopped the session or closed the clock
        if self._closed or self._session is not session:
            return
        self._event = self.scheduler.enter(self._interval, 0, self._tick)
