"""Timer state machine: entries plus at most one active session."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable

from tt_jobs.aggregate import DailySummary, summarize
from tt_jobs.db import ActiveSession, Entry, StateStore

logger = logging.getLogger(__name__)

SessionListener = Callable[[ActiveSession | None], None]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_entry_id() -> str:
    return str(uuid.uuid4())


class TimeStore:
    """Owns the entry history and the running session.

    States are "idle" (no session) and "running". Transitions:

    - idle -> running: start
    - running -> running: start with a session open (switch: the open session
      is stopped with the given notes, then the new one starts; persisted and
      announced as one transition)
    - running -> idle: stop
    - any -> idle with no entries: clear_all, once confirmed

    Invalid calls (empty job number, stop while idle, unknown id) are no-ops.
    Every mutation is written through to the StateStore before returning.
    """

    def __init__(
        self,
        db: StateStore,
        *,
        clock: Callable[[], int] = now_ms,
        new_id: Callable[[], str] = new_entry_id,
    ) -> None:
        self._db = db
        self._clock = clock
        self._new_id = new_id
        self._entries: list[Entry] = db.load_entries()
        self._active: ActiveSession | None = db.load_active()
        self._listeners: list[SessionListener] = []
        logger.debug(
            "Loaded %d entries, state=%s", len(self._entries), self.state
        )

    # ----- Read-only views -----
    @property
    def entries(self) -> tuple[Entry, ...]:
        """Completed entries, newest first."""
        return tuple(self._entries)

    @property
    def active_session(self) -> ActiveSession | None:
        return self._active

    @property
    def is_running(self) -> bool:
        return self._active is not None

    @property
    def state(self) -> str:
        return "running" if self._active is not None else "idle"

    def now(self) -> int:
        """Current time from the store's clock, in epoch milliseconds."""
        return self._clock()

    def summary(self, now: int | None = None) -> DailySummary:
        """Today's entries and totals relative to now (default: the clock)."""
        return summarize(self._entries, self._clock() if now is None else now)

    def reload(self) -> bool:
        """Re-read both records, picking up changes made by other processes.

        Listeners are notified if the active session changed.

        Returns:
            True if the active session changed.
        """
        previous = self._active
        self._entries = self._db.load_entries()
        self._active = self._db.load_active()
        changed = self._active != previous
        if changed:
            logger.debug("Active session changed on reload: state=%s", self.state)
            self._notify()
        return changed

    def find_entry(self, prefix: str) -> Entry | None:
        """Find an entry by id prefix.

        Returns:
            The entry if exactly one matches, None if none match.

        Raises:
            ValueError: If prefix matches multiple entries.
        """
        prefix = prefix.strip()
        if not prefix:
            return None
        matches = [e for e in self._entries if e.id.startswith(prefix)]
        exact = [e for e in matches if e.id == prefix]
        if exact:
            return exact[0]
        if len(matches) > 1:
            ids = [e.id[:8] for e in matches]
            raise ValueError(f"Ambiguous prefix '{prefix}' matches: {', '.join(ids)}")
        return matches[0] if matches else None

    # ----- Listeners -----
    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call listener with the new session whenever the active session changes.

        Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        # State is already saved; listener errors are logged, not raised
        for listener in list(self._listeners):
            try:
                listener(self._active)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    # ----- Transitions -----
    def start(self, job_number: str, notes: str = "") -> ActiveSession | None:
        """Start timing job_number, stopping any running session first.

        notes annotate the session being closed, not the new one.

        Returns:
            The new ActiveSession, or None if job_number is blank.
        """
        job = (job_number or "").strip()
        if not job:
            logger.debug("Ignoring start with empty job number")
            return None

        closed = self._close_active(notes)
        self._active = ActiveSession(job_number=job, start_timestamp=self._clock())
        self._save()
        if closed is not None:
            logger.debug("Switched from %s to %s", closed.job_number, job)
        else:
            logger.debug("Started %s", job)
        self._notify()
        return self._active

    switch_or_start = start

    def stop(self, notes: str = "") -> Entry | None:
        """Stop the running session and record it.

        Returns:
            The new Entry, or None if nothing was running.
        """
        entry = self._close_active(notes)
        if entry is None:
            logger.debug("Ignoring stop while idle")
            return None
        self._save()
        logger.debug("Stopped %s after %ds", entry.job_number, entry.duration_seconds)
        self._notify()
        return entry

    def delete(self, entry_id: str) -> bool:
        """Remove the entry with entry_id.

        Returns:
            True if an entry was removed, False if it didn't exist.
        """
        remaining = [e for e in self._entries if e.id != entry_id]
        if len(remaining) == len(self._entries):
            logger.debug("No entry %s to delete", entry_id)
            return False
        self._entries = remaining
        self._save()
        logger.debug("Deleted entry %s", entry_id)
        return True

    def clear_all(self, confirm: Callable[[], bool]) -> bool:
        """Drop every entry and discard the running session, if confirmed.

        The running session's time is not recorded.

        Args:
            confirm: Gate called before anything changes; returning False
                leaves state untouched.

        Returns:
            True if state was cleared.
        """
        if not confirm():
            logger.debug("Clear declined")
            return False
        had_session = self._active is not None
        self._entries = []
        self._active = None
        self._save()
        logger.debug("Cleared all entries (discarded running session: %s)", had_session)
        if had_session:
            self._notify()
        return True

    def _close_active(self, notes: str) -> Entry | None:
        """Convert the active session into a prepended Entry without saving."""
        session = self._active
        if session is None:
            return None
        # Clamp so a clock that stepped backwards cannot produce end < start
        end = max(self._clock(), session.start_timestamp)
        entry = Entry(
            id=self._new_id(),
            job_number=session.job_number,
            start_timestamp=session.start_timestamp,
            end_timestamp=end,
            duration_seconds=(end - session.start_timestamp) // 1000,
            notes=(notes or "").strip(),
        )
        self._entries.insert(0, entry)
        self._active = None
        return entry

    def _save(self) -> None:
        self._db.save(self._entries, self._active)
