"""Daily aggregation of timing entries."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime

from tt_jobs.db import Entry


@dataclass(frozen=True)
class DailySummary:
    """Derived view of one local calendar day."""

    today_entries: tuple[Entry, ...]
    daily_total: int
    job_totals: tuple[tuple[str, int], ...]


def _local_date(ts_ms: int) -> date:
    return datetime.fromtimestamp(ts_ms / 1000).date()


def is_same_local_day(ts_ms: int, ref_ms: int) -> bool:
    """True if both epoch-millisecond instants share a local calendar day."""
    return _local_date(ts_ms) == _local_date(ref_ms)


def today_entries(entries: Iterable[Entry], now_ms: int) -> tuple[Entry, ...]:
    """Entries that started on the local day of now_ms, order preserved."""
    today = _local_date(now_ms)
    return tuple(e for e in entries if _local_date(e.start_timestamp) == today)


def daily_total(entries: Iterable[Entry]) -> int:
    """Sum of durationSeconds."""
    return sum(e.duration_seconds for e in entries)


def job_totals(entries: Iterable[Entry]) -> tuple[tuple[str, int], ...]:
    """Seconds per job number, sorted by job number ascending."""
    totals: defaultdict[str, int] = defaultdict(int)
    for entry in entries:
        totals[entry.job_number] += entry.duration_seconds
    return tuple(sorted(totals.items()))


def summarize(entries: Sequence[Entry], now_ms: int) -> DailySummary:
    """Compute today's entries, total and per-job totals.

    Args:
        entries: Entries in any order (normally newest first).
        now_ms: Reference instant in epoch milliseconds; "today" is its
            local calendar day.

    Returns:
        DailySummary. today_entries keeps the input order; the totals do not
        depend on it.
    """
    todays = today_entries(entries, now_ms)
    return DailySummary(
        today_entries=todays,
        daily_total=daily_total(todays),
        job_totals=job_totals(todays),
    )
