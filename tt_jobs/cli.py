"""CLI entry point for the job timer."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import click

from tt_jobs.clock import LiveClock
from tt_jobs.db import Entry, StateStore
from tt_jobs.store import TimeStore


def format_duration(seconds: int) -> str:
    """Format seconds as zero-padded 'HH:MM:SS'.

    Hours are not wrapped, so 100 hours renders as '100:00:00'.
    """
    seconds = max(0, seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_time(ts_ms: int | None) -> str:
    """Format epoch milliseconds as local 'HH:MM:SS', or '-' if missing."""
    if ts_ms is None:
        return "-"
    return datetime.fromtimestamp(ts_ms / 1000).strftime("%H:%M:%S")


def format_date_short(ts_ms: int) -> str:
    """Format epoch milliseconds as a short local date like 'Jan 25'."""
    dt = datetime.fromtimestamp(ts_ms / 1000)
    return f"{dt.strftime('%b')} {dt.day}"


def make_progress_bar(value: int, max_value: int, width: int = 16) -> str:
    """Create ASCII progress bar.

    Args:
        value: Current value.
        max_value: Maximum value (100%).
        width: Total width of bar (default: 16).

    Returns:
        Progress bar string like '████████░░░░░░░░'.
    """
    if max_value == 0 or value == 0:
        return "░" * width
    filled = max(1, min(width, round((value / max_value) * width)))
    return "█" * filled + "░" * (width - filled)


def _truncate(text: str, width: int) -> str:
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "tt-jobs" / "state.db"

db_option = click.option(
    "--db",
    type=click.Path(path_type=Path),
    default=DEFAULT_DB_PATH,
    envvar="TT_JOBS_DB",
    show_envvar=True,
    help="Path to SQLite database",
)

notes_option = click.option(
    "--notes",
    "-n",
    default="",
    help="Notes recorded on the entry being closed",
)


@contextmanager
def _open_store(db: Path) -> Iterator[TimeStore]:
    """Open the database (creating it if needed) and load the timer state."""
    # Ensure database directory exists
    db.parent.mkdir(parents=True, exist_ok=True)
    with StateStore.open(db) as state:
        yield TimeStore(state)


def _describe_entry(entry: Entry) -> str:
    line = f"{entry.job_number} {format_duration(entry.duration_seconds)} [{entry.id[:8]}]"
    if entry.notes:
        line += f" - {entry.notes}"
    return line


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Job timer local CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _start(db: Path, job: str, notes: str) -> None:
    with _open_store(db) as store:
        was_running = store.is_running
        session = store.switch_or_start(job, notes)

        if session is None:
            click.echo("Job number is required; nothing started.", err=True)
            return

        if was_running:
            click.echo(f"Stopped {_describe_entry(store.entries[0])}")
        click.echo(f"Started {session.job_number} at {format_time(session.start_timestamp)}")


@main.command("start")
@click.argument("job")
@notes_option
@db_option
def start_command(job: str, notes: str, db: Path) -> None:
    """Start timing JOB.

    If a timer is already running it is stopped first (a switch) and
    --notes are recorded on the entry being closed.

    Example:
        tt-jobs start JOB-1042
        tt-jobs start JOB-1043 --notes "finished wiring diagram"
    """
    _start(db, job, notes)


@main.command("switch")
@click.argument("job")
@notes_option
@db_option
def switch_command(job: str, notes: str, db: Path) -> None:
    """Switch to JOB, recording the running timer (same as start)."""
    _start(db, job, notes)


@main.command("stop")
@notes_option
@db_option
def stop_command(notes: str, db: Path) -> None:
    """Stop the running timer and record an entry."""
    with _open_store(db) as store:
        entry = store.stop(notes)

    if entry is None:
        click.echo("No timer running")
        return
    click.echo(f"Stopped {_describe_entry(entry)}")


@main.command("status")
@db_option
def status_command(db: Path) -> None:
    """Show the running timer, if any."""
    with _open_store(db) as store:
        session = store.active_session
        now = store.now()

    if session is None:
        click.echo("No timer running")
        return

    elapsed = max(0, (now - session.start_timestamp) // 1000)
    click.echo(f"Running: {session.job_number}")
    click.echo(f"  Started: {format_time(session.start_timestamp)}")
    click.echo(f"  Elapsed: {format_duration(elapsed)}")


@main.command("entries")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
@db_option
def entries_command(output_json: bool, db: Path) -> None:
    """List recorded entries, newest first."""
    with _open_store(db) as store:
        entries = store.entries
        now = store.now()

    if output_json:
        click.echo(json.dumps([e.model_dump(by_alias=True) for e in entries], indent=2))
        return

    if not entries:
        click.echo("No entries yet. Start a timer to begin tracking.")
        return

    today = datetime.fromtimestamp(now / 1000).date()
    click.echo(f"{'ID':<8}  {'Job #':<14} {'Date':<7} {'Start':<8} {'End':<8} {'Duration':>9}  Notes")
    for entry in entries:
        started = datetime.fromtimestamp(entry.start_timestamp / 1000)
        date_label = "Today" if started.date() == today else format_date_short(entry.start_timestamp)
        click.echo(
            f"{entry.id[:8]:<8}  {_truncate(entry.job_number, 14):<14} {date_label:<7} "
            f"{format_time(entry.start_timestamp):<8} {format_time(entry.end_timestamp):<8} "
            f"{format_duration(entry.duration_seconds):>9}  {entry.notes or '-'}"
        )


@main.command("today")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
@db_option
def today_command(output_json: bool, db: Path) -> None:
    """Show today's total and per-job totals."""
    with _open_store(db) as store:
        now = store.now()
        summary = store.summary(now)

    date_label = datetime.fromtimestamp(now / 1000).strftime("%Y-%m-%d")

    if output_json:
        output = {
            "date": date_label,
            "daily_total_seconds": summary.daily_total,
            "entry_count": len(summary.today_entries),
            "by_job": [
                {"job_number": job, "seconds": seconds}
                for job, seconds in summary.job_totals
            ],
        }
        click.echo(json.dumps(output, indent=2))
        return

    click.echo(f"Today's Summary: {date_label}")
    click.echo()

    if not summary.today_entries:
        click.echo("No time tracked today.")
        return

    click.echo(f"Daily Total: {format_duration(summary.daily_total)}")
    click.echo()

    # Find max for progress bar scaling
    max_total = max((seconds for _, seconds in summary.job_totals), default=0)
    for job, seconds in summary.job_totals:
        bar = make_progress_bar(seconds, max_total)
        click.echo(f"  {_truncate(job, 20):<20} {format_duration(seconds):>9}   {bar}")


@main.command("delete")
@click.argument("entry_id")
@db_option
def delete_command(entry_id: str, db: Path) -> None:
    """Delete the entry with ENTRY_ID (a unique prefix is enough)."""
    with _open_store(db) as store:
        try:
            entry = store.find_entry(entry_id)
        except ValueError as e:
            click.echo(str(e), err=True)
            sys.exit(1)

        if entry is None:
            click.echo(f"No entry matching '{entry_id}'")
            return
        store.delete(entry.id)

    click.echo(f"Deleted {_describe_entry(entry)}")


@main.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@db_option
def clear_command(yes: bool, db: Path) -> None:
    """Clear all entries and discard the running timer.

    The running timer's time is not recorded.
    """
    with _open_store(db) as store:
        cleared = store.clear_all(
            lambda: yes or click.confirm("Clear all entries? This cannot be undone.")
        )

    if cleared:
        click.echo("Cleared all entries")
    else:
        click.echo("Nothing cleared")


@main.command("watch")
@click.option(
    "--ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many updates (default: until Ctrl-C)",
)
@db_option
def watch_command(ticks: int | None, db: Path) -> None:
    """Show a live elapsed clock for the running timer.

    The display updates once per second until interrupted.
    """
    with _open_store(db) as store:
        session = store.active_session
        if session is None:
            click.echo("No timer running")
            return

        count = 0

        def render(elapsed: int) -> None:
            nonlocal count
            # stop, switch and clear usually come from another process
            if store.reload():
                live.close()
                current = store.active_session
                if current is None:
                    click.echo("\nTimer stopped", nl=False)
                else:
                    click.echo(f"\nTimer switched to {current.job_number}", nl=False)
                return
            count += 1
            click.echo(f"\r{session.job_number}  {format_duration(elapsed)}", nl=False)
            if ticks is not None and count >= ticks:
                live.close()

        with LiveClock(store, on_tick=render) as live:
            try:
                live.scheduler.run()
            except KeyboardInterrupt:
                pass
        click.echo()


if __name__ == "__main__":
    main()
