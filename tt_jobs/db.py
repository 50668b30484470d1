"""SQLite key-value state store and JSON codec for the job timer."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)


def _require_job_number(value: str) -> str:
    if not value.strip():
        raise ValueError("jobNumber is blank")
    return value


class Entry(BaseModel):
    """Completed timing entry.

    Field names follow the persisted camelCase layout; Python code uses the
    snake_case attributes.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, strict=True)

    id: str = Field(min_length=1)
    job_number: str = Field(alias="jobNumber", min_length=1)
    start_timestamp: int = Field(alias="startTimestamp", ge=0)
    end_timestamp: int = Field(alias="endTimestamp", ge=0)
    duration_seconds: int = Field(alias="durationSeconds", ge=0)
    notes: str = ""

    @field_validator("job_number")
    @classmethod
    def _check_job_number(cls, v: str) -> str:
        return _require_job_number(v)

    @model_validator(mode="after")
    def _check_duration(self) -> Entry:
        if self.end_timestamp < self.start_timestamp:
            raise ValueError("endTimestamp is before startTimestamp")
        expected = (self.end_timestamp - self.start_timestamp) // 1000
        if self.duration_seconds != expected:
            raise ValueError(
                f"durationSeconds {self.duration_seconds} does not match timestamps ({expected})"
            )
        return self


class ActiveSession(BaseModel):
    """The running, not yet recorded timing session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, strict=True)

    job_number: str = Field(alias="jobNumber", min_length=1)
    start_timestamp: int = Field(alias="startTimestamp", ge=0)

    @field_validator("job_number")
    @classmethod
    def _check_job_number(cls, v: str) -> str:
        return _require_job_number(v)


SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

ENTRIES_KEY = "tt_entries"
ACTIVE_KEY = "tt_active"

logger = logging.getLogger(__name__)

_ENTRIES = TypeAdapter(list[Entry])


def encode_entries(entries: list[Entry] | tuple[Entry, ...]) -> str:
    """Serialize entries (newest first) to JSON text."""
    return json.dumps([entry.model_dump(by_alias=True) for entry in entries])


def decode_entries(raw: str | None) -> list[Entry]:
    """Parse stored entries text.

    Missing records decode to an empty list. Malformed text, wrong shapes and
    entries that violate the duration invariant also decode to an empty list,
    with a warning, so a corrupt store never blocks the timer.
    """
    if raw is None:
        return []
    try:
        data: Any = json.loads(raw)
        return _ENTRIES.validate_python(data)
    except json.JSONDecodeError as e:
        logger.warning("Discarding stored entries: invalid JSON: %s", e)
    except ValidationError as e:
        logger.warning("Discarding stored entries: validation error: %s", e)
    return []


def encode_active(session: ActiveSession) -> str:
    """Serialize the active session to JSON text."""
    return json.dumps(session.model_dump(by_alias=True))


def decode_active(raw: str | None) -> ActiveSession | None:
    """Parse the stored active session, or None if absent or corrupt."""
    if raw is None:
        return None
    try:
        data: Any = json.loads(raw)
        return ActiveSession.model_validate(data)
    except json.JSONDecodeError as e:
        logger.warning("Discarding stored active session: invalid JSON: %s", e)
    except ValidationError as e:
        logger.warning("Discarding stored active session: validation error: %s", e)
    return None


class StateStore:
    """SQLite-backed key-value store holding the timer's two records.

    Not thread-safe. Each thread should have its own StateStore instance.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._init_schema()

    def __enter__(self) -> "StateStore":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    @classmethod
    def open(cls, path: Path) -> StateStore:
        """Open or create a database at the given path."""
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        return cls(conn)

    @classmethod
    def open_in_memory(cls) -> StateStore:
        """Create an in-memory database for testing."""
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        return cls(conn)

    def get(self, key: str) -> str | None:
        """Return the raw text stored under key, or None if absent."""
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def put(self, key: str, value: str, *, commit: bool = True) -> None:
        """Store value under key, replacing any previous value.

        Args:
            key: Record name.
            value: Serialized text.
            commit: Whether to commit immediately (default True).
                    Set to False when called within a larger transaction.
        """
        self._conn.execute(
            "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
            (key, value),
        )
        if commit:
            self._conn.commit()

    def delete(self, key: str, *, commit: bool = True) -> bool:
        """Remove the record under key.

        Returns:
            True if a record was removed, False if it didn't exist.
        """
        cursor = self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        if commit:
            self._conn.commit()
        return cursor.rowcount > 0

    def load_entries(self) -> list[Entry]:
        """Load entries newest first; corrupt or missing records yield []."""
        return decode_entries(self.get(ENTRIES_KEY))

    def load_active(self) -> ActiveSession | None:
        """Load the active session; corrupt or missing records yield None."""
        return decode_active(self.get(ACTIVE_KEY))

    def save(self, entries: list[Entry] | tuple[Entry, ...], active: ActiveSession | None) -> None:
        """Write both records in one transaction.

        An absent session deletes its record rather than storing a null.
        """
        with self._conn:  # Automatic transaction handling (commits on success)
            self.put(ENTRIES_KEY, encode_entries(entries), commit=False)
            if active is None:
                self.delete(ACTIVE_KEY, commit=False)
            else:
                self.put(ACTIVE_KEY, encode_active(active), commit=False)
