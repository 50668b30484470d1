"""Tests for the SQLite state store and JSON codec."""

import json
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from tt_jobs.db import (
    ACTIVE_KEY,
    ENTRIES_KEY,
    ActiveSession,
    Entry,
    StateStore,
    decode_active,
    decode_entries,
    encode_active,
    encode_entries,
)


def make_entry(
    *,
    entry_id: str = "e1",
    job_number: str = "JOB-1",
    start: int = 1_737_800_000_000,
    seconds: float = 125,
    notes: str = "",
) -> Entry:
    """Helper to create a valid Entry."""
    end = start + int(seconds * 1000)
    return Entry(
        id=entry_id,
        job_number=job_number,
        start_timestamp=start,
        end_timestamp=end,
        duration_seconds=(end - start) // 1000,
        notes=notes,
    )


class TestModels:
    """Tests for Entry and ActiveSession validation."""

    def test_entry_uses_camel_case_layout(self):
        """Dumped entries use the persisted field names."""
        entry = make_entry(notes="wiring")
        assert entry.model_dump(by_alias=True) == {
            "id": "e1",
            "jobNumber": "JOB-1",
            "startTimestamp": 1_737_800_000_000,
            "endTimestamp": 1_737_800_125_000,
            "durationSeconds": 125,
            "notes": "wiring",
        }

    def test_entry_is_immutable(self):
        """Entries cannot be changed after creation."""
        entry = make_entry()
        with pytest.raises(ValidationError):
            entry.notes = "changed"

    def test_entry_rejects_end_before_start(self):
        with pytest.raises(ValidationError):
            Entry(
                id="e1",
                job_number="JOB-1",
                start_timestamp=2000,
                end_timestamp=1000,
                duration_seconds=0,
            )

    def test_entry_rejects_mismatched_duration(self):
        """durationSeconds must be the floor of the timestamp difference."""
        with pytest.raises(ValidationError):
            Entry(
                id="e1",
                job_number="JOB-1",
                start_timestamp=0,
                end_timestamp=1999,
                duration_seconds=2,
            )

    def test_entry_duration_truncates_milliseconds(self):
        entry = Entry(
            id="e1",
            job_number="JOB-1",
            start_timestamp=0,
            end_timestamp=1999,
            duration_seconds=1,
        )
        assert entry.duration_seconds == 1

    def test_empty_job_number_rejected(self):
        with pytest.raises(ValidationError):
            ActiveSession(job_number="", start_timestamp=0)

    @pytest.mark.parametrize("job", ["   ", "\t", "\n "])
    def test_blank_job_number_rejected(self, job):
        """Whitespace-only job numbers are as invalid as empty ones."""
        with pytest.raises(ValidationError):
            ActiveSession(job_number=job, start_timestamp=0)
        with pytest.raises(ValidationError):
            make_entry(job_number=job)

    def test_string_timestamp_rejected(self):
        """Strict validation: timestamps must be integers."""
        with pytest.raises(ValidationError):
            ActiveSession.model_validate({"jobNumber": "JOB-1", "startTimestamp": "123"})


class TestCodec:
    """Tests for encoding and decoding stored records."""

    def test_entries_roundtrip(self):
        """Encoding then decoding yields equal entries in the same order."""
        entries = [
            make_entry(entry_id="e2", job_number="JOB-2", start=1_737_800_200_000, seconds=60.5),
            make_entry(entry_id="e1", job_number="JOB-1", notes="first"),
        ]
        assert decode_entries(encode_entries(entries)) == entries

    def test_active_roundtrip(self):
        session = ActiveSession(job_number="JOB-7", start_timestamp=1_737_800_000_123)
        assert decode_active(encode_active(session)) == session

    def test_active_encoding_layout(self):
        session = ActiveSession(job_number="JOB-7", start_timestamp=42)
        assert json.loads(encode_active(session)) == {"jobNumber": "JOB-7", "startTimestamp": 42}

    def test_missing_records_decode_to_defaults(self):
        assert decode_entries(None) == []
        assert decode_active(None) is None

    @pytest.mark.parametrize(
        "raw",
        [
            "not valid json",
            '{"jobNumber": "JOB-1"}',
            '[{"id": "e1", "jobNumber": "JOB-1"}]',
            '[{"id": "e1", "jobNumber": "JOB-1", "startTimestamp": 5000, '
            '"endTimestamp": 1000, "durationSeconds": 0, "notes": ""}]',
        ],
    )
    def test_malformed_entries_decode_to_empty(self, raw):
        """Corrupt entries text falls back to an empty list without raising."""
        assert decode_entries(raw) == []

    def test_malformed_entries_logs_warning(self, caplog):
        with caplog.at_level("WARNING", logger="tt_jobs.db"):
            decode_entries("{broken")
        assert "Discarding stored entries" in caplog.text

    @pytest.mark.parametrize("raw", ["{broken", "null", '{"jobNumber": ""}', "[]"])
    def test_malformed_active_decodes_to_none(self, raw):
        assert decode_active(raw) is None

    def test_blank_job_number_decodes_to_defaults(self):
        """A stored record whose job number is only whitespace is discarded."""
        blank_entry = {
            "id": "e1",
            "jobNumber": "   ",
            "startTimestamp": 1000,
            "endTimestamp": 3000,
            "durationSeconds": 2,
            "notes": "",
        }
        assert decode_entries(json.dumps([blank_entry])) == []
        assert decode_active('{"jobNumber": "  ", "startTimestamp": 5}') is None


class TestStateStore:
    """Tests for the key-value table."""

    def test_get_missing_key(self):
        store = StateStore.open_in_memory()
        assert store.get("nope") is None

    def test_put_replaces_value(self):
        store = StateStore.open_in_memory()
        store.put("k", "one")
        store.put("k", "two")
        assert store.get("k") == "two"

    def test_delete(self):
        store = StateStore.open_in_memory()
        store.put("k", "v")
        assert store.delete("k") is True
        assert store.delete("k") is False
        assert store.get("k") is None

    def test_save_without_session_omits_active_record(self):
        """An idle state deletes the active record instead of storing null."""
        store = StateStore.open_in_memory()
        store.save([], ActiveSession(job_number="JOB-1", start_timestamp=1))
        assert store.get(ACTIVE_KEY) is not None

        store.save([make_entry()], None)
        assert store.get(ACTIVE_KEY) is None
        assert store.get(ENTRIES_KEY) is not None
        assert store.load_active() is None

    def test_save_and_load(self):
        store = StateStore.open_in_memory()
        entries = [make_entry(entry_id="e2"), make_entry(entry_id="e1")]
        session = ActiveSession(job_number="JOB-3", start_timestamp=1_737_800_300_000)
        store.save(entries, session)

        assert store.load_entries() == entries
        assert store.load_active() == session

    def test_corrupt_record_loads_defaults(self):
        store = StateStore.open_in_memory()
        store.put(ENTRIES_KEY, "not valid json")
        store.put(ACTIVE_KEY, "also broken")
        assert store.load_entries() == []
        assert store.load_active() is None

    def test_persists_across_connections(self):
        """State written through one connection is read by the next."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "state.db"
            with StateStore.open(db_path) as store:
                store.save([make_entry()], ActiveSession(job_number="JOB-2", start_timestamp=9))

            with StateStore.open(db_path) as store:
                assert store.load_entries() == [make_entry()]
                assert store.load_active() == ActiveSession(job_number="JOB-2", start_timestamp=9)
