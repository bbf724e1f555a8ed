"""
Unit tests for the Snowflake repositories, run against the in-memory mock.

The mock speaks the same row format as the real connector, so these tests
cover the row mapping and the conditional append.
"""

from datetime import datetime, timezone

import pytest

from coachgen.core.generation.errors import WriteConflict
from coachgen.core.generation.models import (
    ContentKindName,
    GeneratedBy,
    Reason,
    TelemetryEvent,
)
from coachgen.infrastructure.snowflake.repositories import (
    FactRepository,
    PointerRepository,
    TelemetryRepository,
    VersionRepository,
)
from coachgen.infrastructure.snowflake.repositories.base import parse_variant_json

from conftest import SUBJECT


def _append(repo: VersionRepository, index: int, data_hash: str = "h1", thread_id: str = "plan3m"):
    return repo.append(
        subject_id=SUBJECT,
        thread_id=thread_id,
        content_kind=ContentKindName.PLAN3M,
        version_index=index,
        data_hash=data_hash,
        content={"headline": f"v{index}"},
        reason=Reason.INITIAL if index == 1 else Reason.DATA_CHANGE,
        generated_by=GeneratedBy.DETERMINISTIC,
    )


class TestVersionRepository:
    """Tests for the append-only version store."""

    def test_append_and_get_round_trip(self, conn):
        repo = VersionRepository(conn)
        written = _append(repo, 1)

        loaded = repo.get(written.id)

        assert loaded == written
        assert loaded.content == {"headline": "v1"}
        assert loaded.content_kind == ContentKindName.PLAN3M

    def test_taken_index_raises_write_conflict(self, conn):
        repo = VersionRepository(conn)
        _append(repo, 1)

        with pytest.raises(WriteConflict) as exc_info:
            _append(repo, 1, data_hash="h2")
        assert exc_info.value.version_index == 1
        assert len(conn._versions()) == 1

    def test_same_index_on_another_thread_is_fine(self, conn):
        repo = VersionRepository(conn)
        _append(repo, 1, thread_id="session:s1")
        _append(repo, 1, thread_id="session:s2")
        assert len(conn._versions()) == 2

    def test_latest_is_highest_index(self, conn):
        repo = VersionRepository(conn)
        _append(repo, 1)
        _append(repo, 2, data_hash="h2")

        assert repo.latest(SUBJECT, "plan3m").version_index == 2
        assert repo.latest(SUBJECT, "plan6m") is None

    def test_find_by_hash_returns_newest_match(self, conn):
        repo = VersionRepository(conn)
        _append(repo, 1, data_hash="h1")
        _append(repo, 2, data_hash="h2")
        _append(repo, 3, data_hash="h1")

        found = repo.find_by_hash(SUBJECT, "plan3m", "h1")

        assert found.version_index == 3
        assert repo.find_by_hash(SUBJECT, "plan3m", "nope") is None
        assert repo.find_by_hash("someone-else", "plan3m", "h1") is None

    def test_list_thread_is_newest_first_and_limited(self, conn):
        repo = VersionRepository(conn)
        for index in range(1, 5):
            _append(repo, index, data_hash=f"h{index}")

        listed = repo.list_thread(SUBJECT, "plan3m", limit=3)

        assert [v.version_index for v in listed] == [4, 3, 2]

    def test_get_unknown_id(self, conn):
        assert VersionRepository(conn).get("missing") is None


class TestPointerRepository:
    """Tests for the active pointer upsert."""

    def test_unset_pointer(self, conn):
        assert PointerRepository(conn).get(SUBJECT, "plan3m") is None

    def test_set_then_overwrite(self, conn):
        repo = PointerRepository(conn)
        repo.set(SUBJECT, "plan3m", "v1", "user-7")
        repo.set(SUBJECT, "plan3m", "v2", "admin-1")

        pointer = repo.get(SUBJECT, "plan3m")

        assert pointer.active_version_id == "v2"
        assert pointer.updated_by == "admin-1"
        assert isinstance(pointer.updated_at, datetime)

    def test_slots_are_independent(self, conn):
        repo = PointerRepository(conn)
        repo.set(SUBJECT, "sessioncoach:s1", "a", "x")
        repo.set(SUBJECT, "sessioncoach:s2", "b", "x")
        assert repo.get(SUBJECT, "sessioncoach:s1").active_version_id == "a"
        assert repo.get(SUBJECT, "sessioncoach:s2").active_version_id == "b"


class TestFactRepository:
    """Tests for reading upstream stats snapshots."""

    def test_recent_snapshots_newest_first(self, conn):
        conn._add_snapshot(SUBJECT, "s1", {"carry_avg": 150}, created_at=datetime(2026, 3, 1))
        conn._add_snapshot(SUBJECT, "s2", {"carry_avg": 152}, created_at=datetime(2026, 3, 8))
        conn._add_snapshot(SUBJECT, "s3", {"carry_avg": 149}, created_at=datetime(2026, 3, 15))
        conn._add_snapshot("other", "s9", {"carry_avg": 200}, created_at=datetime(2026, 3, 20))

        recent = FactRepository(conn).recent_snapshots(SUBJECT, 2)

        assert [s.session_id for s in recent] == ["s3", "s2"]
        assert recent[0].as_of.isoformat() == "2026-03-15"

    def test_only_finite_numbers_survive(self, conn):
        conn._add_snapshot(
            SUBJECT, "s1",
            {"carry_avg": 150, "club": "7i", "is_range": True, "spin_rate_avg": None},
            handicap=9,
        )

        snapshot = FactRepository(conn).session_snapshot(SUBJECT, "s1")

        assert snapshot.metrics == {"carry_avg": 150.0}
        assert snapshot.handicap == 9.0
        assert snapshot.data_hash == "stats-s1"

    def test_previous_snapshot(self, conn):
        conn._add_snapshot(SUBJECT, "s1", {"carry_avg": 150}, created_at=datetime(2026, 3, 1))
        conn._add_snapshot(SUBJECT, "s2", {"carry_avg": 152}, created_at=datetime(2026, 3, 8))
        repo = FactRepository(conn)

        assert repo.previous_snapshot(SUBJECT, "s2").session_id == "s1"
        assert repo.previous_snapshot(SUBJECT, "s1") is None
        assert repo.previous_snapshot(SUBJECT, "unknown") is None

    def test_unknown_session(self, conn):
        assert FactRepository(conn).session_snapshot(SUBJECT, "nope") is None


class TestTelemetryRepository:
    """Tests for the telemetry sink."""

    def test_event_timestamp_is_naive_utc(self):
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        event = TelemetryEvent(route="plan3m.generate", status="ok")
        assert event.created_at.tzinfo is None
        assert event.created_at >= before

    def test_record_writes_every_column(self, conn):
        event = TelemetryEvent(
            route="plan3m.generate",
            status="ok",
            subject_id=SUBJECT,
            cache_status="miss",
            duration_ms=12,
        )

        TelemetryRepository(conn).record(event)

        rows = conn._telemetry()
        assert len(rows) == 1
        assert rows[0]["request_id"] == event.request_id
        assert rows[0]["route"] == "plan3m.generate"
        assert rows[0]["cache_status"] == "miss"
        assert rows[0]["duration_ms"] == 12


class TestParseVariantJson:
    """VARIANT columns arrive as strings from the connector."""

    def test_string_is_parsed(self):
        assert parse_variant_json('{"a": 1}') == {"a": 1}

    def test_already_parsed_is_returned(self):
        assert parse_variant_json({"a": 1}) == {"a": 1}

    def test_empty_and_broken(self):
        assert parse_variant_json("") is None
        assert parse_variant_json("{nope") is None
