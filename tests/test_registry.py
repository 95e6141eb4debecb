"""Tests for the job status registry."""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from tts_relay.jobs.registry import InMemoryJobRegistry, JobRecord, JobStatus

T0 = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class TestJobRecord:
    """Test JobRecord transitions and wire form."""

    def test_processing_wire_form_omits_optional_fields(self):
        """A processing record has no r2Key, error or completedAt."""
        record = JobRecord.processing("abc", T0)
        assert record.to_dict() == {
            "submissionId": "abc",
            "status": "processing",
            "startedAt": "2026-01-15T12:00:00Z",
        }

    def test_completed_wire_form(self):
        """Completed records carry r2Key and completedAt, not error."""
        record = JobRecord.processing("abc", T0).completed("p/episode.mp3", T0 + timedelta(seconds=3))
        wire = record.to_dict()
        assert wire["status"] == "completed"
        assert wire["r2Key"] == "p/episode.mp3"
        assert wire["completedAt"] == "2026-01-15T12:00:03Z"
        assert "error" not in wire

    def test_failed_wire_form(self):
        """Failed records carry error, not r2Key."""
        record = JobRecord.processing("abc", T0).failed("apiKey is required", T0)
        wire = record.to_dict()
        assert wire["status"] == "failed"
        assert wire["error"] == "apiKey is required"
        assert "r2Key" not in wire

    def test_completed_at_never_before_started_at(self):
        """A clock that goes backwards is clamped to startedAt."""
        record = JobRecord.processing("abc", T0).completed("k", T0 - timedelta(seconds=5))
        assert record.completed_at == T0
        assert record.duration_s == 0.0

    def test_terminal_flags(self):
        assert not JobStatus.PROCESSING.is_terminal
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal


class TestInMemoryJobRegistry:
    """Test registry atomic operations."""

    def test_get_missing_returns_none(self):
        assert InMemoryJobRegistry().get("nope") is None

    def test_insert_when_absent(self):
        """CAS inserts a record for an unknown id."""
        registry = InMemoryJobRegistry()
        record = JobRecord.processing("abc", T0)
        accepted, current = registry.compare_and_set_if_absent_or_terminal("abc", record)
        assert accepted is True
        assert current is record
        assert registry.get("abc") is record

    def test_reject_while_processing(self):
        """CAS refuses to replace a processing record and returns it."""
        registry = InMemoryJobRegistry()
        first = JobRecord.processing("abc", T0)
        registry.compare_and_set_if_absent_or_terminal("abc", first)

        accepted, current = registry.compare_and_set_if_absent_or_terminal(
            "abc", JobRecord.processing("abc", T0 + timedelta(seconds=1))
        )
        assert accepted is False
        assert current is first
        assert registry.get("abc").started_at == T0

    def test_overwrite_after_terminal(self):
        """CAS replaces a terminal record with a new run."""
        registry = InMemoryJobRegistry()
        first = JobRecord.processing("abc", T0)
        registry.set("abc", first.failed("boom", T0))

        second = JobRecord.processing("abc", T0 + timedelta(seconds=10))
        accepted, current = registry.compare_and_set_if_absent_or_terminal("abc", second)
        assert accepted is True
        assert registry.get("abc").status is JobStatus.PROCESSING
        assert registry.get("abc").error is None

    def test_finish_matching_run(self):
        registry = InMemoryJobRegistry()
        record = JobRecord.processing("abc", T0)
        registry.set("abc", record)
        assert registry.finish("abc", record.completed("k", T0)) is True
        assert registry.get("abc").status is JobStatus.COMPLETED

    def test_finish_is_once_only(self):
        """A terminal record is never replaced by finish()."""
        registry = InMemoryJobRegistry()
        record = JobRecord.processing("abc", T0)
        registry.set("abc", record)
        registry.finish("abc", record.completed("k", T0))

        assert registry.finish("abc", record.failed("late", T0)) is False
        assert registry.get("abc").status is JobStatus.COMPLETED

    def test_finish_ignores_superseded_run(self):
        """A result for an older run does not overwrite a newer one."""
        registry = InMemoryJobRegistry()
        old = JobRecord.processing("abc", T0)
        new = JobRecord.processing("abc", T0 + timedelta(seconds=30))
        registry.set("abc", new)

        assert registry.finish("abc", old.failed("stale", T0)) is False
        assert registry.get("abc") is new

    def test_finish_requires_terminal_record(self):
        registry = InMemoryJobRegistry()
        record = JobRecord.processing("abc", T0)
        registry.set("abc", record)
        with pytest.raises(ValueError):
            registry.finish("abc", record)

    def test_len_and_counts(self):
        registry = InMemoryJobRegistry()
        registry.set("a", JobRecord.processing("a", T0))
        registry.set("b", JobRecord.processing("b", T0).completed("k", T0))
        registry.set("c", JobRecord.processing("c", T0).failed("x", T0))
        registry.set("d", JobRecord.processing("d", T0).failed("y", T0))

        assert len(registry) == 4
        assert registry.counts() == {"processing": 1, "completed": 1, "failed": 2}

    def test_concurrent_inserts_accept_exactly_one(self):
        """Racing submissions for one id: only one wins."""
        registry = InMemoryJobRegistry()
        barrier = threading.Barrier(16)
        results = []
        lock = threading.Lock()

        def worker(i: int) -> None:
            barrier.wait()
            accepted, _ = registry.compare_and_set_if_absent_or_terminal(
                "same", JobRecord.processing("same", T0 + timedelta(seconds=i))
            )
            with lock:
                results.append(accepted)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert len(registry) == 1
