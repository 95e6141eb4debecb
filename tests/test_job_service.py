"""Tests for JobService: submission, processing and status."""
from __future__ import annotations

import pytest

from tts_relay.clients.object_store import ObjectStoreError
from tts_relay.clients.tts import TTSClientError
from tts_relay.core.lifecycle import ShutdownState
from tts_relay.jobs.registry import JobStatus
from tts_relay.jobs.service import (
    DrainingError,
    ErrorCode,
    InvalidInputError,
    NotFoundError,
    QueueFullError,
)

from conftest import AUDIO, FakeObjectStore, FakeTTSClient, make_request


def _settle(service):
    assert service.runner.wait_idle(timeout=5)


class TestSubmitSuccess:
    """Test the happy path end to end."""

    def test_completes_and_uploads(self, service, fake_tts, fake_store):
        result = service.submit("ep-1", make_request())

        assert result.accepted is True
        assert result.message == "Processing started"
        assert result.record.status is JobStatus.PROCESSING

        _settle(service)
        record = service.get_status("ep-1")
        assert record.status is JobStatus.COMPLETED
        assert record.storage_key == "shows/weekly/episode.mp3"
        assert record.error is None
        assert record.completed_at >= record.started_at

        assert fake_tts.calls == [("hello", "sk_test_0123456789", 0)]
        upload = fake_store.uploads[0]
        assert upload["bucket"] == "podcasts"
        assert upload["key"] == "shows/weekly/episode.mp3"
        assert upload["account_id"] == "acc123"
        assert upload["credentials"].access_key_id == "AKIDEXAMPLE"
        assert upload["credentials"].secret_access_key == "super-secret-key"
        assert upload["body"] == AUDIO

    def test_temp_file_removed_after_upload(self, service, fake_store, relay_config):
        service.submit("ep-1", make_request())
        _settle(service)

        path = fake_store.uploads[0]["path"]
        assert fake_store.uploads[0]["existed"] is True
        assert not path.exists()
        assert str(path.parent) == relay_config.jobs.artifact_dir
        assert path.name.startswith("ep-1-")
        assert path.name.endswith("-episode.mp3")

    def test_concurrent_jobs_use_distinct_temp_files(self, service, fake_store):
        service.submit("a", make_request())
        service.submit("b", make_request())
        _settle(service)

        paths = {u["path"] for u in fake_store.uploads}
        assert len(paths) == 2

    def test_custom_voice_and_file_name(self, service, fake_tts, fake_store):
        service.submit("ep-2", make_request(voice_index=8, output_file_name="ep2.mp3", prefix="p/"))
        _settle(service)

        assert fake_tts.calls[0][2] == 8
        assert service.get_status("ep-2").storage_key == "p/ep2.mp3"

    def test_ack_includes_deployment(self, service):
        wire = service.submit("ep-1", make_request()).to_dict(service.deployment)
        assert wire == {
            "message": "Processing started",
            "submissionId": "ep-1",
            "status": "processing",
            "startedAt": "2026-01-15T12:00:00Z",
            "region": "WEUR",
            "instanceId": "inst-1",
            "country": "DE",
            "location": "FRA",
        }


class TestSubmitValidation:
    """Test synchronous rejections: no record is ever created."""

    def test_missing_text(self, service, fake_tts):
        with pytest.raises(InvalidInputError) as exc:
            service.submit("ep-1", make_request(text=None))
        assert exc.value.code == ErrorCode.INVALID_INPUT
        assert exc.value.message == "text is required"
        assert exc.value.details == {"code": "TEXT_REQUIRED"}
        assert service.registry.get("ep-1") is None
        assert fake_tts.calls == []

    def test_blank_text(self, service):
        with pytest.raises(InvalidInputError):
            service.submit("ep-1", make_request(text="   "))
        assert service.registry.get("ep-1") is None

    def test_missing_submission_id(self, service):
        with pytest.raises(InvalidInputError) as exc:
            service.submit("", make_request())
        assert exc.value.message == "submissionId is required in URL path"
        assert len(service.registry) == 0

    def test_voice_index_out_of_range(self, service):
        with pytest.raises(InvalidInputError) as exc:
            service.submit("ep-1", make_request(voice_index=99))
        assert "voiceIx is out of range" in exc.value.message
        assert service.registry.get("ep-1") is None
        assert service.runner.in_flight() == 0


class TestDuplicates:
    """Test idempotency while a job is processing."""

    def test_duplicate_while_processing(self, build_service):
        tts = FakeTTSClient(block=True)
        service = build_service(tts=tts)

        first = service.submit("ep-1", make_request())
        assert tts.started.wait(timeout=5)
        second = service.submit("ep-1", make_request(text="different"))

        assert second.accepted is False
        assert second.message == "Processing already in progress"
        assert second.record.started_at == first.record.started_at
        assert second.record.status is JobStatus.PROCESSING

        tts.gate.set()
        _settle(service)
        assert len(tts.calls) == 1
        assert tts.calls[0][0] == "hello"

    def test_resubmit_after_completion_starts_new_run(self, service, fake_tts):
        first = service.submit("ep-1", make_request())
        _settle(service)
        assert service.get_status("ep-1").status is JobStatus.COMPLETED

        second = service.submit("ep-1", make_request(text="take two"))
        assert second.accepted is True
        assert second.record.started_at > first.record.started_at
        _settle(service)

        record = service.get_status("ep-1")
        assert record.status is JobStatus.COMPLETED
        assert record.started_at == second.record.started_at
        assert len(fake_tts.calls) == 2

    def test_resubmit_after_failure_clears_error(self, build_service):
        tts = FakeTTSClient(exc=TTSClientError("API request failed with status 500: oops"))
        service = build_service(tts=tts)
        service.submit("ep-1", make_request())
        _settle(service)
        assert service.get_status("ep-1").status is JobStatus.FAILED

        tts.exc = None
        service.submit("ep-1", make_request())
        _settle(service)
        record = service.get_status("ep-1")
        assert record.status is JobStatus.COMPLETED
        assert record.error is None


class TestProcessingFailures:
    """Test that every failure after acceptance ends in a failed record."""

    @pytest.mark.parametrize("field,message", [
        ("api_key", "apiKey is required"),
        ("bucket_name", "r2BucketName is required"),
        ("account_id", "r2AccountId is required"),
        ("prefix", "r2Prefix is required"),
    ])
    def test_missing_parameter_fails_job(self, service, fake_tts, fake_store, field, message):
        result = service.submit("ep-1", make_request(**{field: None}))
        assert result.accepted is True
        _settle(service)

        record = service.get_status("ep-1")
        assert record.status is JobStatus.FAILED
        assert record.error == message
        assert record.storage_key is None
        assert fake_tts.calls == []
        assert fake_store.uploads == []

    def test_tts_error_recorded_verbatim(self, build_service, fake_store):
        tts = FakeTTSClient(exc=TTSClientError("API request failed with status 401: invalid api key"))
        service = build_service(tts=tts)

        service.submit("ep-1", make_request())
        _settle(service)

        record = service.get_status("ep-1")
        assert record.status is JobStatus.FAILED
        assert record.error == "API request failed with status 401: invalid api key"
        assert fake_store.uploads == []

    def test_upload_error_fails_job_and_cleans_up(self, build_service):
        store = FakeObjectStore(exc=ObjectStoreError("Access Denied"))
        service = build_service(store=store)

        service.submit("ep-1", make_request())
        _settle(service)

        record = service.get_status("ep-1")
        assert record.status is JobStatus.FAILED
        assert record.error == "Access Denied"
        assert store.uploads[0]["existed"] is True
        assert not store.uploads[0]["path"].exists()

    def test_unexpected_error_is_internal_error(self, build_service):
        store = FakeObjectStore(exc=RuntimeError("kaboom"))
        service = build_service(store=store)

        service.submit("ep-1", make_request())
        _settle(service)

        record = service.get_status("ep-1")
        assert record.status is JobStatus.FAILED
        assert record.error == "internal error: kaboom"
        assert not store.uploads[0]["path"].exists()

    def test_completed_at_set_on_failure(self, build_service):
        service = build_service(tts=FakeTTSClient(exc=TTSClientError("failed after 3 attempts: timeout")))
        service.submit("ep-1", make_request())
        _settle(service)

        record = service.get_status("ep-1")
        assert record.completed_at is not None
        assert record.completed_at >= record.started_at


class TestBackpressure:
    """Test queue limits and draining."""

    def test_queue_full(self, build_service):
        tts = FakeTTSClient(block=True)
        service = build_service(tts=tts, max_workers=1, max_pending=1)

        service.submit("a", make_request())
        with pytest.raises(QueueFullError) as exc:
            service.submit("b", make_request())

        assert exc.value.code == ErrorCode.QUEUE_FULL
        assert service.registry.get("b") is None
        tts.gate.set()

    def test_duplicate_echoed_when_queue_full(self, build_service):
        tts = FakeTTSClient(block=True)
        service = build_service(tts=tts, max_workers=1, max_pending=1)

        first = service.submit("a", make_request())
        again = service.submit("a", make_request())

        assert again.accepted is False
        assert again.record.started_at == first.record.started_at
        tts.gate.set()

    def test_draining_rejects_submissions(self, build_service):
        state = ShutdownState()
        service = build_service(shutdown_state=state)
        service.submit("ep-1", make_request())
        _settle(service)

        state.begin_draining()
        with pytest.raises(DrainingError):
            service.submit("ep-2", make_request())

        assert service.registry.get("ep-2") is None
        assert service.get_status("ep-1").status is JobStatus.COMPLETED

    def test_submit_after_runner_shutdown(self, service):
        service.runner.shutdown(wait=False)
        with pytest.raises((DrainingError, QueueFullError)):
            service.submit("ep-1", make_request())


class TestStatusAndHealth:
    def test_unknown_submission(self, service):
        with pytest.raises(NotFoundError) as exc:
            service.get_status("nope")
        assert exc.value.message == "Submission not found"
        assert exc.value.code == ErrorCode.NOT_FOUND

    def test_health_info(self, service):
        service.submit("ep-1", make_request())
        _settle(service)

        info = service.get_health_info()
        assert info["ok"] is True
        assert info["status"] == "healthy"
        assert info["jobs"] == {"records": 1, "processing": 0, "completed": 1, "failed": 0}
        assert info["voices"] == 11
        assert info["runner"]["max_workers"] == 2
        assert info["deployment"]["region"] == "WEUR"
        assert "resources" not in info

    def test_health_info_draining(self, build_service):
        state = ShutdownState()
        service = build_service(shutdown_state=state)
        state.begin_draining()

        info = service.get_health_info()
        assert info["ok"] is False
        assert info["status"] == "draining"

    def test_health_info_with_resources(self, service, relay_config):
        relay_config.resources.enabled = True
        info = service.get_health_info()
        assert set(info["resources"]) == {"cpu_percent", "ram_used_mb", "ram_available_mb", "threads"}


class TestGlobalService:
    def test_singleton_and_reset(self):
        from tts_relay.core.config import Settings
        from tts_relay.jobs.service import get_service, peek_service, reset_service

        reset_service()
        try:
            service = get_service(Settings(raw={}))
            assert get_service(Settings(raw={})) is service
            assert peek_service() is service
        finally:
            reset_service()
        assert peek_service() is None
