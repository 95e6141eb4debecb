"""Shared fixtures: in-process fakes for the TTS provider and object store."""
from __future__ import annotations

import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pytest

os.environ.setdefault("TTS_RELAY_NO_COLOR", "1")
os.environ.setdefault("TTS_RELAY_RESOURCES_ENABLED", "0")

from tts_relay.clients.object_store import ObjectStore, ObjectStoreCredentials  # noqa: E402
from tts_relay.core.config import DeploymentContext, RelayConfig  # noqa: E402
from tts_relay.core.lifecycle import ShutdownState  # noqa: E402
from tts_relay.jobs.params import JobRequest  # noqa: E402
from tts_relay.jobs.registry import InMemoryJobRegistry  # noqa: E402
from tts_relay.jobs.runner import JobRunner  # noqa: E402
from tts_relay.jobs.service import JobService  # noqa: E402

AUDIO = b"ID3\x04\x00fake-mp3-frames"


class FakeTTSClient:
    """Stands in for TTSClient; optionally blocks until released."""

    def __init__(self, audio: bytes = AUDIO, exc: Optional[Exception] = None, block: bool = False):
        self.audio = audio
        self.exc = exc
        self.calls: List[tuple] = []
        self.started = threading.Event()
        self.gate = threading.Event()
        if not block:
            self.gate.set()
        self._lock = threading.Lock()

    def synthesize(self, text: str, api_key: str, voice_index: int) -> bytes:
        with self._lock:
            self.calls.append((text, api_key, voice_index))
        self.started.set()
        self.gate.wait(timeout=10)
        if self.exc is not None:
            raise self.exc
        return self.audio

    def close(self) -> None:
        pass


class FakeObjectStore(ObjectStore):
    """Records uploads, including the file contents and path seen at upload time."""

    def __init__(self, exc: Optional[Exception] = None):
        self.exc = exc
        self.uploads: List[dict] = []

    def upload(self, bucket: str, key: str, path: Path, credentials: ObjectStoreCredentials, account_id: str) -> None:
        self.uploads.append({
            "bucket": bucket,
            "key": key,
            "path": Path(path),
            "existed": Path(path).exists(),
            "body": Path(path).read_bytes(),
            "credentials": credentials,
            "account_id": account_id,
        })
        if self.exc is not None:
            raise self.exc


class StepClock:
    """Deterministic UTC clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)):
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self._now
            self._now = current + timedelta(seconds=1)
            return current


def make_request(**overrides) -> JobRequest:
    fields = dict(
        text="hello",
        api_key="sk_test_0123456789",
        voice_index=None,
        output_file_name=None,
        bucket_name="podcasts",
        access_key_id="AKIDEXAMPLE",
        secret_access_key="super-secret-key",
        account_id="acc123",
        prefix="shows/weekly",
    )
    fields.update(overrides)
    return JobRequest(**fields)


@pytest.fixture
def fake_tts() -> FakeTTSClient:
    return FakeTTSClient()


@pytest.fixture
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def relay_config(tmp_path) -> RelayConfig:
    config = RelayConfig()
    config.jobs.artifact_dir = str(tmp_path / "artifacts")
    config.resources.enabled = False
    return config


@pytest.fixture
def build_service(relay_config, fake_tts, fake_store):
    """Factory for JobService instances wired to fakes; shut down after the test."""
    created: List[JobService] = []

    def _build(
        tts=None,
        store=None,
        max_workers: int = 2,
        max_pending: int = 8,
        shutdown_state: Optional[ShutdownState] = None,
    ) -> JobService:
        service = JobService(
            relay_config,
            registry=InMemoryJobRegistry(),
            tts_client=tts or fake_tts,
            store=store or fake_store,
            runner=JobRunner(max_workers=max_workers, max_pending=max_pending),
            shutdown_state=shutdown_state or ShutdownState(),
            deployment=DeploymentContext(region="WEUR", instance_id="inst-1", country="DE", location="FRA"),
            clock=StepClock(),
        )
        created.append(service)
        return service

    yield _build

    for service in created:
        service.shutdown(wait=True, timeout=5)


@pytest.fixture
def service(build_service) -> JobService:
    return build_service()
