"""
Job Status Registry.

The registry is the single source of truth for job state. Records are
immutable; every change replaces the whole record under the registry's
lock, so readers never see a half-updated job.

State machine (per submission id):

    (absent) ──submit──▶ processing ──task──▶ completed | failed
                              ▲                       │
                              └──────resubmit─────────┘

A terminal record never goes back to processing by itself. Resubmitting the
same id after a terminal state replaces it with a fresh processing record
(last write wins, history is not kept).

The in-memory implementation never evicts. The record count is exported as
the relay_registry_records gauge and reported by /_health.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from tts_relay.core.logging import debug, get_logger


_LOG = get_logger("tts-relay.registry")


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


def _iso(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class JobRecord:
    """
    Status of one submission.

    storage_key is set only when completed, error only when failed,
    completed_at on every transition out of processing.
    """
    submission_id: str
    status: JobStatus
    started_at: datetime
    storage_key: Optional[str] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def processing(cls, submission_id: str, started_at: datetime) -> "JobRecord":
        return cls(submission_id=submission_id, status=JobStatus.PROCESSING, started_at=started_at)

    def completed(self, storage_key: str, completed_at: datetime) -> "JobRecord":
        return replace(
            self,
            status=JobStatus.COMPLETED,
            storage_key=storage_key,
            error=None,
            completed_at=max(completed_at, self.started_at),
        )

    def failed(self, error: str, completed_at: datetime) -> "JobRecord":
        return replace(
            self,
            status=JobStatus.FAILED,
            storage_key=None,
            error=error,
            completed_at=max(completed_at, self.started_at),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_s(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Wire form, optional fields omitted when unset."""
        result: Dict[str, Any] = {
            "submissionId": self.submission_id,
            "status": self.status.value,
        }
        if self.storage_key is not None:
            result["r2Key"] = self.storage_key
        if self.error is not None:
            result["error"] = self.error
        result["startedAt"] = _iso(self.started_at)
        if self.completed_at is not None:
            result["completedAt"] = _iso(self.completed_at)
        return result


class JobRegistry(ABC):
    """
    Storage interface for job records.

    Implementations must make every method atomic with respect to the
    others; the submission path depends on compare_and_set_if_absent_or_terminal
    being a single step.
    """

    @abstractmethod
    def get(self, submission_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    def set(self, submission_id: str, record: JobRecord) -> None:
        """Unconditionally store a record."""

    @abstractmethod
    def compare_and_set_if_absent_or_terminal(
        self, submission_id: str, record: JobRecord
    ) -> Tuple[bool, JobRecord]:
        """
        Insert record unless a processing record already exists.

        Returns:
            (True, record) when stored, (False, existing) when a job for
            this id is still processing.
        """

    @abstractmethod
    def finish(self, submission_id: str, record: JobRecord) -> bool:
        """
        Store a terminal record for the run that started at record.started_at.

        Returns False (and stores nothing) when the current entry is not
        that run's processing record.
        """

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def counts(self) -> Dict[str, int]:
        """Number of records per status value."""


class InMemoryJobRegistry(JobRegistry):
    """Dict-backed registry guarded by a single lock."""

    def __init__(self):
        self._records: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def get(self, submission_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._records.get(submission_id)

    def set(self, submission_id: str, record: JobRecord) -> None:
        with self._lock:
            self._records[submission_id] = record

    def compare_and_set_if_absent_or_terminal(
        self, submission_id: str, record: JobRecord
    ) -> Tuple[bool, JobRecord]:
        with self._lock:
            current = self._records.get(submission_id)
            if current is not None and not current.is_terminal:
                return False, current
            self._records[submission_id] = record
        debug(
            _LOG, "registry_insert",
            status=record.status.value, replaced=current.status.value if current else None,
        )
        return True, record

    def finish(self, submission_id: str, record: JobRecord) -> bool:
        if not record.is_terminal:
            raise ValueError("finish() requires a terminal record")
        with self._lock:
            current = self._records.get(submission_id)
            if (
                current is None
                or current.is_terminal
                or current.started_at != record.started_at
            ):
                return False
            self._records[submission_id] = record
        debug(_LOG, "registry_finish", status=record.status.value)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def counts(self) -> Dict[str, int]:
        result = {status.value: 0 for status in JobStatus}
        with self._lock:
            for record in self._records.values():
                result[record.status.value] += 1
        return result
