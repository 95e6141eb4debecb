"""
Job Service - Submission, Status and Processing.

JobService is the single place where job semantics live. The HTTP layer
only translates between JSON and the calls below.

Request Flow:
    submit()                                  runner worker
    ────────                                  ─────────────
    0. Refuse while draining       (503)
    1. Validate id, text, voiceIx  (400)
       └─ already processing: echo record
    2. Reserve runner slot         (503)
    3. Atomic insert-if-idle in registry
       └─ duplicate: release slot, echo record
    4. runner.submit(process) ──────────────▶ process()
    5. Return immediately                      1. Build ProcessingParams
                                               2. TTS (with transport retries)
                                               3. Write temp file
                                               4. Upload to object store
                                               5. registry.finish(completed|failed)
                                               6. Remove temp file

Error Handling:
    Client errors are raised from submit() as RelayError subclasses and
    never create a record. Everything that goes wrong after acceptance
    (invalid credentials, provider errors, upload errors, local I/O, bugs)
    ends in a "failed" record; a started task always leaves a terminal
    record behind.

Thread Safety:
    The registry is the only shared mutable state and is only touched via
    its atomic methods. process() runs on runner worker threads.
"""
from __future__ import annotations

import tempfile
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from tts_relay.clients.object_store import ObjectStore, ObjectStoreError, R2ObjectStore
from tts_relay.clients.tts import VOICES, TTSClient, TTSClientError
from tts_relay.core.config import DeploymentContext, RelayConfig, Settings
from tts_relay.core.lifecycle import ShutdownState, get_shutdown_state
from tts_relay.core.logging import (
    debug,
    error,
    fail,
    get_logger,
    info,
    set_job_id,
    success,
    verbose,
    warn,
)
from tts_relay.core.metrics import metrics
from tts_relay.core.resources import get_sampler
from tts_relay.jobs.params import JobRequest, ProcessingParams
from tts_relay.jobs.registry import InMemoryJobRegistry, JobRecord, JobRegistry, JobStatus
from tts_relay.jobs.runner import JobRunner, RunnerClosedError
from tts_relay.jobs.validators import (
    ValidationError,
    validate_submission_id,
    validate_text,
    validate_voice_index,
)
from tts_relay.utils.text import preview, safe_filename_part
from tts_relay.utils.timeit import timeit


_LOG = get_logger("tts-relay.service")


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """Error codes returned in API error responses."""
    INVALID_INPUT = "INVALID_INPUT"         # Bad id, text or voiceIx
    NOT_FOUND = "NOT_FOUND"                 # Unknown submission id
    QUEUE_FULL = "QUEUE_FULL"               # Pending-job limit reached
    DRAINING = "DRAINING"                   # Shutdown in progress
    INTERNAL_ERROR = "INTERNAL_ERROR"       # Unexpected error


class RelayError(Exception):
    """
    Base exception for errors reported synchronously to the caller.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidInputError(RelayError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class NotFoundError(RelayError):
    def __init__(self, message: str = "Submission not found", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


class QueueFullError(RelayError):
    """Raised when the runner's pending-job limit is reached."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.QUEUE_FULL, details)


class DrainingError(RelayError):
    """Raised for submissions that arrive after shutdown has begun."""
    def __init__(self, message: str = "Service is shutting down", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.DRAINING, details)


class _StageFailed(Exception):
    # Internal: a pipeline stage failed in an expected way
    def __init__(self, message: str, stage: str):
        self.message = message
        self.stage = stage
        super().__init__(message)


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class SubmitResult:
    """
    Outcome of submit().

    accepted is False when a job for the id was already processing; record
    is then that job's record, unchanged.
    """
    accepted: bool
    record: JobRecord

    @property
    def message(self) -> str:
        return "Processing started" if self.accepted else "Processing already in progress"

    def to_dict(self, deployment: DeploymentContext) -> Dict[str, Any]:
        wire = self.record.to_dict()
        result: Dict[str, Any] = {
            "message": self.message,
            "submissionId": wire["submissionId"],
            "status": wire["status"],
            "startedAt": wire["startedAt"],
        }
        result.update(deployment.to_dict())
        return result


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Job Service
# =============================================================================

class JobService:
    """
    Accepts submissions, runs processing tasks and answers status queries.

    Collaborators are injectable so tests can swap the registry, the TTS
    client, the object store and the runner.

    Usage:
        service = JobService(settings.get_relay_config())
        result = service.submit("ep-42", JobRequest(text="Hello", ...))
        record = service.get_status("ep-42")
    """

    def __init__(
        self,
        config: RelayConfig,
        registry: Optional[JobRegistry] = None,
        tts_client: Optional[TTSClient] = None,
        store: Optional[ObjectStore] = None,
        runner: Optional[JobRunner] = None,
        shutdown_state: Optional[ShutdownState] = None,
        deployment: Optional[DeploymentContext] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._config = config
        self._registry = registry if registry is not None else InMemoryJobRegistry()
        self._tts = tts_client or TTSClient(config.tts)
        self._store = store or R2ObjectStore(config.store)
        self._runner = runner or JobRunner(
            max_workers=config.jobs.max_workers,
            max_pending=config.jobs.max_pending,
        )
        self._shutdown = shutdown_state or get_shutdown_state()
        self._deployment = deployment or DeploymentContext.from_env()
        self._clock = clock

        info(
            _LOG, "service_init",
            max_workers=config.jobs.max_workers,
            max_pending=config.jobs.max_pending,
            tts_base_url=config.tts.base_url,
            max_attempts=config.tts.max_attempts,
        )

    @property
    def config(self) -> RelayConfig:
        return self._config

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def runner(self) -> JobRunner:
        return self._runner

    @property
    def deployment(self) -> DeploymentContext:
        return self._deployment

    @property
    def shutdown_state(self) -> ShutdownState:
        return self._shutdown

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(self, submission_id: str, request: JobRequest) -> SubmitResult:
        """
        Accept a job, or report the one already running for this id.

        Returns without waiting for the job.

        Raises:
            DrainingError: Shutdown has begun.
            InvalidInputError: Missing/invalid id, blank text, bad voiceIx.
            QueueFullError: Too many jobs in flight.
        """
        set_job_id(submission_id or "-")

        if self._shutdown.draining:
            metrics.record_submission("draining")
            raise DrainingError()

        try:
            validate_submission_id(submission_id)
            validate_text(request.text)
            validate_voice_index(request.voice_index)
        except ValidationError as e:
            metrics.record_submission("invalid")
            warn(_LOG, "submission_rejected", reason=e.code)
            raise InvalidInputError(e.message, details={"code": e.code})

        # Duplicates are echoed even when the runner is full; the insert
        # below still decides atomically.
        existing = self._registry.get(submission_id)
        if existing is not None and not existing.is_terminal:
            return self._duplicate(existing)

        if not self._runner.try_reserve():
            metrics.record_submission("queue_full")
            warn(_LOG, "submission_rejected", reason="QUEUE_FULL", in_flight=self._runner.in_flight())
            raise QueueFullError(
                "Too many jobs in flight, retry later",
                details={"max_pending": self._config.jobs.max_pending},
            )

        record = JobRecord.processing(submission_id, self._clock())
        accepted, current = self._registry.compare_and_set_if_absent_or_terminal(submission_id, record)
        metrics.set_registry_records(len(self._registry))

        if not accepted:
            self._runner.release()
            return self._duplicate(current)

        try:
            self._runner.submit(self.process, submission_id, request, record.started_at)
        except RunnerClosedError:
            self._registry.finish(submission_id, record.failed("service is shutting down", self._clock()))
            metrics.record_submission("draining")
            raise DrainingError()

        metrics.record_submission("accepted")
        info(
            _LOG, "job_accepted",
            status=record.status.value,
            chars=len(request.text or ""),
            voice_ix=request.voice_index,
        )
        verbose(
            _LOG, "job_text",
            preview=preview(request.text or "", self._config.logging.text_preview_chars),
        )
        return SubmitResult(accepted=True, record=record)

    def _duplicate(self, current: JobRecord) -> SubmitResult:
        metrics.record_submission("duplicate")
        info(_LOG, "submission_duplicate", status=current.status.value)
        return SubmitResult(accepted=False, record=current)

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self, submission_id: str) -> JobRecord:
        """
        Current record for a submission.

        Raises:
            NotFoundError: No job with this id was ever accepted.
        """
        record = self._registry.get(submission_id)
        if record is None:
            raise NotFoundError()
        return record

    # =========================================================================
    # Processing task (runs on a runner worker)
    # =========================================================================

    def process(self, submission_id: str, request: JobRequest, started_at: datetime) -> JobRecord:
        """
        Run one job to a terminal state.

        Never raises: every outcome, including unexpected exceptions, is
        written to the registry as completed or failed.

        Returns:
            The terminal record that was written (or would have been, if
            the run was superseded).
        """
        set_job_id(submission_id)
        base = JobRecord.processing(submission_id, started_at)

        try:
            storage_key = self._run(submission_id, request)
        except _StageFailed as e:
            debug(_LOG, "stage_failed", stage=e.stage)
            final = base.failed(e.message, self._clock())
        except Exception as e:
            error(_LOG, "job_crashed", exc_info=True, error=repr(e))
            final = base.failed(f"internal error: {e}", self._clock())
        else:
            final = base.completed(storage_key, self._clock())

        self._finish(submission_id, final)
        return final

    def _run(self, submission_id: str, request: JobRequest) -> str:
        try:
            params = ProcessingParams.from_request(
                request,
                default_voice_index=self._config.jobs.default_voice_index,
                default_output_file_name=self._config.jobs.default_output_file_name,
            )
        except ValidationError as e:
            raise _StageFailed(e.message, stage="validate")

        with timeit("tts") as t_tts:
            try:
                audio = self._tts.synthesize(params.text, params.api_key, params.voice_index)
            except TTSClientError as e:
                raise _StageFailed(e.message, stage="tts")
        verbose(_LOG, "stage_done", event="tts", seconds=round(t_tts.seconds, 3), bytes=len(audio))

        path: Optional[Path] = None
        try:
            with timeit("upload") as t_upload:
                path = self._write_artifact(submission_id, params, audio)
                self._store.upload(
                    bucket=params.bucket_name,
                    key=params.storage_key,
                    path=path,
                    credentials=params.credentials,
                    account_id=params.account_id,
                )
        except ObjectStoreError as e:
            raise _StageFailed(e.message, stage="upload")
        except OSError as e:
            raise _StageFailed(str(e), stage="artifact")
        finally:
            if path is not None:
                self._remove_artifact(path)
        verbose(_LOG, "stage_done", event="upload", seconds=round(t_upload.seconds, 3), r2_key=params.storage_key)

        return params.storage_key

    def _write_artifact(self, submission_id: str, params: ProcessingParams, audio: bytes) -> Path:
        directory = self._config.jobs.artifact_dir or None
        if directory:
            Path(directory).mkdir(parents=True, exist_ok=True)

        handle = tempfile.NamedTemporaryFile(
            mode="wb",
            prefix=f"{safe_filename_part(submission_id)}-",
            suffix=f"-{safe_filename_part(params.output_file_name)}",
            dir=directory,
            delete=False,
        )
        path = Path(handle.name)
        try:
            with handle:
                handle.write(audio)
        except OSError:
            self._remove_artifact(path)
            raise
        debug(_LOG, "artifact_written", path=str(path), bytes=len(audio))
        return path

    def _remove_artifact(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            warn(_LOG, "artifact_cleanup_failed", path=str(path), error=str(e))

    def _finish(self, submission_id: str, final: JobRecord) -> None:
        if not self._registry.finish(submission_id, final):
            warn(_LOG, "job_result_discarded", status=final.status.value)
            return

        duration = final.duration_s or 0.0
        metrics.record_job_finished(final.status.value, duration)
        if final.status is JobStatus.COMPLETED:
            success(_LOG, "job_completed", seconds=round(duration, 3), status=final.status.value, r2_key=final.storage_key)
        else:
            fail(_LOG, "job_failed", seconds=round(duration, 3), status=final.status.value, error=final.error)

    # =========================================================================
    # Health / lifecycle
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        """
        Health and status information for /_health.

        Returns a dictionary with:
            - ok / status ("healthy" or "draining")
            - jobs: record count per status
            - runner: worker pool stats
            - resources: process CPU/RAM (if enabled)
            - deployment: region/instance metadata
        """
        draining = self._shutdown.draining
        counts = self._registry.counts()
        records = sum(counts.values())
        metrics.set_registry_records(records)

        result: Dict[str, Any] = {
            "ok": not draining,
            "status": "draining" if draining else "healthy",
            "jobs": {"records": records, **counts},
            "runner": asdict(self._runner.stats()),
            "voices": len(VOICES),
            "deployment": self._deployment.to_dict(),
        }
        if self._config.resources.enabled:
            result["resources"] = get_sampler().sample().to_dict()
        return result

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> bool:
        """Stop the runner (waiting up to timeout) and close the TTS client."""
        if timeout is None:
            timeout = self._config.jobs.shutdown_timeout_s
        drained = self._runner.shutdown(wait=wait, timeout=timeout)
        if drained:
            self._tts.close()
        return drained


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[JobService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> JobService:
    """
    Get or create the global JobService instance.

    Thread-safe lazy singleton.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = JobService(settings.get_relay_config())
    return _service


def peek_service() -> Optional[JobService]:
    """The global service if it has been created, else None."""
    return _service


def reset_service() -> None:
    """
    Reset the global service instance.

    Used primarily for testing to ensure clean state between tests.
    """
    global _service
    with _service_lock:
        if _service is not None:
            _service.shutdown(wait=False)
        _service = None
