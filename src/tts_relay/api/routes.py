"""
Relay API Routes.

Endpoints:
    POST /process/{submission_id}  - Start a job (returns immediately)
    GET  /status/{submission_id}   - Poll a job
    GET  /_health                  - Health check (503 while draining)
    GET  /voices                   - Voice catalog
    GET  /metrics                  - Prometheus metrics

Error Handling:
    All errors are returned as JSON with a standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }

    HTTP status codes are mapped from RelayError codes:
        - INVALID_INPUT -> 400 Bad Request
        - NOT_FOUND -> 404 Not Found
        - QUEUE_FULL -> 503 Service Unavailable
        - DRAINING -> 503 Service Unavailable

Example Usage:
    curl -X POST http://localhost:8080/process/ep-42 \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Hello", "elevenLabsApiToken": "sk_...", "r2BucketName": "b", ...}'

    curl http://localhost:8080/status/ep-42
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from tts_relay.api.dependencies import get_job_service
from tts_relay.api.schemas import JobStatusResponse, ProcessAck, ProcessRequest
from tts_relay.clients.tts import voice_catalog
from tts_relay.core.logging import error, get_logger, set_job_id
from tts_relay.core.metrics import metrics
from tts_relay.jobs.service import ErrorCode, JobService, RelayError


router = APIRouter()

_LOG = get_logger("tts-relay.api")

_STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.QUEUE_FULL: 503,
    ErrorCode.DRAINING: 503,
}


def _error_response(err: RelayError) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_MAP.get(err.code, 500), content=err.to_dict())


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
        },
    )


@router.post("/process/{submission_id}", response_model=ProcessAck, response_model_by_alias=True)
def process_submission(
    submission_id: str,
    req: Optional[ProcessRequest] = None,
    service: JobService = Depends(get_job_service),
):
    """
    Start text-to-speech processing for a submission.

    Returns at once with status "processing". Submitting an id that is
    still processing starts nothing and echoes the running job; submitting
    an id whose job has finished starts a fresh job.
    """
    set_job_id(submission_id)
    try:
        result = service.submit(submission_id, (req or ProcessRequest()).to_job_request())
    except RelayError as e:
        return _error_response(e)
    except Exception as e:
        error(_LOG, "submit_crashed", exc_info=True, error=repr(e))
        return _internal_error()

    return JSONResponse(content=result.to_dict(service.deployment))


@router.get("/status/{submission_id}", response_model=JobStatusResponse, response_model_by_alias=True)
def job_status(
    submission_id: str,
    service: JobService = Depends(get_job_service),
):
    """Current job record; optional fields are omitted when unset."""
    try:
        record = service.get_status(submission_id)
    except RelayError as e:
        return _error_response(e)
    return JSONResponse(content=record.to_dict())


@router.get("/_health")
def health(service: JobService = Depends(get_job_service)):
    """
    Health check for load balancers and container liveness checks.

    200 while serving, 503 once shutdown has begun so traffic is routed
    elsewhere during the drain window.
    """
    info = service.get_health_info()
    status_code = 200 if info["ok"] else 503
    return JSONResponse(status_code=status_code, content=info)


@router.get("/voices")
def voices():
    """Voice catalog; "index" is the value to send as voiceIx."""
    return {"voices": voice_catalog()}


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
