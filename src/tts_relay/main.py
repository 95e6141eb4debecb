"""
FastAPI Application Entry Point.

Creates the relay application: logging, routes, a uniform 400 for
malformed request bodies, and a lifespan that drains the job runner when
the server stops.

Usage:
    # Preferred: handles SIGTERM draining
    tts-relay serve --port 8080

    # Plain uvicorn (no drain window on SIGTERM)
    uvicorn tts_relay.main:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tts_relay import __version__
from tts_relay.api.routes import router
from tts_relay.core.logging import configure_logging, get_logger, info
from tts_relay.jobs.service import ErrorCode, peek_service


_LOG = get_logger("tts-relay.main")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    info(_LOG, "app_started", version=__version__)
    yield
    service = peek_service()
    if service is not None:
        # Waits up to jobs.shutdown_timeout_s for running jobs
        service.shutdown(wait=True)
    info(_LOG, "app_stopped")


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": ErrorCode.INVALID_INPUT,
            "message": f"{field}: {message}" if field else message,
        },
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    configure_logging()

    app = FastAPI(title="tts-relay", version=__version__, lifespan=_lifespan)
    app.include_router(router)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    return app


# Global application instance for ASGI servers
app = create_app()
