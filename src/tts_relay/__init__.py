"""
tts-relay: Asynchronous Text-to-Speech Relay Service.

Accepts a text payload over HTTP, synthesizes it with a remote TTS provider
(ElevenLabs), uploads the MP3 to an S3-compatible object store (Cloudflare R2)
and lets clients poll the job status.

Key Features:
    - Fire-and-return submission (POST /process/{submission_id})
    - Idempotent resubmission while a job is still processing
    - Status polling (GET /status/{submission_id})
    - Bounded worker pool for outbound TTS calls
    - Transport-level retry with exponential backoff
    - Draining health check for graceful shutdown
    - Prometheus metrics and structured logging

Example Usage:
    >>> from tts_relay.core.config import RelayConfig
    >>> from tts_relay.jobs.params import JobRequest
    >>> from tts_relay.jobs.service import JobService
    >>>
    >>> service = JobService(RelayConfig())
    >>> result = service.submit("abc", JobRequest(text="hello", ...))
    >>> service.get_status("abc").status
    <JobStatus.PROCESSING: 'processing'>
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
