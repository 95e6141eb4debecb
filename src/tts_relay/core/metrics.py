"""
Prometheus Metrics for the Relay Service.

Metrics Exposed:
    relay_submissions_total{outcome}      - POST /process outcomes
                                            (accepted, duplicate, invalid, queue_full, draining)
    relay_jobs_finished_total{status}     - Terminal job states (completed, failed)
    relay_job_duration_seconds            - Wall time from acceptance to terminal state
    relay_tts_attempts_total{outcome}     - TTS HTTP attempts (ok, http_error, transport_error)
    relay_tts_request_duration_seconds    - Latency of a single TTS HTTP attempt
    relay_upload_bytes_total              - Audio bytes uploaded to the object store
    relay_jobs_in_flight                  - Accepted jobs not yet finished
    relay_registry_records                - Records held by the job registry

Usage:
    from tts_relay.core.metrics import metrics

    metrics.record_submission("accepted")
    metrics.record_job_finished("completed", duration=3.2)
    content, content_type = metrics.get_metrics_response()

Prometheus Scrape Config Example:
    scrape_configs:
      - job_name: 'tts-relay'
        static_configs:
          - targets: ['localhost:8080']
        metrics_path: '/metrics'
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class RelayMetrics:
    """
    Relay metrics collection.

    Each instance owns a private CollectorRegistry, so tests can build a
    fresh RelayMetrics without colliding with the global one.

    Thread Safety:
        Prometheus metric operations are thread-safe; worker threads record
        directly.
    """

    def __init__(self):
        self._registry = CollectorRegistry()

        self._submissions_total = Counter(
            "relay_submissions_total",
            "Submission requests by outcome",
            ["outcome"],
            registry=self._registry,
        )
        self._jobs_finished_total = Counter(
            "relay_jobs_finished_total",
            "Jobs that reached a terminal state",
            ["status"],
            registry=self._registry,
        )
        self._job_duration = Histogram(
            "relay_job_duration_seconds",
            "Job duration from acceptance to terminal state",
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )
        self._tts_attempts_total = Counter(
            "relay_tts_attempts_total",
            "TTS provider HTTP attempts by outcome",
            ["outcome"],
            registry=self._registry,
        )
        self._tts_request_duration = Histogram(
            "relay_tts_request_duration_seconds",
            "Duration of a single TTS provider HTTP attempt",
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._upload_bytes_total = Counter(
            "relay_upload_bytes_total",
            "Audio bytes uploaded to the object store",
            registry=self._registry,
        )
        self._jobs_in_flight = Gauge(
            "relay_jobs_in_flight",
            "Accepted jobs that have not finished",
            registry=self._registry,
        )
        self._registry_records = Gauge(
            "relay_registry_records",
            "Job records held by the registry",
            registry=self._registry,
        )

    def record_submission(self, outcome: str) -> None:
        self._submissions_total.labels(outcome=outcome).inc()

    def record_job_finished(self, status: str, duration: float) -> None:
        """
        Record a job reaching a terminal state.

        Args:
            status: "completed" or "failed"
            duration: Seconds since the job was accepted
        """
        self._jobs_finished_total.labels(status=status).inc()
        self._job_duration.observe(max(duration, 0.0))

    def record_tts_attempt(self, outcome: str, duration: float) -> None:
        self._tts_attempts_total.labels(outcome=outcome).inc()
        self._tts_request_duration.observe(duration)

    def record_upload(self, size_bytes: int) -> None:
        if size_bytes > 0:
            self._upload_bytes_total.inc(size_bytes)

    def set_jobs_in_flight(self, count: int) -> None:
        self._jobs_in_flight.set(count)

    def set_registry_records(self, count: int) -> None:
        self._registry_records.set(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global metrics instance: from tts_relay.core.metrics import metrics
metrics = RelayMetrics()
