"""
Process Resource Monitoring.

Samples CPU and RAM usage of the relay process with psutil. The snapshot
is reported by /_health and logged at startup; the relay does no local
compute, so a rising RSS usually means the registry is growing or
temporary audio is being held longer than expected.

Environment Variables:
    - TTS_RELAY_RESOURCES_ENABLED: Set to "0" to disable sampling

Usage:
    from tts_relay.core.resources import get_sampler

    snapshot = get_sampler().sample()
    print(snapshot.to_dict())
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import psutil


@dataclass
class ResourceSnapshot:
    """
    Snapshot of resource usage at a point in time.

    Attributes:
        cpu_percent: Process CPU utilization since the previous sample.
            Can exceed 100 on multi-core systems.
        ram_used_mb: Process resident set size (RSS) in megabytes.
        ram_available_mb: System-wide available RAM in megabytes.
        threads: Number of OS threads in the process (HTTP + job workers).
    """
    cpu_percent: float = 0.0
    ram_used_mb: float = 0.0
    ram_available_mb: float = 0.0
    threads: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpu_percent": round(self.cpu_percent, 1),
            "ram_used_mb": round(self.ram_used_mb, 1),
            "ram_available_mb": round(self.ram_available_mb, 1),
            "threads": self.threads,
        }


class ResourceSampler:
    """
    Thread-safe sampler for process CPU and RAM.

    The first cpu_percent() reading of a psutil Process is always 0.0; the
    sampler primes it on construction so the first /_health call reports
    a real value.
    """

    def __init__(self):
        self._process = psutil.Process()
        self._lock = threading.Lock()
        try:
            self._process.cpu_percent(interval=None)
        except psutil.Error:
            pass

    def sample(self) -> ResourceSnapshot:
        """Take a snapshot of current resource usage."""
        with self._lock:
            try:
                cpu_percent = self._process.cpu_percent(interval=None)
            except psutil.Error:
                cpu_percent = 0.0

            try:
                ram_used_mb = self._process.memory_info().rss / (1024 * 1024)
                ram_available_mb = psutil.virtual_memory().available / (1024 * 1024)
            except psutil.Error:
                ram_used_mb = 0.0
                ram_available_mb = 0.0

            try:
                threads = self._process.num_threads()
            except psutil.Error:
                threads = 0

            return ResourceSnapshot(
                cpu_percent=cpu_percent,
                ram_used_mb=ram_used_mb,
                ram_available_mb=ram_available_mb,
                threads=threads,
            )


_sampler: Optional[ResourceSampler] = None
_sampler_lock = threading.Lock()


def get_sampler() -> ResourceSampler:
    """Get the global ResourceSampler instance."""
    global _sampler
    if _sampler is None:
        with _sampler_lock:
            if _sampler is None:
                _sampler = ResourceSampler()
    return _sampler


def reset_sampler() -> None:
    """Drop the global sampler (used by tests)."""
    global _sampler
    with _sampler_lock:
        _sampler = None
