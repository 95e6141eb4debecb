"""
Bounded Job Runner.

Runs processing tasks on a fixed-size ThreadPoolExecutor and keeps track of
every task it accepted.

Two limits apply:
    - max_workers: tasks running at once (and so concurrent TTS calls)
    - max_pending: tasks accepted but not finished, running or queued

A submission first reserves a slot with try_reserve(). The slot is released
when the task finishes, or by release() when the submission turns out to
be a duplicate and no task is started. Reserving before touching the
registry means a full runner rejects a submission without side effects.

Thread-safety:
    - Reservation counter and future set are protected by _lock
    - wait_idle() blocks on a Condition over the same lock
"""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Set

from tts_relay.core.config import Defaults
from tts_relay.core.logging import debug, get_logger, info, warn
from tts_relay.core.metrics import metrics


_LOG = get_logger("tts-relay.runner")


class RunnerClosedError(RuntimeError):
    """Raised by submit() after shutdown() has been called."""


@dataclass
class RunnerStats:
    max_workers: int
    max_pending: int
    in_flight: int
    total_submitted: int
    total_rejected: int
    accepting: bool


class JobRunner:
    """
    Fixed worker pool with a reservation-based pending limit.

    Usage:
        runner = JobRunner(max_workers=4, max_pending=64)
        if runner.try_reserve():
            future = runner.submit(task, arg1, arg2)
    """

    def __init__(
        self,
        max_workers: int = Defaults.JOBS_MAX_WORKERS,
        max_pending: int = Defaults.JOBS_MAX_PENDING,
    ):
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if max_pending < max_workers:
            raise ValueError("max_pending must be >= max_workers")

        self._max_workers = max_workers
        self._max_pending = max_pending
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="relay-job-",
        )

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._reserved = 0
        self._futures: Set[Future] = set()
        self._accepting = True
        self._total_submitted = 0
        self._total_rejected = 0

    @property
    def accepting(self) -> bool:
        with self._lock:
            return self._accepting

    def try_reserve(self) -> bool:
        """Reserve a pending slot. False when full or shut down."""
        with self._lock:
            if not self._accepting or self._reserved >= self._max_pending:
                self._total_rejected += 1
                return False
            self._reserved += 1
            reserved = self._reserved
        metrics.set_jobs_in_flight(reserved)
        return True

    def release(self) -> None:
        """Give back a reserved slot that will not be used."""
        with self._lock:
            self._release_locked()
            reserved = self._reserved
        metrics.set_jobs_in_flight(reserved)

    def _release_locked(self) -> None:
        if self._reserved > 0:
            self._reserved -= 1
        if self._reserved == 0:
            self._idle.notify_all()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        """
        Schedule fn(*args) on a reserved slot.

        The caller must hold a reservation from try_reserve(). The slot is
        released when the returned future completes.

        Raises:
            RunnerClosedError: If the runner has been shut down. The
                reservation is released.
        """
        with self._lock:
            closed = not self._accepting
        if closed:
            self.release()
            raise RunnerClosedError("job runner is shut down")

        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError as e:
            self.release()
            raise RunnerClosedError(str(e)) from e

        with self._lock:
            self._futures.add(future)
            self._total_submitted += 1
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)
            self._release_locked()
            reserved = self._reserved
        metrics.set_jobs_in_flight(reserved)

        exc = future.exception() if not future.cancelled() else None
        if exc is not None:
            # Tasks are expected to record their own failures
            warn(_LOG, "task_raised", error=repr(exc))

    def in_flight(self) -> int:
        """Accepted tasks that have not finished (running or queued)."""
        with self._lock:
            return self._reserved

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no task is in flight. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._reserved == 0, timeout=timeout)

    def shutdown(self, wait: bool = True, timeout: float | None = None) -> bool:
        """
        Stop accepting tasks and optionally wait for running ones.

        Tasks are never cancelled; after the timeout they keep running on
        daemon-less pool threads until the interpreter exits.

        Returns:
            True when all tasks had finished.
        """
        with self._lock:
            self._accepting = False
            pending = self._reserved

        info(_LOG, "runner_shutdown", in_flight=pending, timeout_s=timeout)
        drained = self.wait_idle(timeout) if wait else pending == 0
        if not drained:
            warn(_LOG, "runner_shutdown_timeout", in_flight=self.in_flight())
        self._executor.shutdown(wait=False)
        debug(_LOG, "runner_closed", drained=drained)
        return drained

    def stats(self) -> RunnerStats:
        with self._lock:
            return RunnerStats(
                max_workers=self._max_workers,
                max_pending=self._max_pending,
                in_flight=self._reserved,
                total_submitted=self._total_submitted,
                total_rejected=self._total_rejected,
                accepting=self._accepting,
            )
