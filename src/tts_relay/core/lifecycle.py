"""
Shutdown State.

The relay drains before it stops: on the first SIGINT/SIGTERM the process
reports unhealthy and refuses new submissions, keeps serving status polls
for a grace period so load balancers stop routing to it, then asks the
server to exit. A second signal means "now".

ShutdownState holds the draining flag and counts signals. It is shared by
the HTTP layer (health, submissions) and the CLI's signal handler.
"""
from __future__ import annotations

import threading
from typing import Optional


class ShutdownState:
    """Thread-safe draining flag with a signal counter."""

    def __init__(self):
        self._draining = threading.Event()
        self._lock = threading.Lock()
        self._signals = 0

    @property
    def draining(self) -> bool:
        return self._draining.is_set()

    @property
    def signals(self) -> int:
        with self._lock:
            return self._signals

    def begin_draining(self) -> int:
        """
        Record a shutdown request and enter draining mode.

        Returns:
            How many shutdown requests have been made, including this one.
        """
        with self._lock:
            self._signals += 1
            count = self._signals
        self._draining.set()
        return count

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until draining starts. Returns False on timeout."""
        return self._draining.wait(timeout)


_state: Optional[ShutdownState] = None
_state_lock = threading.Lock()


def get_shutdown_state() -> ShutdownState:
    """Get the process-wide ShutdownState."""
    global _state
    if _state is None:
        with _state_lock:
            if _state is None:
                _state = ShutdownState()
    return _state


def reset_shutdown_state() -> None:
    """Reset the process-wide ShutdownState (used by tests)."""
    global _state
    with _state_lock:
        _state = None
