"""Readiness wait for started containers."""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Optional

import structlog

from envd_lifecycle.domain.entities.container import ContainerRecord
from envd_lifecycle.domain.errors import LifecycleError, ReadinessTimeoutError, WaitCancelledError

logger = structlog.get_logger(__name__)


class WaitState(Enum):
    """Readiness wait state. Every state but WAITING is terminal."""
    WAITING = "waiting"
    READY = "ready"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class ReadinessWaiter:
    """Blocks until a container is observed running.

    The first poll happens one interval after the wait starts. A failed poll
    ends the wait immediately with that failure; it is not retried on the
    next tick.

    Example:
        waiter = ReadinessWaiter(service.is_running, client.inspect_container)
        waiter.wait_until_running("myenv", timeout=30.0)
    """

    def __init__(
        self,
        is_running: Callable[[str], bool],
        inspect: Optional[Callable[[str], ContainerRecord]] = None,
        poll_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize readiness waiter.

        Args:
            is_running: Returns whether the named container is running.
            inspect: Used once on timeout to capture the last known state.
            poll_interval: Seconds between polls.
            clock: Monotonic clock.
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._is_running = is_running
        self._inspect = inspect
        self._interval = poll_interval
        self._clock = clock
        self.state = WaitState.WAITING

    @property
    def poll_interval(self) -> float:
        """Seconds between polls."""
        return self._interval

    def wait_until_running(
        self,
        name: str,
        timeout: float,
        cancel: Optional[threading.Event] = None,
    ) -> float:
        """Wait for a container to be running.

        Args:
            name: Container name.
            timeout: Seconds to wait before giving up.
            cancel: Set by the caller to stop waiting early.

        Returns:
            Seconds waited.

        Raises:
            ReadinessTimeoutError: If the deadline passes first.
            WaitCancelledError: If cancel is set first.
            LifecycleError: If a poll fails.
        """
        cancel = cancel or threading.Event()
        log = logger.bind(container=name)
        log.debug("waiting to start")

        self.state = WaitState.WAITING
        started = self._clock()
        deadline = started + timeout

        while True:
            remaining = deadline - self._clock()
            if remaining < self._interval:
                # Deadline comes before the next tick.
                if remaining > 0 and cancel.wait(remaining):
                    raise self._cancelled(name, started)
                break
            if cancel.wait(self._interval):
                raise self._cancelled(name, started)

            try:
                running = self._is_running(name)
            except LifecycleError:
                log.debug("failed to check if container is running")
                raise
            if running:
                self.state = WaitState.READY
                log.debug("the container is running")
                return self._clock() - started

        elapsed = self._clock() - started
        self.state = WaitState.TIMED_OUT
        raise ReadinessTimeoutError(name, timeout, elapsed, self._diagnose(name))

    def _cancelled(self, name: str, started: float) -> WaitCancelledError:
        self.state = WaitState.CANCELLED
        elapsed = self._clock() - started
        return WaitCancelledError(f"wait for container {name} cancelled after {elapsed:.2f}s")

    def _diagnose(self, name: str) -> Optional[dict]:
        """Best-effort capture of the container state after a timeout."""
        if self._inspect is None:
            return None
        try:
            record = self._inspect(name)
        except Exception as e:
            logger.debug("failed to inspect container", container=name, error=str(e))
            return None
        logger.debug("container state", container=name, state=record.raw_state or record.state.value)
        return record.raw_state or {"Status": record.state.value}
