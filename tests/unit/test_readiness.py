"""Unit tests for the readiness waiter."""

import threading
import time

import pytest

from envd_lifecycle.domain.entities.container import ContainerRecord, ContainerState
from envd_lifecycle.domain.errors import FatalHostError, ReadinessTimeoutError, WaitCancelledError
from envd_lifecycle.domain.services.readiness import ReadinessWaiter, WaitState


class ScriptedProbe:
    """is_running stand-in returning scripted answers."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = 0

    def __call__(self, name: str) -> bool:
        self.calls += 1
        answer = self.answers.pop(0) if self.answers else False
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.mark.unit
class TestReadinessWaiter:
    """Tests for ReadinessWaiter."""

    def test_rejects_non_positive_interval(self):
        """Test the poll interval must be positive."""
        with pytest.raises(ValueError):
            ReadinessWaiter(ScriptedProbe(), poll_interval=0)

    def test_ready_after_polls(self):
        """Test the wait returns once the probe reports running."""
        probe = ScriptedProbe(False, False, True)
        waiter = ReadinessWaiter(probe, poll_interval=0.01)
        elapsed = waiter.wait_until_running("myenv", timeout=2.0)
        assert probe.calls == 3
        assert elapsed > 0
        assert waiter.state is WaitState.READY

    def test_first_poll_after_one_interval(self):
        """Test no poll happens before the first interval elapses."""
        probe = ScriptedProbe(True)
        waiter = ReadinessWaiter(probe, poll_interval=0.05)
        started = time.monotonic()
        waiter.wait_until_running("myenv", timeout=2.0)
        assert time.monotonic() - started >= 0.04

    def test_timeout(self):
        """Test the wait fails after the timeout with the last known state."""
        record = ContainerRecord(
            container_id="4f2a",
            name="/myenv",
            state=ContainerState.EXITED,
            raw_state={"Status": "exited", "Running": False, "ExitCode": 1},
        )
        waiter = ReadinessWaiter(ScriptedProbe(), inspect=lambda name: record, poll_interval=0.01)

        with pytest.raises(ReadinessTimeoutError) as exc_info:
            waiter.wait_until_running("myenv", timeout=0.1)

        error = exc_info.value
        assert isinstance(error, TimeoutError)
        assert error.name == "myenv"
        assert error.timeout == 0.1
        assert error.last_state == {"Status": "exited", "Running": False, "ExitCode": 1}
        assert "timeout 0.1s" in str(error)
        assert waiter.state is WaitState.TIMED_OUT

    def test_timeout_bounded_by_deadline(self):
        """Test the wait does not overrun the timeout by a full interval."""
        waiter = ReadinessWaiter(ScriptedProbe(), poll_interval=0.5)
        started = time.monotonic()
        with pytest.raises(ReadinessTimeoutError):
            waiter.wait_until_running("myenv", timeout=0.7)
        assert time.monotonic() - started < 1.0

    def test_timeout_shorter_than_interval_never_polls(self):
        """Test a timeout below one interval times out without polling."""
        probe = ScriptedProbe(True)
        waiter = ReadinessWaiter(probe, poll_interval=0.5)
        with pytest.raises(ReadinessTimeoutError):
            waiter.wait_until_running("myenv", timeout=0.1)
        assert probe.calls == 0

    def test_diagnose_failure_still_times_out(self):
        """Test a failing inspect after timeout leaves last_state empty."""
        def inspect(name: str) -> ContainerRecord:
            raise FatalHostError("inspect the container", "gone")

        waiter = ReadinessWaiter(ScriptedProbe(), inspect=inspect, poll_interval=0.01)
        with pytest.raises(ReadinessTimeoutError) as exc_info:
            waiter.wait_until_running("myenv", timeout=0.05)
        assert exc_info.value.last_state is None

    def test_poll_failure_ends_wait(self):
        """Test a failed poll ends the wait at once and is not retried."""
        failure = FatalHostError("check if container is running", "connection reset")
        probe = ScriptedProbe(failure, True)
        waiter = ReadinessWaiter(probe, poll_interval=0.01)

        with pytest.raises(FatalHostError) as exc_info:
            waiter.wait_until_running("myenv", timeout=2.0)

        assert exc_info.value is failure
        assert probe.calls == 1

    def test_cancel_before_first_poll(self):
        """Test cancelling stops the wait without polling."""
        probe = ScriptedProbe()
        cancel = threading.Event()
        cancel.set()
        waiter = ReadinessWaiter(probe, poll_interval=0.05)

        with pytest.raises(WaitCancelledError):
            waiter.wait_until_running("myenv", timeout=2.0, cancel=cancel)
        assert probe.calls == 0
        assert waiter.state is WaitState.CANCELLED

    def test_cancel_from_another_thread(self):
        """Test cancellation interrupts an in-progress wait promptly."""
        cancel = threading.Event()
        waiter = ReadinessWaiter(ScriptedProbe(), poll_interval=0.05)
        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(WaitCancelledError):
                waiter.wait_until_running("myenv", timeout=5.0, cancel=cancel)
        finally:
            timer.cancel()
        assert time.monotonic() - started < 1.0
