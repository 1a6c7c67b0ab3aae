"""Error taxonomy for lifecycle operations.

Every error raised to callers derives from ``LifecycleError``. Raw host
failures travel as ``HostError`` (see ``ports.outbound``) and are translated
into one of these classes with operation context attached.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for all lifecycle errors."""

    pass


class ValidationError(LifecycleError):
    """Raised when a request is malformed (e.g. a bad mount option)."""

    pass


class ResourceAllocationError(LifecycleError):
    """Raised when a host resource such as a free port cannot be obtained."""

    pass


class HostUnreachableError(LifecycleError):
    """Raised when the container host cannot be reached."""

    pass


class NotFoundError(LifecycleError):
    """Raised when a container or image does not exist on the host."""

    def __init__(self, message: str, name: str = "") -> None:
        super().__init__(message)
        self.name = name


class ContainerNotFoundError(NotFoundError):
    """Raised when the target container does not exist."""

    pass


class ImageNotFoundError(NotFoundError):
    """Raised when the target image does not exist."""

    pass


class ConflictError(LifecycleError):
    """Raised when the host refuses an operation because of conflicting state."""

    pass


class PortConflictError(ConflictError):
    """Raised when a requested host port is already bound.

    Callers may retry with a freshly allocated port.
    """

    pass


class ReadinessTimeoutError(LifecycleError, TimeoutError):
    """Raised when a container does not become running before the deadline."""

    def __init__(
        self,
        name: str,
        timeout: float,
        elapsed: float,
        last_state: dict | None = None,
    ) -> None:
        super().__init__(f"timeout {timeout}s: container {name} did not start (waited {elapsed:.2f}s)")
        self.name = name
        self.timeout = timeout
        self.elapsed = elapsed
        self.last_state = last_state


class WaitCancelledError(LifecycleError):
    """Raised when a readiness wait is cancelled by the caller."""

    pass


class FatalHostError(LifecycleError):
    """Raised for any unclassified host failure."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"failed to {operation}: {message}")
        self.operation = operation


__all__ = [
    "LifecycleError",
    "ValidationError",
    "ResourceAllocationError",
    "HostUnreachableError",
    "NotFoundError",
    "ContainerNotFoundError",
    "ImageNotFoundError",
    "ConflictError",
    "PortConflictError",
    "ReadinessTimeoutError",
    "WaitCancelledError",
    "FatalHostError",
]
