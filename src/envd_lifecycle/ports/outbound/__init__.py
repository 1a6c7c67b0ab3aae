"""Outbound ports - Container host interface for lifecycle management.

The lifecycle client is the only way the rest of the package talks to the
container host. It is a thin pass-through: interpretation of failures lives in
the error classifier and the lifecycle service, not here.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Optional, Protocol

from envd_lifecycle.domain.entities.container import ContainerRecord, ContainerSpec
from envd_lifecycle.domain.entities.host import DaemonInfo, ImageRecord


# =============================================================================
# Lifecycle Client Port
# =============================================================================


@dataclass
class CreateResult:
    """Result of a container create call."""
    container_id: str
    warnings: list[str] = field(default_factory=list)


class HostError(Exception):
    """Raised when the container host rejects a request.

    Carries the host's error text and, when available, the HTTP status code
    of the daemon API response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class LifecycleClientPort(Protocol):
    """Protocol for container host operations.

    Implementations:
        - DockerLifecycleClient: talks to a Docker daemon
        - FakeLifecycleClient: deterministic in-memory host for tests

    Errors:
        Every method raises HostError for failures reported by the host and
        HostUnreachableError when the host cannot be reached at all.
    """

    @abstractmethod
    def ping(self) -> None:
        """Check that the host answers."""
        ...

    @abstractmethod
    def load_image(self, reader: BinaryIO, quiet: bool = False) -> None:
        """Load an image archive into the host.

        The caller owns the reader and is responsible for closing it.

        Args:
            reader: Tar archive stream.
            quiet: Suppress progress output from the host.
        """
        ...

    @abstractmethod
    def pull_image(self, tag: str) -> Iterator[dict]:
        """Pull an image.

        Args:
            tag: Image reference.

        Returns:
            Iterator over progress messages. The pull completes when the
            iterator is exhausted.
        """
        ...

    @abstractmethod
    def inspect_image(self, tag: str) -> ImageRecord:
        """Inspect an image.

        Args:
            tag: Image reference.

        Returns:
            Image record.
        """
        ...

    @abstractmethod
    def create_container(self, spec: ContainerSpec) -> CreateResult:
        """Create (but do not start) a container.

        Args:
            spec: What to create.

        Returns:
            Host-assigned container ID and creation warnings.
        """
        ...

    @abstractmethod
    def start_container(self, container: str) -> None:
        """Start a created container.

        Args:
            container: Container ID or name.
        """
        ...

    @abstractmethod
    def inspect_container(self, container: str) -> ContainerRecord:
        """Inspect a container.

        Args:
            container: Container ID or name.

        Returns:
            Container record.
        """
        ...

    @abstractmethod
    def kill_container(self, container: str, signal: str = "KILL") -> None:
        """Send a signal to a container's main process.

        Args:
            container: Container ID or name.
            signal: Signal name.
        """
        ...

    @abstractmethod
    def remove_container(self, container: str) -> None:
        """Remove a stopped container.

        Args:
            container: Container ID or name.
        """
        ...

    @abstractmethod
    def pause_container(self, container: str) -> None:
        """Freeze all processes in a container.

        Args:
            container: Container ID or name.
        """
        ...

    @abstractmethod
    def unpause_container(self, container: str) -> None:
        """Thaw a paused container.

        Args:
            container: Container ID or name.
        """
        ...

    @abstractmethod
    def list_containers(self, label: Optional[str] = None) -> list[ContainerRecord]:
        """List running containers.

        Args:
            label: Only return containers carrying this label key.

        Returns:
            Container records.
        """
        ...

    @abstractmethod
    def list_images(self, label: Optional[str] = None, reference: Optional[str] = None) -> list[ImageRecord]:
        """List images.

        Args:
            label: Only return images carrying this label key.
            reference: Only return images matching this reference.

        Returns:
            Image records.
        """
        ...

    @abstractmethod
    def daemon_info(self) -> DaemonInfo:
        """Query daemon-wide information."""
        ...

    @abstractmethod
    def exec_detached(self, container: str, command: list[str]) -> str:
        """Run a command inside a container without waiting for it.

        Args:
            container: Container ID or name.
            command: Command and arguments.

        Returns:
            Exec instance ID.
        """
        ...


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "CreateResult",
    "HostError",
    "LifecycleClientPort",
]
