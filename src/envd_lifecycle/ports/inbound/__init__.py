"""Inbound ports - API contract for envd lifecycle operations.

Upper layers (a CLI, an SDK) depend on this protocol rather than on the
service class.
"""

from __future__ import annotations

import threading
from abc import abstractmethod
from typing import BinaryIO, Optional, Protocol, Sequence

from envd_lifecycle.domain.entities.container import ContainerIdentity, ContainerRecord, ServiceFlags
from envd_lifecycle.domain.entities.host import DaemonInfo, ImageRecord


class LifecycleAPI(Protocol):
    """Protocol for environment lifecycle management.

    Destroy, pause and resume are idempotent: they return the container name
    when they changed something and None when the container was already in
    the requested state (or, for destroy, already gone).

    Example:
        identity = api.start_envd("envd:dev", "myenv", "/src/myenv", ssh_host_port=port)
        try:
            api.exec(identity.name, ["make", "test"])
        finally:
            api.destroy(identity.name)
    """

    @abstractmethod
    def start_envd(
        self,
        tag: str,
        name: str,
        build_context: str,
        gpu_enabled: bool = False,
        num_gpus: int = 0,
        ssh_host_port: int = 2222,
        services: Optional[ServiceFlags] = None,
        mount_options: Sequence[str] = (),
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ContainerIdentity:
        """Create and start an environment, returning once it runs."""
        ...

    @abstractmethod
    def start_build_daemon(self, tag: str, name: str, registry_mirror: str = "") -> str:
        """Start the build daemon container, pulling its image if needed."""
        ...

    @abstractmethod
    def destroy(self, name: str) -> Optional[str]:
        """Kill and remove a container."""
        ...

    @abstractmethod
    def pause_container(self, name: str) -> Optional[str]:
        """Pause a running container."""
        ...

    @abstractmethod
    def resume_container(self, name: str) -> Optional[str]:
        """Resume a paused container."""
        ...

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check if a container exists."""
        ...

    @abstractmethod
    def is_running(self, name: str) -> bool:
        """Check if a container is running."""
        ...

    @abstractmethod
    def wait_until_running(
        self,
        name: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Block until a container runs, the timeout passes, or cancel is set."""
        ...

    @abstractmethod
    def list_containers(self) -> list[ContainerRecord]:
        """List running envd containers."""
        ...

    @abstractmethod
    def list_images(self) -> list[ImageRecord]:
        """List envd images."""
        ...

    @abstractmethod
    def get_container(self, name: str) -> ContainerRecord:
        """Inspect one container."""
        ...

    @abstractmethod
    def get_image(self, tag: str) -> ImageRecord:
        """Look up one image."""
        ...

    @abstractmethod
    def get_info(self) -> DaemonInfo:
        """Query daemon information."""
        ...

    @abstractmethod
    def gpu_enabled(self) -> bool:
        """Check whether the host can run GPU containers."""
        ...

    @abstractmethod
    def exec(self, name: str, command: Sequence[str]) -> str:
        """Run a detached command in a container."""
        ...

    @abstractmethod
    def load_image(self, reader: BinaryIO, quiet: bool = False) -> None:
        """Load an image archive into the host."""
        ...


__all__ = ["LifecycleAPI"]
