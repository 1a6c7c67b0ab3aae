"""Container creation settings and observed-container entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ContainerState(Enum):
    """Observed container state as reported by the host.

    Never persisted locally; always re-derived by inspecting the host.
    """
    UNKNOWN = "unknown"
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    EXITED = "exited"
    DEAD = "dead"
    REMOVED = "removed"

    @classmethod
    def from_status(cls, status: str | None) -> "ContainerState":
        """Map a host status string onto a state.

        Args:
            status: Status string such as "running" or "exited".

        Returns:
            Matching state, UNKNOWN for anything unrecognised.
        """
        if not status:
            return cls.UNKNOWN
        try:
            return cls(status.lower())
        except ValueError:
            return cls.UNKNOWN


class MountKind(Enum):
    """Mount type."""
    BIND = "bind"


@dataclass(frozen=True)
class MountSpec:
    """A host directory made visible inside the container."""
    source: str  # Host-absolute path
    target: str  # Container-absolute path
    kind: MountKind = MountKind.BIND


@dataclass(frozen=True)
class PortBinding:
    """Container port published on a loopback host port."""
    container_port: int
    host_port: int
    host_ip: str = "127.0.0.1"
    protocol: str = "tcp"

    @property
    def key(self) -> str:
        """Port key in "<port>/<proto>" form."""
        return f"{self.container_port}/{self.protocol}"


@dataclass(frozen=True)
class GPUDeviceRequest:
    """Request for accelerator devices attached at container creation."""
    driver: str
    capabilities: tuple[str, ...]
    count: int


@dataclass(frozen=True)
class ServiceFlags:
    """Optional services declared by the environment."""
    jupyter: bool = False
    rstudio: bool = False


@dataclass
class ContainerSpec:
    """Everything needed to create one container on the host.

    Built fresh per start request and discarded afterwards.
    """
    image: str
    name: str
    working_dir: str = ""
    user: str = ""
    mounts: list[MountSpec] = field(default_factory=list)
    port_bindings: list[PortBinding] = field(default_factory=list)
    exposed_ports: set[int] = field(default_factory=set)
    labels: dict[str, str] = field(default_factory=dict)
    device_request: Optional[GPUDeviceRequest] = None
    environment: dict[str, str] = field(default_factory=dict)
    entrypoint: list[str] = field(default_factory=list)
    privileged: bool = False

    @property
    def device_requests(self) -> list[GPUDeviceRequest]:
        """Device requests as a list (empty when GPU support is off)."""
        return [self.device_request] if self.device_request is not None else []

    def host_ports(self) -> list[int]:
        """Host ports claimed by this spec, in binding order."""
        return [binding.host_port for binding in self.port_bindings]

    def binding_for(self, container_port: int) -> Optional[PortBinding]:
        """Find the binding for a container port.

        Args:
            container_port: Container-side port.

        Returns:
            Binding or None.
        """
        for binding in self.port_bindings:
            if binding.container_port == container_port:
                return binding
        return None


@dataclass(frozen=True)
class ContainerIdentity:
    """Handle to a started container."""
    name: str
    container_id: str
    ip_address: str = ""


@dataclass
class ContainerRecord:
    """Container as reported by inspect or list calls on the host."""
    container_id: str
    name: str
    image: str = ""
    state: ContainerState = ContainerState.UNKNOWN
    labels: dict[str, str] = field(default_factory=dict)
    ip_address: str = ""
    raw_state: dict = field(default_factory=dict)  # Host state document, for diagnostics

    def is_running(self) -> bool:
        """Check if the host reports the container as running.

        A paused container is still running from the host's point of view.

        Returns:
            True if running.
        """
        if "Running" in self.raw_state:
            return bool(self.raw_state["Running"])
        return self.state in (ContainerState.RUNNING, ContainerState.PAUSED)
