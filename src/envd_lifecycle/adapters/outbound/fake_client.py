"""In-memory container host for testing and development.

This adapter provides a deterministic implementation of the
LifecycleClientPort protocol. Failures are reported with the same wording and
status codes the Docker daemon uses, so the error classifier sees realistic
input.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Optional

from envd_lifecycle.domain.entities.container import ContainerRecord, ContainerSpec, ContainerState
from envd_lifecycle.domain.entities.host import DaemonInfo, ImageRecord, RuntimeInfo
from envd_lifecycle.domain.errors import HostUnreachableError
from envd_lifecycle.ports.outbound import CreateResult, HostError


logger = logging.getLogger(__name__)


@dataclass
class FakeContainer:
    """State for a fake container."""

    container_id: str
    spec: ContainerSpec
    state: ContainerState = ContainerState.CREATED
    ip_address: str = ""
    polls_until_running: int = 0  # Inspections left before a started container reports running
    execs: list[list[str]] = field(default_factory=list)

    def record(self) -> ContainerRecord:
        running = self.state in (ContainerState.RUNNING, ContainerState.PAUSED)
        return ContainerRecord(
            container_id=self.container_id,
            name=f"/{self.spec.name}",
            image=self.spec.image,
            state=self.state,
            labels=dict(self.spec.labels),
            ip_address=self.ip_address if running else "",
            raw_state={
                "Status": self.state.value,
                "Running": running,
                "Paused": self.state == ContainerState.PAUSED,
            },
        )


class FakeLifecycleClient:
    """Fake implementation of LifecycleClientPort for testing.

    Simulates a Docker daemon in memory.

    Example:
        client = FakeLifecycleClient(start_delay_polls=2)
        client.add_image("envd:dev")
        result = client.create_container(spec)
        client.start_container(result.container_id)
        client.inject_failure("pause_container", HostError("boom", 500))
    """

    def __init__(
        self,
        start_delay_polls: int = 0,
        runtimes: Optional[dict[str, str]] = None,
        bound_host_ports: Optional[set[int]] = None,
    ) -> None:
        """Initialize fake host.

        Args:
            start_delay_polls: Inspections a started container stays "created".
            runtimes: Registered runtimes, name -> executable path.
            bound_host_ports: Host ports held by processes outside the host.
        """
        self._containers: dict[str, FakeContainer] = {}
        self._images: dict[str, ImageRecord] = {}
        self._failures: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)
        self._ips = itertools.count(2)
        self.start_delay_polls = start_delay_polls
        self.runtimes = dict(runtimes or {"runc": "runc"})
        self.bound_host_ports = set(bound_host_ports or ())
        self.unreachable = False
        self.calls: list[tuple[str, str]] = []

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def add_image(self, tag: str, labels: Optional[dict[str, str]] = None) -> ImageRecord:
        """Register an image as present on the host."""
        digest = hashlib.sha256(tag.encode()).hexdigest()
        image = ImageRecord(image_id=f"sha256:{digest}", tags=[tag], labels=dict(labels or {}))
        self._images[tag] = image
        return image

    def inject_failure(self, method: str, error: Exception, times: int = 1) -> None:
        """Make the next calls of a method raise an error.

        Args:
            method: Port method name, e.g. "kill_container".
            error: Error to raise.
            times: Number of calls that fail.
        """
        self._failures.setdefault(method, []).extend([error] * times)

    def set_state(self, container: str, state: ContainerState) -> None:
        """Force a container into a state."""
        self._get(container).state = state

    def drop(self, container: str) -> None:
        """Remove a container behind the caller's back."""
        fake = self._get(container)
        del self._containers[fake.container_id]

    def get_fake(self, container: str) -> Optional[FakeContainer]:
        """Look up a fake container by name or ID without raising."""
        try:
            return self._get(container)
        except HostError:
            return None

    def called(self, method: str) -> list[str]:
        """Targets a method was called with, in order."""
        return [target for name, target in self.calls if name == method]

    # -------------------------------------------------------------------------
    # LifecycleClientPort
    # -------------------------------------------------------------------------

    def ping(self) -> None:
        self._enter("ping", "")

    def load_image(self, reader: BinaryIO, quiet: bool = False) -> None:
        self._enter("load_image", "")
        data = reader.read()
        tag = data.decode(errors="ignore").strip() or "loaded:latest"
        self.add_image(tag)
        logger.debug(f"Loaded image {tag}")

    def pull_image(self, tag: str) -> Iterator[dict]:
        self._enter("pull_image", tag)
        if tag.startswith("missing/"):
            raise HostError(f"pull access denied for {tag}, repository does not exist", 404)
        self.add_image(tag)
        return iter(
            [
                {"status": f"Pulling from {tag}"},
                {"status": "Download complete"},
                {"status": f"Status: Downloaded newer image for {tag}"},
            ]
        )

    def inspect_image(self, tag: str) -> ImageRecord:
        self._enter("inspect_image", tag)
        for image in self._images.values():
            if image.matches(tag):
                return image
        raise HostError(f"No such image: {tag}", 404)

    def create_container(self, spec: ContainerSpec) -> CreateResult:
        self._enter("create_container", spec.name)
        if not any(image.matches(spec.image) for image in self._images.values()):
            raise HostError(f"No such image: {spec.image}", 404)
        for existing in self._containers.values():
            if existing.spec.name == spec.name:
                raise HostError(
                    f'Conflict. The container name "/{spec.name}" is already in use '
                    f'by container "{existing.container_id}".',
                    409,
                )
        container_id = hashlib.sha256(f"{spec.name}-{next(self._ids)}".encode()).hexdigest()
        self._containers[container_id] = FakeContainer(container_id=container_id, spec=spec)
        warnings = []
        if spec.device_request is not None and "nvidia" not in self.runtimes:
            warnings.append("nvidia runtime is not registered")
        logger.debug(f"Created fake container {spec.name}")
        return CreateResult(container_id=container_id, warnings=warnings)

    def start_container(self, container: str) -> None:
        self._enter("start_container", container)
        fake = self._get(container)
        if fake.state in (ContainerState.RUNNING, ContainerState.PAUSED):
            return
        in_use = set(self.bound_host_ports)
        for other in self._containers.values():
            if other is not fake and other.state in (ContainerState.RUNNING, ContainerState.PAUSED):
                in_use.update(other.spec.host_ports())
        for binding in fake.spec.port_bindings:
            if binding.host_port in in_use:
                raise HostError(
                    f"driver failed programming external connectivity on endpoint {fake.spec.name} "
                    f"({fake.container_id}): Bind for {binding.host_ip}:{binding.host_port} failed: "
                    "port is already allocated",
                    500,
                )
        fake.ip_address = f"172.17.0.{next(self._ips)}"
        if self.start_delay_polls > 0:
            fake.polls_until_running = self.start_delay_polls
        else:
            fake.state = ContainerState.RUNNING
        logger.debug(f"Started fake container {fake.spec.name}")

    def inspect_container(self, container: str) -> ContainerRecord:
        self._enter("inspect_container", container)
        fake = self._get(container)
        if fake.polls_until_running > 0:
            fake.polls_until_running -= 1
            if fake.polls_until_running == 0:
                fake.state = ContainerState.RUNNING
        return fake.record()

    def kill_container(self, container: str, signal: str = "KILL") -> None:
        self._enter("kill_container", container)
        fake = self._get(container)
        if fake.state not in (ContainerState.RUNNING, ContainerState.PAUSED):
            raise HostError(
                f"Cannot kill container: {container}: Container {fake.container_id} is not running",
                409,
            )
        fake.state = ContainerState.EXITED
        fake.polls_until_running = 0

    def remove_container(self, container: str) -> None:
        self._enter("remove_container", container)
        fake = self._get(container)
        if fake.state in (ContainerState.RUNNING, ContainerState.PAUSED):
            raise HostError(
                f"You cannot remove a running container {fake.container_id}. "
                "Stop the container before attempting removal or force remove",
                409,
            )
        del self._containers[fake.container_id]

    def pause_container(self, container: str) -> None:
        self._enter("pause_container", container)
        fake = self._get(container)
        if fake.state == ContainerState.PAUSED:
            raise HostError(f"Container {fake.container_id} is already paused", 409)
        if fake.state != ContainerState.RUNNING:
            raise HostError(f"Container {fake.container_id} is not running", 409)
        fake.state = ContainerState.PAUSED

    def unpause_container(self, container: str) -> None:
        self._enter("unpause_container", container)
        fake = self._get(container)
        if fake.state != ContainerState.PAUSED:
            raise HostError(f"Container {fake.container_id} is not paused", 409)
        fake.state = ContainerState.RUNNING

    def list_containers(self, label: Optional[str] = None) -> list[ContainerRecord]:
        self._enter("list_containers", label or "")
        return [
            fake.record()
            for fake in self._containers.values()
            if fake.state in (ContainerState.RUNNING, ContainerState.PAUSED)
            and (label is None or label in fake.spec.labels)
        ]

    def list_images(self, label: Optional[str] = None, reference: Optional[str] = None) -> list[ImageRecord]:
        self._enter("list_images", reference or label or "")
        return [
            image
            for image in self._images.values()
            if (label is None or label in image.labels) and (reference is None or image.matches(reference))
        ]

    def daemon_info(self) -> DaemonInfo:
        self._enter("daemon_info", "")
        return DaemonInfo(
            server_version="fake",
            operating_system="fake",
            runtimes={name: RuntimeInfo(name=name, path=path) for name, path in self.runtimes.items()},
        )

    def exec_detached(self, container: str, command: list[str]) -> str:
        self._enter("exec_detached", container)
        fake = self._get(container)
        if fake.state != ContainerState.RUNNING:
            raise HostError(f"Container {fake.container_id} is not running", 409)
        fake.execs.append(list(command))
        return hashlib.sha256(f"{fake.container_id}-{len(fake.execs)}".encode()).hexdigest()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _enter(self, method: str, target: str) -> None:
        self.calls.append((method, target))
        if self.unreachable:
            raise HostUnreachableError("Cannot connect to the Docker daemon. Is the docker daemon running?")
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def _get(self, container: str) -> FakeContainer:
        if container in self._containers:
            return self._containers[container]
        name = container.lstrip("/")
        for fake in self._containers.values():
            if fake.spec.name == name:
                return fake
        raise HostError(f"No such container: {container}", 404)
