"""Docker adapter for the lifecycle client port.

Talks to a Docker daemon through the low-level Docker SDK API client.
Docker SDK and transport exceptions are translated at this boundary:

- ``docker.errors.APIError`` -> ``HostError`` (daemon text + status code)
- connection failures -> ``HostUnreachableError``
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, BinaryIO, Generator, Iterator, Optional

import docker
import requests
import structlog
from docker.types import DeviceRequest, Mount

from envd_lifecycle.domain.entities.container import ContainerRecord, ContainerSpec, ContainerState
from envd_lifecycle.domain.entities.host import DaemonInfo, ImageRecord, RuntimeInfo
from envd_lifecycle.domain.errors import HostUnreachableError
from envd_lifecycle.ports.outbound import CreateResult, HostError

logger = structlog.get_logger(__name__)

PERMISSION_DENIED_HINT = (
    "It seems that current user have no access to docker daemon, "
    "please visit https://docs.docker.com/engine/install/linux-postinstall/ for more info."
)


def unreachable_message(error: Exception) -> str:
    """Turn a connection failure into a message for the user.

    Args:
        error: Exception raised while talking to the daemon.

    Returns:
        Message; permission problems get a remediation hint.
    """
    text = str(error)
    if "permission denied" in text.lower():
        return PERMISSION_DENIED_HINT
    return f"cannot connect to the docker daemon: {text}"


@contextmanager
def translate_errors() -> Generator[None, None, None]:
    """Translate Docker SDK exceptions into port exceptions."""
    try:
        yield
    except docker.errors.APIError as e:
        raise HostError(str(e.explanation or e), e.status_code) from e
    except requests.exceptions.ConnectionError as e:
        raise HostUnreachableError(unreachable_message(e)) from e
    except requests.exceptions.Timeout as e:
        raise HostError(f"request to docker daemon timed out: {e}") from e
    except docker.errors.DockerException as e:
        raise HostUnreachableError(unreachable_message(e)) from e


def _stream(messages: Iterator[dict]) -> Iterator[dict]:
    """Relay a JSON progress stream, raising on embedded errors."""
    with translate_errors():
        for message in messages:
            if message.get("error"):
                raise HostError(str(message["error"]))
            yield message


def container_record_from_inspect(data: dict[str, Any]) -> ContainerRecord:
    """Build a record from a container inspect document.

    Args:
        data: Inspect response.

    Returns:
        Container record.
    """
    state = data.get("State") or {}
    config = data.get("Config") or {}
    network = data.get("NetworkSettings") or {}
    return ContainerRecord(
        container_id=data.get("Id", ""),
        name=data.get("Name", ""),
        image=config.get("Image", ""),
        state=ContainerState.from_status(state.get("Status")),
        labels=config.get("Labels") or {},
        ip_address=network.get("IPAddress", ""),
        raw_state=state,
    )


def container_record_from_list(data: dict[str, Any]) -> ContainerRecord:
    """Build a record from a container list entry.

    Args:
        data: One entry of the list response.

    Returns:
        Container record.
    """
    names = data.get("Names") or [""]
    networks = (data.get("NetworkSettings") or {}).get("Networks") or {}
    ip_address = next((n.get("IPAddress", "") for n in networks.values() if n.get("IPAddress")), "")
    return ContainerRecord(
        container_id=data.get("Id", ""),
        name=names[0],
        image=data.get("Image", ""),
        state=ContainerState.from_status(data.get("State")),
        labels=data.get("Labels") or {},
        ip_address=ip_address,
    )


def image_record(data: dict[str, Any]) -> ImageRecord:
    """Build a record from an image list entry or inspect document.

    Args:
        data: Image document.

    Returns:
        Image record.
    """
    labels = data.get("Labels")
    if labels is None:
        labels = (data.get("Config") or {}).get("Labels")
    created = data.get("Created", 0)
    return ImageRecord(
        image_id=data.get("Id", ""),
        tags=list(data.get("RepoTags") or []),
        labels=labels or {},
        size_bytes=data.get("Size", 0) or 0,
        created=created if isinstance(created, int) else 0,
    )


def daemon_info_from(data: dict[str, Any]) -> DaemonInfo:
    """Build daemon info from an info response.

    Args:
        data: Info response.

    Returns:
        Daemon info.
    """
    runtimes = {
        name: RuntimeInfo(name=name, path=(value or {}).get("path", ""))
        for name, value in (data.get("Runtimes") or {}).items()
    }
    return DaemonInfo(
        server_version=data.get("ServerVersion", ""),
        operating_system=data.get("OperatingSystem", ""),
        default_runtime=data.get("DefaultRuntime", "runc"),
        runtimes=runtimes,
        raw=data,
    )


class DockerLifecycleClient:
    """LifecycleClientPort implementation backed by the Docker SDK.

    The SDK client is created lazily from the environment (DOCKER_HOST and
    friends) unless a base URL is given.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_version: str = "auto",
        timeout: int = 60,
        api: Optional[docker.APIClient] = None,
    ) -> None:
        """Initialize Docker adapter.

        Args:
            base_url: Daemon URL; None reads the environment.
            api_version: API version, "auto" to negotiate.
            timeout: Per-request timeout in seconds.
            api: Pre-built API client (tests).
        """
        self._base_url = base_url
        self._api_version = api_version
        self._timeout = timeout
        self._api = api

    @property
    def api(self) -> docker.APIClient:
        """Low-level API client, created on first use."""
        if self._api is None:
            with translate_errors():
                if self._base_url:
                    client = docker.DockerClient(
                        base_url=self._base_url, version=self._api_version, timeout=self._timeout
                    )
                else:
                    client = docker.from_env(version=self._api_version, timeout=self._timeout)
            self._api = client.api
        return self._api

    def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._api is not None:
            self._api.close()
            self._api = None

    def ping(self) -> None:
        with translate_errors():
            self.api.ping()

    def load_image(self, reader: BinaryIO, quiet: bool = False) -> None:
        with translate_errors():
            result = self.api.load_image(reader, quiet=quiet)
        if result is not None:
            for message in _stream(iter(result)):
                logger.debug("image load", message=message.get("stream", "").strip())

    def pull_image(self, tag: str) -> Iterator[dict]:
        with translate_errors():
            messages = self.api.pull(tag, stream=True, decode=True)
        return _stream(messages)

    def inspect_image(self, tag: str) -> ImageRecord:
        with translate_errors():
            return image_record(self.api.inspect_image(tag))

    def create_container(self, spec: ContainerSpec) -> CreateResult:
        with translate_errors():
            host_config = self.api.create_host_config(
                port_bindings={b.key: (b.host_ip, b.host_port) for b in spec.port_bindings} or None,
                mounts=[Mount(target=m.target, source=m.source, type=m.kind.value) for m in spec.mounts] or None,
                device_requests=[
                    DeviceRequest(
                        driver=r.driver,
                        count=r.count,
                        capabilities=[[capability] for capability in r.capabilities],
                    )
                    for r in spec.device_requests
                ] or None,
                privileged=spec.privileged,
            )
            response = self.api.create_container(
                image=spec.image,
                name=spec.name,
                user=spec.user or None,
                working_dir=spec.working_dir or None,
                labels=spec.labels or None,
                ports=sorted(spec.exposed_ports) or None,
                environment=spec.environment or None,
                entrypoint=spec.entrypoint or None,
                host_config=host_config,
            )
        return CreateResult(container_id=response["Id"], warnings=list(response.get("Warnings") or []))

    def start_container(self, container: str) -> None:
        with translate_errors():
            self.api.start(container)

    def inspect_container(self, container: str) -> ContainerRecord:
        with translate_errors():
            return container_record_from_inspect(self.api.inspect_container(container))

    def kill_container(self, container: str, signal: str = "KILL") -> None:
        with translate_errors():
            self.api.kill(container, signal=signal)

    def remove_container(self, container: str) -> None:
        with translate_errors():
            self.api.remove_container(container)

    def pause_container(self, container: str) -> None:
        with translate_errors():
            self.api.pause(container)

    def unpause_container(self, container: str) -> None:
        with translate_errors():
            self.api.unpause(container)

    def list_containers(self, label: Optional[str] = None) -> list[ContainerRecord]:
        filters = {"label": label} if label else None
        with translate_errors():
            return [container_record_from_list(c) for c in self.api.containers(filters=filters)]

    def list_images(self, label: Optional[str] = None, reference: Optional[str] = None) -> list[ImageRecord]:
        filters: dict[str, str] = {}
        if label:
            filters["label"] = label
        if reference:
            filters["reference"] = reference
        with translate_errors():
            return [image_record(i) for i in self.api.images(filters=filters or None)]

    def daemon_info(self) -> DaemonInfo:
        with translate_errors():
            return daemon_info_from(self.api.info())

    def exec_detached(self, container: str, command: list[str]) -> str:
        with translate_errors():
            exec_id = self.api.exec_create(container, command)["Id"]
            self.api.exec_start(exec_id, detach=True)
        return exec_id
