"""Lifecycle service.

Orchestrates the spec builder, the container host client, the error
classifier and the readiness waiter to provide the operations callers such
as a command-line layer use: start an environment or build daemon, destroy,
pause and resume it, and query the host.

Idempotent operations (destroy, pause, resume) turn the host's "already
done" answers into success here. Every other host failure is re-raised as a
typed LifecycleError carrying the failed operation.
"""

from __future__ import annotations

import shlex
import threading
import time
from typing import BinaryIO, Optional, Sequence

import structlog

from envd_lifecycle.domain.entities.container import (
    ContainerIdentity,
    ContainerRecord,
    ContainerSpec,
    ServiceFlags,
)
from envd_lifecycle.domain.entities.host import DaemonInfo, ImageRecord
from envd_lifecycle.domain.errors import (
    ContainerNotFoundError,
    FatalHostError,
    ImageNotFoundError,
    PortConflictError,
    ReadinessTimeoutError,
    ResourceAllocationError,
    ValidationError,
    WaitCancelledError,
)
from envd_lifecycle.domain.services.error_classifier import ErrorClassifier, ErrorOutcome, HostOperation
from envd_lifecycle.domain.services.port_allocator import PortAllocator
from envd_lifecycle.domain.services.readiness import ReadinessWaiter
from envd_lifecycle.domain.services.spec_builder import ContainerSpecBuilder, ServicePorts
from envd_lifecycle.domain.value_objects.identifiers import normalize_container_name
from envd_lifecycle.domain.value_objects.labels import LABEL_MANAGED
from envd_lifecycle.infrastructure.config import Config
from envd_lifecycle.infrastructure.metrics import MetricsRegistry
from envd_lifecycle.infrastructure.tracing import trace_span
from envd_lifecycle.ports.outbound import CreateResult, HostError, LifecycleClientPort

logger = structlog.get_logger(__name__)


def buildkitd_config(mirror: str) -> str:
    """buildkitd TOML pointing docker.io at a registry mirror.

    Args:
        mirror: Mirror URL.

    Returns:
        TOML document.
    """
    return f'[registry."docker.io"]\n  mirrors = ["{mirror}"]\n'


class LifecycleService:
    """Lifecycle operations for envd environment containers."""

    def __init__(
        self,
        client: LifecycleClientPort,
        config: Optional[Config] = None,
        metrics: Optional[MetricsRegistry] = None,
        classifier: Optional[ErrorClassifier] = None,
        port_allocator: Optional[PortAllocator] = None,
    ) -> None:
        """Initialize the service.

        Args:
            client: Container host client.
            config: Configuration; defaults are used when omitted.
            metrics: Metrics registry; metrics are skipped when omitted.
            classifier: Host error classifier.
            port_allocator: Source of free host ports.
        """
        self._client = client
        self._config = config or Config()
        self._metrics = metrics
        self._classifier = classifier or ErrorClassifier()

        env = self._config.environment
        self._allocator = port_allocator or PortAllocator(host=env.loopback_ip)
        self._builder = ContainerSpecBuilder(
            port_allocator=self._allocator,
            service_ports=ServicePorts(
                ssh=self._config.services.ssh,
                jupyter=self._config.services.jupyter,
                rstudio=self._config.services.rstudio,
            ),
            home_prefix=env.home_prefix,
            user=env.user,
            host_ip=env.loopback_ip,
            gpu_driver=self._config.gpu.driver,
            gpu_capabilities=self._config.gpu.capabilities,
        )
        self._poll_interval = self._config.readiness.poll_interval_seconds

    @property
    def port_allocator(self) -> PortAllocator:
        """Allocator callers use to pick the ssh host port before starting."""
        return self._allocator

    @property
    def spec_builder(self) -> ContainerSpecBuilder:
        """Builder used for environment containers."""
        return self._builder

    # -------------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------------

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
        """Create and start an environment container and wait until it runs.

        Args:
            tag: Image tag.
            name: Container name.
            build_context: Host path of the build context.
            gpu_enabled: Attach GPU devices.
            num_gpus: Number of GPUs.
            ssh_host_port: Host port for ssh.
            services: Declared optional services.
            mount_options: "hostPath:containerPath" strings.
            timeout: Readiness timeout in seconds.
            cancel: Set to abort the readiness wait.

        Returns:
            Identity of the running container.

        Raises:
            ValidationError: Malformed request.
            ResourceAllocationError: No free port.
            ImageNotFoundError: Image is missing on the host.
            PortConflictError: A host port is already bound.
            ReadinessTimeoutError: Container did not start in time.
            FatalHostError: Any other host failure.
        """
        log = logger.bind(tag=tag, container=name, gpu=gpu_enabled, num_gpus=num_gpus)
        with trace_span("envd.start", {"container": name, "image": tag, "gpu": gpu_enabled}):
            try:
                spec = self._builder.build(
                    tag=tag,
                    name=name,
                    build_context=build_context,
                    gpu_enabled=gpu_enabled,
                    num_gpus=num_gpus,
                    ssh_host_port=ssh_host_port,
                    services=services,
                    mount_options=mount_options,
                )
            except ResourceAllocationError:
                self._count_ports("failed")
                self._record("start", "error")
                raise
            except ValidationError:
                self._record("start", "error")
                raise
            self._count_ports("success", len(spec.port_bindings) - 1)

            log.debug("starting container", working_dir=spec.working_dir, ports=spec.host_ports())
            result = self._create(spec, log)
            self._start(result.container_id, name, detect_port_conflict=True)

            record = self._inspect(result.container_id, "inspect the container")
            cname = normalize_container_name(record.name)
            try:
                self.wait_until_running(cname, timeout, cancel)
            except (ReadinessTimeoutError, WaitCancelledError, FatalHostError):
                self._record("start", "error")
                raise

            ip_address = record.ip_address or self._inspect(cname, "inspect the container").ip_address
            self._record("start", "success")
            log.info("container is running", ip_address=ip_address)
            return ContainerIdentity(name=cname, container_id=result.container_id, ip_address=ip_address)

    def start_build_daemon(self, tag: str, name: str, registry_mirror: str = "") -> str:
        """Start the privileged build daemon container.

        The image is pulled only when the host does not have it.

        Args:
            tag: Build daemon image.
            name: Container name.
            registry_mirror: docker.io mirror URL, empty for none.

        Returns:
            Host-reported container name.

        Raises:
            FatalHostError: On any host failure.
        """
        log = logger.bind(tag=tag, container=name, mirror=registry_mirror)
        log.debug("starting build daemon")
        with trace_span("envd.start_build_daemon", {"container": name, "image": tag}):
            try:
                self._client.inspect_image(tag)
            except HostError as e:
                if self._classifier.classify(e, HostOperation.INSPECT) is not ErrorOutcome.NOT_FOUND:
                    raise FatalHostError("inspect image", e.message) from e
                self._pull(tag, log)

            daemon = self._config.build_daemon
            spec = ContainerSpec(image=tag, name=name, privileged=daemon.privileged)
            if registry_mirror:
                toml = buildkitd_config(registry_mirror)
                config_dir = shlex.quote(daemon.config_path.rsplit("/", 1)[0])
                config_path = shlex.quote(daemon.config_path)
                spec.entrypoint = [
                    "/bin/sh",
                    "-c",
                    f"mkdir -p {config_dir} && echo {shlex.quote(toml)} > {config_path} && buildkitd",
                ]
                log.debug("setting buildkit config", config=toml)

            result = self._create(spec, log)
            self._start(result.container_id, name, detect_port_conflict=False)
            record = self._inspect(result.container_id, "inspect container")
            self._record("start_build_daemon", "success")
            return normalize_container_name(record.name)

    # -------------------------------------------------------------------------
    # Idempotent state changes
    # -------------------------------------------------------------------------

    def destroy(self, name: str) -> Optional[str]:
        """Kill and remove a container.

        Destroying a container that does not exist succeeds.

        Args:
            name: Container name.

        Returns:
            The name when a container was removed, None when there was nothing
            to destroy.

        Raises:
            FatalHostError: If kill fails for another reason, or remove fails.
        """
        log = logger.bind(container=name)
        with trace_span("envd.destroy", {"container": name}):
            try:
                self._client.kill_container(name, "KILL")
            except HostError as e:
                outcome = self._classifier.classify(e, HostOperation.KILL)
                if outcome is ErrorOutcome.ALREADY_IN_STATE:
                    log.debug("container is not running, there is no need to kill it")
                elif outcome is ErrorOutcome.NOT_FOUND:
                    log.debug("container is not found, there is no need to destroy it")
                    self._record("destroy", "noop")
                    return None
                else:
                    self._record("destroy", "error")
                    raise FatalHostError("kill the container", e.message) from e

            try:
                self._client.remove_container(name)
            except HostError as e:
                self._record("destroy", "error")
                raise FatalHostError("remove the container", e.message) from e

            self._record("destroy", "success")
            log.info("container destroyed")
            return name

    def pause_container(self, name: str) -> Optional[str]:
        """Pause a container.

        Args:
            name: Container name.

        Returns:
            The name when the container was paused, None when it already was.

        Raises:
            ContainerNotFoundError: If the container does not exist.
            FatalHostError: On any other host failure.
        """
        return self._toggle_pause(name, HostOperation.PAUSE)

    def resume_container(self, name: str) -> Optional[str]:
        """Resume a paused container.

        Args:
            name: Container name.

        Returns:
            The name when the container was resumed, None when it was not paused.

        Raises:
            ContainerNotFoundError: If the container does not exist.
            FatalHostError: On any other host failure.
        """
        return self._toggle_pause(name, HostOperation.UNPAUSE)

    def _toggle_pause(self, name: str, operation: HostOperation) -> Optional[str]:
        verb = "pause" if operation is HostOperation.PAUSE else "resume"
        log = logger.bind(container=name)
        call = self._client.pause_container if operation is HostOperation.PAUSE else self._client.unpause_container
        with trace_span(f"envd.{verb}", {"container": name}):
            try:
                call(name)
            except HostError as e:
                outcome = self._classifier.classify(e, operation)
                if outcome is ErrorOutcome.ALREADY_IN_STATE:
                    log.debug(f"container does not need to {verb}", error=e.message)
                    self._record(verb, "noop")
                    return None
                if outcome is ErrorOutcome.NOT_FOUND:
                    self._record(verb, "not_found")
                    raise ContainerNotFoundError(f"container {name} not found", name) from e
                self._record(verb, "error")
                raise FatalHostError(f"{verb} container", e.message) from e
            self._record(verb, "success")
            return name

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def exists(self, name: str) -> bool:
        """Check if a container exists. Absence is not an error."""
        try:
            self._client.inspect_container(name)
        except HostError as e:
            if self._classifier.is_not_found(e):
                return False
            raise FatalHostError("inspect the container", e.message) from e
        return True

    def is_running(self, name: str) -> bool:
        """Check if a container is running. Absence is not an error."""
        try:
            record = self._client.inspect_container(name)
        except HostError as e:
            if self._classifier.is_not_found(e):
                return False
            raise FatalHostError("check if container is running", e.message) from e
        return record.is_running()

    def wait_until_running(
        self,
        name: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Block until a container runs.

        Args:
            name: Container name.
            timeout: Seconds to wait; the configured default when omitted.
            cancel: Set to abort the wait.

        Raises:
            ReadinessTimeoutError: Deadline passed.
            WaitCancelledError: Wait was cancelled.
            FatalHostError: A poll failed (not retried).
        """
        if timeout is None:
            timeout = self._config.readiness.default_timeout_seconds
        started = time.monotonic()
        outcome = "error"
        try:
            waiter = ReadinessWaiter(self.is_running, self._client.inspect_container, self._poll_interval)
            waiter.wait_until_running(name, timeout, cancel)
            outcome = "ready"
        except ReadinessTimeoutError as e:
            outcome = "timeout"
            logger.warning("container did not start", container=name, elapsed=e.elapsed, state=e.last_state)
            raise
        except WaitCancelledError:
            outcome = "cancelled"
            raise
        finally:
            if self._metrics:
                self._metrics.readiness_wait_seconds.labels(outcome=outcome).observe(time.monotonic() - started)

    def list_containers(self) -> list[ContainerRecord]:
        """List running envd containers."""
        try:
            return self._client.list_containers(label=LABEL_MANAGED)
        except HostError as e:
            raise FatalHostError("list containers", e.message) from e

    def list_images(self) -> list[ImageRecord]:
        """List envd images."""
        try:
            return self._client.list_images(label=LABEL_MANAGED)
        except HostError as e:
            raise FatalHostError("list images", e.message) from e

    def get_container(self, name: str) -> ContainerRecord:
        """Inspect a container.

        Raises:
            ContainerNotFoundError: If it does not exist.
        """
        try:
            return self._client.inspect_container(name)
        except HostError as e:
            if self._classifier.is_not_found(e):
                raise ContainerNotFoundError(f"container {name} not found", name) from e
            raise FatalHostError("inspect the container", e.message) from e

    def get_image(self, tag: str) -> ImageRecord:
        """Look up an image by reference.

        Raises:
            ImageNotFoundError: If no image matches.
        """
        try:
            images = self._client.list_images(reference=tag)
        except HostError as e:
            raise FatalHostError("list images", e.message) from e
        if not images:
            raise ImageNotFoundError(f"image {tag} not found", tag)
        return images[0]

    def get_info(self) -> DaemonInfo:
        """Query daemon information."""
        try:
            return self._client.daemon_info()
        except HostError as e:
            raise FatalHostError("get docker info", e.message) from e

    def gpu_enabled(self) -> bool:
        """Check if the host has the nvidia container runtime registered.

        Returns:
            True when the runtime is registered with a non-empty path.

        Raises:
            FatalHostError: If daemon info cannot be queried. A failed probe is
                never reported as "no GPU".
        """
        info = self.get_info()
        runtime = self._config.gpu.runtime_name
        logger.debug("docker info", runtimes=sorted(info.runtimes))
        return info.runtime_path(runtime) != ""

    def exec(self, name: str, command: Sequence[str]) -> str:
        """Run a detached command in a container.

        Returns:
            Exec instance ID.

        Raises:
            ContainerNotFoundError: If the container does not exist.
        """
        try:
            return self._client.exec_detached(name, list(command))
        except HostError as e:
            if self._classifier.is_not_found(e):
                raise ContainerNotFoundError(f"container {name} not found", name) from e
            raise FatalHostError("exec in container", e.message) from e

    def load_image(self, reader: BinaryIO, quiet: bool = False) -> None:
        """Load an image archive into the host. The caller closes the reader."""
        try:
            self._client.load_image(reader, quiet=quiet)
        except HostError as e:
            raise FatalHostError("load image", e.message) from e

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _create(self, spec: ContainerSpec, log: structlog.BoundLogger) -> CreateResult:
        try:
            result = self._client.create_container(spec)
        except HostError as e:
            self._record("create", "error")
            if self._classifier.classify(e, HostOperation.CREATE) is ErrorOutcome.NOT_FOUND:
                raise ImageNotFoundError(f"image {spec.image} not found", spec.image) from e
            raise FatalHostError("create the container", e.message) from e
        for warning in result.warnings:
            log.warning("run with warnings", warning=warning)
        return result

    def _start(self, container_id: str, name: str, detect_port_conflict: bool) -> None:
        try:
            self._client.start_container(container_id)
        except HostError as e:
            outcome = self._classifier.classify(e, HostOperation.START)
            if detect_port_conflict and outcome is ErrorOutcome.CONFLICT:
                self._record("start", "conflict")
                logger.debug("failed to allocate the port", container=name, error=e.message)
                raise PortConflictError(f"port is already allocated in the host: {e.message}") from e
            self._record("start", "error")
            raise FatalHostError("run the container", e.message) from e

    def _inspect(self, container: str, operation: str) -> ContainerRecord:
        try:
            return self._client.inspect_container(container)
        except HostError as e:
            raise FatalHostError(operation, e.message) from e

    def _pull(self, tag: str, log: structlog.BoundLogger) -> None:
        log.debug("pulling image")
        started = time.monotonic()
        try:
            for message in self._client.pull_image(tag):
                log.debug("pull progress", status=message.get("status", ""), progress=message.get("progress", ""))
        except HostError as e:
            raise FatalHostError("pull image", e.message) from e
        if self._metrics:
            self._metrics.image_pull_duration_seconds.observe(time.monotonic() - started)

    def _record(self, operation: str, outcome: str) -> None:
        if self._metrics:
            self._metrics.record_operation(operation, outcome)

    def _count_ports(self, status: str, count: int = 1) -> None:
        if self._metrics and count > 0:
            self._metrics.port_allocations_total.labels(status=status).inc(count)
