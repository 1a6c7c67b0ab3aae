"""Container spec assembly for envd environments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from envd_lifecycle.domain.entities.container import (
    ContainerSpec,
    GPUDeviceRequest,
    MountKind,
    MountSpec,
    PortBinding,
    ServiceFlags,
)
from envd_lifecycle.domain.errors import ValidationError
from envd_lifecycle.domain.services.port_allocator import PortAllocator
from envd_lifecycle.domain.value_objects.identifiers import working_dir_for
from envd_lifecycle.domain.value_objects.labels import environment_labels

logger = structlog.get_logger(__name__)

GPU_DRIVER = "nvidia"
GPU_CAPABILITIES: tuple[str, ...] = (
    "gpu",
    "nvidia",
    "compute",
    "compat32",
    "graphics",
    "utility",
    "video",
    "display",
)


@dataclass(frozen=True)
class ServicePorts:
    """Fixed container-side ports of the environment services."""
    ssh: int = 2222
    jupyter: int = 8888
    rstudio: int = 8787


def parse_mount_option(option: str) -> MountSpec:
    """Parse a "hostPath:containerPath" mount option.

    Args:
        option: Mount option string.

    Returns:
        Bind mount.

    Raises:
        ValidationError: If the option is not exactly two non-empty paths.
    """
    source, sep, target = option.partition(":")
    if not sep or not source or not target or ":" in target:
        raise ValidationError(f"invalid mount option {option!r}: expected hostPath:containerPath")
    return MountSpec(source=source, target=target, kind=MountKind.BIND)


class ContainerSpecBuilder:
    """Builds the creation spec of an environment container.

    Handles:
    - Working directory and build-context mount
    - User bind mounts
    - ssh / jupyter / rstudio port bindings (loopback only)
    - GPU device requests
    - Topology labels
    """

    def __init__(
        self,
        port_allocator: Optional[PortAllocator] = None,
        service_ports: ServicePorts = ServicePorts(),
        home_prefix: str = "/home/envd",
        user: str = "envd",
        host_ip: str = "127.0.0.1",
        gpu_driver: str = GPU_DRIVER,
        gpu_capabilities: Sequence[str] = GPU_CAPABILITIES,
    ) -> None:
        """Initialize spec builder.

        Args:
            port_allocator: Source of free host ports for optional services.
            service_ports: Container-side service ports.
            home_prefix: Home directory of the environment user.
            user: User the container runs as.
            host_ip: Host address every port binding is published on.
            gpu_driver: Device driver requested when GPUs are enabled.
            gpu_capabilities: Capability set requested when GPUs are enabled.
        """
        self._allocator = port_allocator or PortAllocator(host=host_ip)
        self._ports = service_ports
        self._home_prefix = home_prefix
        self._user = user
        self._host_ip = host_ip
        self._gpu_driver = gpu_driver
        self._gpu_capabilities = tuple(gpu_capabilities)

    @property
    def service_ports(self) -> ServicePorts:
        """Container-side service ports."""
        return self._ports

    def build(
        self,
        tag: str,
        name: str,
        build_context: str,
        gpu_enabled: bool = False,
        num_gpus: int = 0,
        ssh_host_port: int = 2222,
        services: Optional[ServiceFlags] = None,
        mount_options: Sequence[str] = (),
    ) -> ContainerSpec:
        """Build a container spec.

        Args:
            tag: Image tag.
            name: Container name.
            build_context: Host path of the build context.
            gpu_enabled: Attach GPU devices.
            num_gpus: Number of GPUs requested.
            ssh_host_port: Host port for ssh, allocated by the caller.
            services: Declared optional services.
            mount_options: "hostPath:containerPath" strings.

        Returns:
            Container spec.

        Raises:
            ValidationError: On a malformed mount option or GPU count.
            ResourceAllocationError: If a service port cannot be allocated.
        """
        services = services or ServiceFlags()
        log = logger.bind(tag=tag, container=name, gpu=gpu_enabled, num_gpus=num_gpus, build_context=build_context)

        working_dir = working_dir_for(self._home_prefix, build_context)
        spec = ContainerSpec(image=tag, name=name, working_dir=working_dir, user=self._user)

        spec.mounts = self._mounts(mount_options, build_context, working_dir)
        log.debug("set up container working directory", mount_path=build_context, working_dir=working_dir)

        claimed = {ssh_host_port}
        spec.port_bindings.append(self._binding(self._ports.ssh, ssh_host_port))

        jupyter_host_port = None
        if services.jupyter:
            jupyter_host_port = self._allocator.allocate_unique(claimed)
            spec.port_bindings.append(self._binding(self._ports.jupyter, jupyter_host_port))
            spec.exposed_ports.add(self._ports.jupyter)

        rstudio_host_port = None
        if services.rstudio:
            rstudio_host_port = self._allocator.allocate_unique(claimed)
            spec.port_bindings.append(self._binding(self._ports.rstudio, rstudio_host_port))
            spec.exposed_ports.add(self._ports.rstudio)

        if gpu_enabled:
            if num_gpus < 0:
                raise ValidationError(f"invalid GPU count {num_gpus}")
            log.debug("GPU is enabled")
            spec.device_request = GPUDeviceRequest(
                driver=self._gpu_driver,
                capabilities=self._gpu_capabilities,
                count=num_gpus,
            )

        spec.labels = environment_labels(name, ssh_host_port, jupyter_host_port, rstudio_host_port)
        return spec

    def _mounts(self, mount_options: Sequence[str], build_context: str, working_dir: str) -> list[MountSpec]:
        """Parse user mounts and append the build-context mount."""
        mounts: list[MountSpec] = []
        targets = {working_dir}
        for option in mount_options:
            mount = parse_mount_option(option)
            if mount.target in targets:
                raise ValidationError(f"invalid mount option {option!r}: target {mount.target} is already mounted")
            targets.add(mount.target)
            logger.debug("adding bind mount", mount_path=mount.source, container_path=mount.target)
            mounts.append(mount)
        mounts.append(MountSpec(source=build_context, target=working_dir, kind=MountKind.BIND))
        return mounts

    def _binding(self, container_port: int, host_port: int) -> PortBinding:
        return PortBinding(container_port=container_port, host_port=host_port, host_ip=self._host_ip)
