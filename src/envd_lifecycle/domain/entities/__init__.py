"""Domain entities for envd lifecycle management.

- ContainerSpec and its parts: what gets created on the host
- ContainerRecord / ImageRecord / DaemonInfo: what the host reports back
"""

from envd_lifecycle.domain.entities.container import (
    ContainerIdentity,
    ContainerRecord,
    ContainerSpec,
    ContainerState,
    GPUDeviceRequest,
    MountKind,
    MountSpec,
    PortBinding,
    ServiceFlags,
)
from envd_lifecycle.domain.entities.host import (
    DaemonInfo,
    ImageRecord,
    RuntimeInfo,
)

__all__ = [
    # Container
    "ContainerIdentity",
    "ContainerRecord",
    "ContainerSpec",
    "ContainerState",
    "GPUDeviceRequest",
    "MountKind",
    "MountSpec",
    "PortBinding",
    "ServiceFlags",
    # Host
    "DaemonInfo",
    "ImageRecord",
    "RuntimeInfo",
]
