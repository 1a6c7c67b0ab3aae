"""Domain services for envd lifecycle management.

- PortAllocator: free host ports for service bindings
- ContainerSpecBuilder: request -> container creation spec
- ErrorClassifier: host error text -> outcome
- ReadinessWaiter: polling wait until a container runs
"""

from envd_lifecycle.domain.services.error_classifier import (
    ErrorClassifier,
    ErrorOutcome,
    HostOperation,
)
from envd_lifecycle.domain.services.port_allocator import PortAllocator
from envd_lifecycle.domain.services.readiness import ReadinessWaiter, WaitState
from envd_lifecycle.domain.services.spec_builder import (
    GPU_CAPABILITIES,
    GPU_DRIVER,
    ContainerSpecBuilder,
    ServicePorts,
    parse_mount_option,
)

__all__ = [
    "ErrorClassifier",
    "ErrorOutcome",
    "HostOperation",
    "PortAllocator",
    "ReadinessWaiter",
    "WaitState",
    "GPU_CAPABILITIES",
    "GPU_DRIVER",
    "ContainerSpecBuilder",
    "ServicePorts",
    "parse_mount_option",
]
