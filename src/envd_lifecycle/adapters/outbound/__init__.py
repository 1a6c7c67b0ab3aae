"""Outbound adapters - Implementations of the lifecycle client port.

- DockerLifecycleClient: real Docker daemon via the Docker SDK
- FakeLifecycleClient: deterministic in-memory host for tests
"""

from envd_lifecycle.adapters.outbound.docker_client import DockerLifecycleClient
from envd_lifecycle.adapters.outbound.fake_client import (
    FakeContainer,
    FakeLifecycleClient,
)

__all__ = [
    "DockerLifecycleClient",
    "FakeContainer",
    "FakeLifecycleClient",
]
