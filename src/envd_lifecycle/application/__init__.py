"""Application layer for envd lifecycle.

Orchestrates domain services and the container host client.
"""

from envd_lifecycle.application.lifecycle import LifecycleService, buildkitd_config

__all__ = [
    "LifecycleService",
    "buildkitd_config",
]
