"""Container labels recording environment topology.

Labels are written at creation time so that inspecting the container alone is
enough to recover its host port assignments.
"""

from __future__ import annotations

from typing import Optional

LABEL_PREFIX = "ai.envd"

LABEL_MANAGED = f"{LABEL_PREFIX}.managed"
LABEL_NAME = f"{LABEL_PREFIX}.name"
LABEL_SSH_PORT = f"{LABEL_PREFIX}.ssh.port"
LABEL_JUPYTER_PORT = f"{LABEL_PREFIX}.jupyter.port"
LABEL_RSTUDIO_PORT = f"{LABEL_PREFIX}.rstudio.port"


def environment_labels(
    name: str,
    ssh_port: int,
    jupyter_port: Optional[int] = None,
    rstudio_port: Optional[int] = None,
) -> dict[str, str]:
    """Labels for an environment container.

    Args:
        name: Container name.
        ssh_port: Host port bound to ssh.
        jupyter_port: Host port bound to jupyter, if declared.
        rstudio_port: Host port bound to rstudio, if declared.

    Returns:
        Label mapping.
    """
    labels = {
        LABEL_MANAGED: "true",
        LABEL_NAME: name,
        LABEL_SSH_PORT: str(ssh_port),
    }
    if jupyter_port is not None:
        labels[LABEL_JUPYTER_PORT] = str(jupyter_port)
    if rstudio_port is not None:
        labels[LABEL_RSTUDIO_PORT] = str(rstudio_port)
    return labels


def ports_from_labels(labels: dict[str, str]) -> dict[str, int]:
    """Recover service host ports from container labels.

    Args:
        labels: Labels from an inspected container.

    Returns:
        Mapping of service name ("ssh", "jupyter", "rstudio") to host port.
    """
    ports: dict[str, int] = {}
    for service, key in (
        ("ssh", LABEL_SSH_PORT),
        ("jupyter", LABEL_JUPYTER_PORT),
        ("rstudio", LABEL_RSTUDIO_PORT),
    ):
        value = labels.get(key)
        if value and value.isdigit():
            ports[service] = int(value)
    return ports
