"""Value objects: identifiers and label keys."""

from envd_lifecycle.domain.value_objects.identifiers import (
    ContainerName,
    HostPort,
    ImageTag,
    build_context_base,
    normalize_container_name,
    working_dir_for,
)
from envd_lifecycle.domain.value_objects.labels import (
    LABEL_JUPYTER_PORT,
    LABEL_MANAGED,
    LABEL_NAME,
    LABEL_RSTUDIO_PORT,
    LABEL_SSH_PORT,
    environment_labels,
    ports_from_labels,
)

__all__ = [
    "ContainerName",
    "HostPort",
    "ImageTag",
    "build_context_base",
    "normalize_container_name",
    "working_dir_for",
    "LABEL_JUPYTER_PORT",
    "LABEL_MANAGED",
    "LABEL_NAME",
    "LABEL_RSTUDIO_PORT",
    "LABEL_SSH_PORT",
    "environment_labels",
    "ports_from_labels",
]
