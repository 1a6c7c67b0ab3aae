"""Lifecycle value objects."""

import posixpath
from typing import NewType

# Type-safe identifiers
ContainerName = NewType('ContainerName', str)
ImageTag = NewType('ImageTag', str)
HostPort = NewType('HostPort', int)


def normalize_container_name(raw: str) -> ContainerName:
    """Strip the leading slash the host puts on container names.

    Args:
        raw: Name as reported by inspect, e.g. "/myenv".

    Returns:
        Container name.
    """
    return ContainerName(raw.lstrip("/"))


def build_context_base(build_context: str) -> str:
    """Base name of a build context directory.

    Args:
        build_context: Host path of the build context.

    Returns:
        Last path component, ignoring trailing separators.
    """
    trimmed = build_context.rstrip("/\\")
    if not trimmed:
        return "/"
    return posixpath.basename(trimmed.replace("\\", "/"))


def working_dir_for(home_prefix: str, build_context: str) -> str:
    """Working directory of an environment inside the container.

    Args:
        home_prefix: Home directory of the environment user, e.g. "/home/envd".
        build_context: Host path of the build context.

    Returns:
        Container-absolute working directory.
    """
    base = build_context_base(build_context).lstrip("/")
    return posixpath.normpath(posixpath.join(home_prefix, base))
