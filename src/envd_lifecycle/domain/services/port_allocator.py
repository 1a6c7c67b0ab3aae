"""Free host port allocation.

A port is found by binding a socket to port 0 and reading back the port the
operating system picked. The socket is closed before the port is handed to
the container host, so another process may claim it in between. That race is
accepted: the allocator has no say in the host's binding decision, and a lost
race surfaces later as a PortConflictError from start.
"""

from __future__ import annotations

import socket
from contextlib import closing
from typing import Callable, Optional

import structlog

from envd_lifecycle.domain.errors import ResourceAllocationError

logger = structlog.get_logger(__name__)

PortProbe = Callable[[str], int]


def probe_free_port(host: str) -> int:
    """Ask the operating system for an unused TCP port.

    Args:
        host: Interface to probe on.

    Returns:
        Port number.

    Raises:
        OSError: If the socket cannot be bound.
    """
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


class PortAllocator:
    """Hands out free host ports.

    Stateless across calls; collision checks only apply to the ``claimed``
    set a caller passes in for one build.

    Example:
        allocator = PortAllocator()
        claimed = {ssh_port}
        jupyter_port = allocator.allocate_unique(claimed)
    """

    def __init__(self, host: str = "127.0.0.1", probe: Optional[PortProbe] = None) -> None:
        """Initialize port allocator.

        Args:
            host: Interface ports are probed on.
            probe: Replacement for the socket probe (tests).
        """
        self._host = host
        self._probe = probe or probe_free_port

    def allocate_free_port(self) -> int:
        """Allocate one free host port.

        Returns:
            Port number.

        Raises:
            ResourceAllocationError: If no port could be obtained.
        """
        try:
            port = self._probe(self._host)
        except OSError as e:
            raise ResourceAllocationError(f"failed to get a free port: {e}") from e
        if not 0 < port < 65536:
            raise ResourceAllocationError(f"failed to get a free port: invalid port {port}")
        logger.debug("allocated free port", port=port)
        return port

    def allocate_unique(self, claimed: set[int]) -> int:
        """Allocate a free port that is not already claimed in this build.

        Args:
            claimed: Host ports already bound by the spec being built. The new
                port is added to it.

        Returns:
            Port number.

        Raises:
            ResourceAllocationError: If the port is already claimed.
        """
        port = self.allocate_free_port()
        if port in claimed:
            raise ResourceAllocationError(f"host port {port} allocated twice in one container spec")
        claimed.add(port)
        return port
