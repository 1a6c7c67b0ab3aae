"""Image and daemon entities reported by the container host."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ImageRecord:
    """Image as reported by the host."""
    image_id: str
    tags: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    size_bytes: int = 0
    created: int = 0  # Unix timestamp

    @property
    def short_id(self) -> str:
        """First 12 hex characters of the image ID."""
        return self.image_id.split(":", 1)[-1][:12]

    def matches(self, reference: str) -> bool:
        """Check whether the image is known under a reference.

        Args:
            reference: Tag ("name:tag"), bare name (implies latest) or image ID.

        Returns:
            True if the reference points at this image.
        """
        if reference in (self.image_id, self.short_id):
            return True
        if ":" not in reference.rsplit("/", 1)[-1]:
            reference = f"{reference}:latest"
        return reference in self.tags


@dataclass(frozen=True)
class RuntimeInfo:
    """A container runtime registered with the daemon."""
    name: str
    path: str = ""


@dataclass
class DaemonInfo:
    """Subset of daemon info used by capability probes."""
    server_version: str = ""
    operating_system: str = ""
    default_runtime: str = "runc"
    runtimes: dict[str, RuntimeInfo] = field(default_factory=dict)
    raw: dict = field(default_factory=dict)

    def runtime_path(self, name: str) -> str:
        """Executable path of a registered runtime.

        Args:
            name: Runtime name, e.g. "nvidia".

        Returns:
            Path, or "" when the runtime is not registered.
        """
        runtime = self.runtimes.get(name)
        return runtime.path if runtime else ""
