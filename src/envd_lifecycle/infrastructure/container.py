"""Dependency injection container and default wiring."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from envd_lifecycle.infrastructure.config import Config, get_config

T = TypeVar("T")


class Container:
    """Simple dependency injection container.

    Factories run once, on first resolve; the result is cached.
    """

    def __init__(self) -> None:
        self._factories: dict[type, Callable[[Container], Any]] = {}
        self._instances: dict[type, Any] = {}

    def register_singleton(self, interface: type[T], instance: T) -> None:
        """Register a ready-made instance."""
        self._instances[interface] = instance

    def register_factory(self, interface: type[T], factory: Callable[[Container], T]) -> None:
        """Register a factory function. Replaces any cached instance."""
        self._factories[interface] = factory
        self._instances.pop(interface, None)

    def resolve(self, interface: type[T]) -> T:
        """Resolve a dependency."""
        if interface in self._instances:
            return self._instances[interface]
        if interface in self._factories:
            instance = self._factories[interface](self)
            self._instances[interface] = instance
            return instance
        raise KeyError(f"No registration found for {interface}")

    def has(self, interface: type) -> bool:
        """Check if an interface is registered."""
        return interface in self._instances or interface in self._factories

    def clear(self) -> None:
        """Close resolved clients and clear all registrations."""
        for instance in self._instances.values():
            close = getattr(instance, "close", None)
            if callable(close) and not isinstance(instance, type):
                close()
        self._factories.clear()
        self._instances.clear()


def wire_container(container: Container | None = None, config: Config | None = None) -> Container:
    """Register the production object graph.

    The Docker client is pinged when first resolved so that an unreachable
    daemon is reported before any lifecycle operation runs.

    Args:
        container: Container to populate; the global one when omitted.
        config: Configuration; the global one when omitted.

    Returns:
        The same container.
    """
    from envd_lifecycle.adapters.outbound.docker_client import DockerLifecycleClient
    from envd_lifecycle.application.lifecycle import LifecycleService
    from envd_lifecycle.infrastructure.metrics import MetricsRegistry, get_metrics
    from envd_lifecycle.ports.outbound import LifecycleClientPort

    container = container or get_container()
    config = config or get_config()
    container.register_singleton(Config, config)
    container.register_factory(MetricsRegistry, lambda c: get_metrics())

    def make_client(c: Container) -> DockerLifecycleClient:
        docker_config = c.resolve(Config).docker
        client = DockerLifecycleClient(
            base_url=docker_config.base_url,
            api_version=docker_config.api_version,
            timeout=docker_config.timeout_seconds,
        )
        client.ping()
        return client

    container.register_factory(LifecycleClientPort, make_client)
    container.register_factory(
        LifecycleService,
        lambda c: LifecycleService(
            client=c.resolve(LifecycleClientPort),
            config=c.resolve(Config),
            metrics=c.resolve(MetricsRegistry),
        ),
    )
    return container


_container: Container | None = None


def get_container() -> Container:
    """Get the global container instance."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Reset the global container."""
    global _container
    if _container is not None:
        _container.clear()
    _container = None
