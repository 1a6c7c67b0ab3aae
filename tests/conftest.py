"""Pytest configuration and fixtures for envd_lifecycle tests."""

from __future__ import annotations

import itertools
from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from envd_lifecycle.adapters.outbound.fake_client import FakeLifecycleClient
from envd_lifecycle.application.lifecycle import LifecycleService
from envd_lifecycle.domain.services.port_allocator import PortAllocator
from envd_lifecycle.infrastructure.config import Config, ReadinessConfig
from envd_lifecycle.infrastructure.container import Container, reset_container
from envd_lifecycle.infrastructure.metrics import MetricsRegistry
from envd_lifecycle.ports.inbound import LifecycleAPI

TEST_IMAGE = "envd-test:dev"


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration with fast readiness polling."""
    return Config(readiness=ReadinessConfig(poll_interval_seconds=0.01, default_timeout_seconds=2.0))


@pytest.fixture
def fake_client() -> FakeLifecycleClient:
    """Provide a fake host with the test image present."""
    client = FakeLifecycleClient()
    client.add_image(TEST_IMAGE)
    return client


@pytest.fixture
def sequential_allocator() -> PortAllocator:
    """Provide an allocator handing out 40000, 40001, ..."""
    ports = itertools.count(40000)
    return PortAllocator(probe=lambda host: next(ports))


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry."""
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def service(
    fake_client: FakeLifecycleClient,
    test_config: Config,
    metrics_registry: MetricsRegistry,
    sequential_allocator: PortAllocator,
) -> LifecycleAPI:
    """Provide a lifecycle service over the fake host."""
    return LifecycleService(
        client=fake_client,
        config=test_config,
        metrics=metrics_registry,
        port_allocator=sequential_allocator,
    )


@pytest.fixture
def container() -> Generator[Container, None, None]:
    """Provide a fresh DI container."""
    reset_container()
    c = Container()
    yield c
    c.clear()


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "property: Property-based tests")
