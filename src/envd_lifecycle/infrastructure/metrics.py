"""Prometheus metrics for envd lifecycle."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all lifecycle metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        self.lifecycle_operations_total = Counter(
            "envd_lifecycle_operations_total",
            "Total lifecycle operations",
            ["operation", "outcome"],  # start/destroy/pause/resume..., success/noop/not_found/conflict/error
            registry=self._registry,
        )

        self.readiness_wait_seconds = Histogram(
            "envd_readiness_wait_seconds",
            "Time spent waiting for containers to run",
            ["outcome"],  # ready, timeout, cancelled, error
            buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.port_allocations_total = Counter(
            "envd_port_allocations_total",
            "Total host port allocations",
            ["status"],  # success, failed
            registry=self._registry,
        )

        self.image_pull_duration_seconds = Histogram(
            "envd_image_pull_duration_seconds",
            "Image pull duration in seconds",
            buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )

        self.info = Info(
            "envd_lifecycle",
            "envd lifecycle information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Collector registry the metrics are registered in."""
        return self._registry

    def record_operation(self, operation: str, outcome: str) -> None:
        """Count one lifecycle operation."""
        self.lifecycle_operations_total.labels(operation=operation, outcome=outcome).inc()


_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8003, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """Set up Prometheus metrics server."""
    global _metrics
    _metrics = MetricsRegistry(registry)

    from envd_lifecycle import __version__
    _metrics.info.info({"version": __version__})

    start_http_server(port, registry=registry or REGISTRY)
    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
