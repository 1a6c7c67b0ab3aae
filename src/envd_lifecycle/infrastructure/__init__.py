"""Infrastructure layer - cross-cutting concerns."""

from envd_lifecycle.infrastructure.config import Config, get_config
from envd_lifecycle.infrastructure.container import Container, get_container, reset_container, wire_container
from envd_lifecycle.infrastructure.logging import get_logger, setup_logging, setup_logging_from
from envd_lifecycle.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from envd_lifecycle.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "Config",
    "get_config",
    "Container",
    "get_container",
    "reset_container",
    "wire_container",
    "setup_logging",
    "setup_logging_from",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
