"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

from envd_lifecycle.domain.errors import FatalHostError, LifecycleError, NotFoundError
from envd_lifecycle.infrastructure.config import ObservabilityConfig

TRACER_NAME = "envd_lifecycle"

_tracer: trace.Tracer | None = None


def setup_tracing(config: ObservabilityConfig, console_export: bool = False) -> trace.Tracer:
    """Set up OpenTelemetry tracing.

    Spans are only exported when an OTLP endpoint is configured or console
    export is requested; otherwise the provider records nothing.
    """
    global _tracer

    from envd_lifecycle import __version__

    resource = Resource.create({"service.name": config.otel_service_name, "service.version": __version__})
    provider = TracerProvider(resource=resource)

    if config.otel_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otel_endpoint, insecure=True)))
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the global tracer instance."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def _error_attributes(error: LifecycleError) -> dict[str, str]:
    attributes = {"envd.error": type(error).__name__}
    if isinstance(error, FatalHostError):
        attributes["envd.operation"] = error.operation
    if isinstance(error, NotFoundError) and error.name:
        attributes["envd.target"] = error.name
    return attributes


@contextmanager
def trace_span(name: str, attributes: dict[str, Any] | None = None) -> Generator[trace.Span, None, None]:
    """Run a block inside a span.

    None-valued attributes are skipped. A LifecycleError leaving the block is
    recorded on the span with its class and failed operation, then re-raised.
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except LifecycleError as e:
            span.set_attributes(_error_attributes(e))
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
