"""Unit tests for dependency wiring and observability setup."""

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import CollectorRegistry

from envd_lifecycle import __version__
from envd_lifecycle.adapters.outbound.fake_client import FakeLifecycleClient
from envd_lifecycle.application.lifecycle import LifecycleService
from envd_lifecycle.domain.errors import FatalHostError
from envd_lifecycle.infrastructure import metrics, tracing
from envd_lifecycle.infrastructure.config import Config, DockerConfig, ObservabilityConfig
from envd_lifecycle.infrastructure.container import Container, get_container, reset_container, wire_container
from envd_lifecycle.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from envd_lifecycle.infrastructure.tracing import get_tracer, setup_tracing, trace_span
from envd_lifecycle.ports.outbound import LifecycleClientPort


@pytest.mark.unit
class TestContainer:
    """Tests for the DI container."""

    def test_resolve_singleton(self, container: Container):
        """Test a registered instance is returned as is."""
        config = Config()
        container.register_singleton(Config, config)
        assert container.resolve(Config) is config

    def test_factory_runs_once(self, container: Container):
        """Test factories are cached after the first resolve."""
        calls = []
        container.register_factory(Config, lambda c: calls.append(1) or Config())
        assert container.resolve(Config) is container.resolve(Config)
        assert calls == [1]

    def test_unknown_interface(self, container: Container):
        """Test resolving an unregistered interface fails."""
        with pytest.raises(KeyError):
            container.resolve(Config)

    def test_clear_closes_clients(self, container: Container):
        """Test clear closes resolved instances that can be closed."""
        client = MagicMock()
        container.register_singleton(LifecycleClientPort, client)
        container.clear()
        client.close.assert_called_once()
        assert not container.has(LifecycleClientPort)


@pytest.mark.unit
class TestWireContainer:
    """Tests for the production wiring."""

    def test_service_uses_configured_docker_client(self, container: Container, metrics_registry: MetricsRegistry):
        """Test the Docker client is built from config and pinged."""
        config = Config(docker=DockerConfig(base_url="unix:///tmp/docker.sock", timeout_seconds=5))
        wire_container(container, config)
        container.register_singleton(MetricsRegistry, metrics_registry)

        with patch("envd_lifecycle.adapters.outbound.docker_client.DockerLifecycleClient.ping") as ping:
            service = container.resolve(LifecycleService)
            client = container.resolve(LifecycleClientPort)

        assert isinstance(service, LifecycleService)
        ping.assert_called_once()
        assert client._base_url == "unix:///tmp/docker.sock"
        assert client._timeout == 5

    def test_client_override(self, container: Container, metrics_registry: MetricsRegistry):
        """Test a replacement client can be registered after wiring."""
        wire_container(container, Config())
        container.register_singleton(MetricsRegistry, metrics_registry)
        fake = FakeLifecycleClient()
        container.register_singleton(LifecycleClientPort, fake)

        service = container.resolve(LifecycleService)
        assert service.exists("nothing") is False
        assert fake.called("inspect_container") == ["nothing"]


@pytest.mark.unit
class TestTraceSpan:
    """Tests for the tracing helper."""

    @pytest.fixture
    def exporter(self, monkeypatch: pytest.MonkeyPatch) -> InMemorySpanExporter:
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))
        return exporter

    def test_attributes(self, exporter: InMemorySpanExporter):
        """Test None-valued attributes are skipped."""
        with trace_span("envd.exists", {"container": "myenv", "image": None}):
            pass
        (span,) = exporter.get_finished_spans()
        assert span.name == "envd.exists"
        assert dict(span.attributes) == {"container": "myenv"}

    def test_lifecycle_error_marks_span(self, exporter: InMemorySpanExporter):
        """Test the error class and failed operation are recorded, then re-raised."""
        with pytest.raises(FatalHostError):
            with trace_span("envd.destroy", {"container": "myenv"}):
                raise FatalHostError("kill the container", "device busy")
        (span,) = exporter.get_finished_spans()
        assert span.attributes["envd.error"] == "FatalHostError"
        assert span.attributes["envd.operation"] == "kill the container"
        assert span.status.status_code is StatusCode.ERROR


@pytest.mark.unit
class TestObservabilitySetup:
    """Tests for metrics and tracing bootstrap."""

    def test_wire_global_container(self):
        """Test wiring without a container populates the global one."""
        reset_container()
        try:
            wired = wire_container(config=Config())
            assert wired is get_container()
            assert wired.has(LifecycleService)
        finally:
            reset_container()

    def test_setup_metrics(self, monkeypatch: pytest.MonkeyPatch):
        """Test the registry is published with version info."""
        monkeypatch.setattr(metrics, "_metrics", None)
        registry = CollectorRegistry()
        with patch.object(metrics, "start_http_server") as serve:
            result = setup_metrics(port=9103, registry=registry)
        serve.assert_called_once_with(9103, registry=registry)
        assert get_metrics() is result
        assert registry.get_sample_value("envd_lifecycle_info", {"version": __version__}) == 1.0

    def test_setup_tracing(self, monkeypatch: pytest.MonkeyPatch):
        """Test a tracer is created from the observability section."""
        monkeypatch.setattr(tracing, "_tracer", None)
        with patch.object(tracing.trace, "set_tracer_provider") as set_provider:
            tracer = setup_tracing(ObservabilityConfig(otel_service_name="envd-test"))
        provider = set_provider.call_args.args[0]
        assert provider.resource.attributes["service.name"] == "envd-test"
        assert get_tracer() is tracer
