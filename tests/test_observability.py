"""Tests for the OpenTelemetry bootstrap."""

import logging

from local_chat.config import TelemetrySpec
from local_chat.observability import (
    Observability,
    _signal_url,
    build_resource,
    setup_observability,
)


class TestBuildResource:
    def test_attributes(self):
        resource = build_resource(TelemetrySpec())
        attrs = resource.attributes
        assert attrs["service.name"] == "AgentOpenTelemetry"
        assert attrs["service.version"] == "1.0.0"
        assert attrs["deployment.environment"] == "development"
        assert attrs["service.instance.id"]


class TestSetup:
    def test_disabled_returns_none(self):
        assert setup_observability(TelemetrySpec(enabled=False)) is None

    def test_signal_urls(self):
        assert _signal_url("http://localhost:4318", "traces") == "http://localhost:4318/v1/traces"
        assert _signal_url("http://collector:4318/", "logs") == "http://collector:4318/v1/logs"

    def test_enabled_installs_and_shutdown_removes(self):
        # Unreachable collector
        spec = TelemetrySpec(
            enabled=True,
            otlp_endpoint="http://127.0.0.1:9",
            export_interval_ms=60_000,
        )
        obs = setup_observability(spec, instrument_httpx=True)
        root = logging.getLogger()
        try:
            assert isinstance(obs, Observability)
            assert obs.log_handler in root.handlers
            assert obs.httpx_instrumentor is not None
            assert obs.httpx_instrumentor.is_instrumented_by_opentelemetry
            assert obs.tracer_provider.resource.attributes["service.name"] == spec.service_name
        finally:
            if obs is not None:
                obs.shutdown()

        assert obs.log_handler not in root.handlers
        assert not obs.httpx_instrumentor.is_instrumented_by_opentelemetry

    def test_without_httpx_instrumentation(self):
        spec = TelemetrySpec(enabled=True, otlp_endpoint="http://127.0.0.1:9")
        obs = setup_observability(spec, instrument_httpx=False)
        try:
            assert obs.httpx_instrumentor is None
        finally:
            obs.shutdown()
        assert obs.log_handler not in logging.getLogger().handlers
