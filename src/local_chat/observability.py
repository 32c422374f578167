"""OpenTelemetry bootstrap: traces, metrics and logs exported over OTLP/HTTP.

Call :func:`setup_observability` once at startup and ``shutdown()`` on the
returned handle before exit so batched telemetry is flushed.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass

from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from local_chat.config import TelemetrySpec

_logger = logging.getLogger(__name__)


def build_resource(spec: TelemetrySpec) -> Resource:
    """Resource attributes identifying this process."""
    return Resource.create({
        "service.name": spec.service_name,
        "service.version": spec.service_version,
        "service.instance.id": socket.gethostname(),
        "deployment.environment": spec.environment,
    })


def _signal_url(base: str, signal: str) -> str:
    return f"{base.rstrip('/')}/v1/{signal}"


@dataclass
class Observability:
    """Handle to the installed providers."""

    tracer_provider: TracerProvider
    meter_provider: MeterProvider
    logger_provider: LoggerProvider
    log_handler: LoggingHandler
    httpx_instrumentor: HTTPXClientInstrumentor | None = None

    def shutdown(self) -> None:
        """Flush and stop all exporters."""
        logging.getLogger().removeHandler(self.log_handler)
        if self.httpx_instrumentor is not None:
            self.httpx_instrumentor.uninstrument()
        self.tracer_provider.shutdown()
        self.meter_provider.shutdown()
        self.logger_provider.shutdown()


def setup_observability(
    spec: TelemetrySpec,
    instrument_httpx: bool = True,
) -> Observability | None:
    """Install global tracer, meter and logger providers.

    Returns *None* (leaving the no-op API providers in place) when telemetry
    is disabled.
    """
    if not spec.enabled:
        _logger.info("Telemetry disabled")
        return None

    resource = build_resource(spec)
    endpoint = spec.otlp_endpoint

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=_signal_url(endpoint, "traces"))),
    )
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=_signal_url(endpoint, "metrics")),
        export_interval_millis=spec.export_interval_ms,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=_signal_url(endpoint, "logs"))),
    )
    set_logger_provider(logger_provider)
    handler = LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
    logging.getLogger().addHandler(handler)

    instrumentor = None
    if instrument_httpx:
        instrumentor = HTTPXClientInstrumentor()
        instrumentor.instrument(tracer_provider=tracer_provider)

    _logger.info(
        "Telemetry exporting to %s as %s", endpoint, spec.service_name,
    )
    return Observability(
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        logger_provider=logger_provider,
        log_handler=handler,
        httpx_instrumentor=instrumentor,
    )
