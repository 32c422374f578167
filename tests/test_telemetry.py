"""Tests for the telemetry middleware and OpenTelemetry collector."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from local_chat.errors import BackendError
from local_chat.llm.middleware import ChatPipeline, ChatRequest
from local_chat.llm.telemetry import (
    INTERACTIONS_COUNTER,
    RESPONSE_TIME_HISTOGRAM,
    SPAN_NAME,
    OpenTelemetryCollector,
    TelemetryMiddleware,
)
from local_chat.types import ChatMessage, ChatResponse

from conftest import FakeBackend, RecordingCollector

HELLO = [ChatMessage.user("Hello")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class BrokenCollector:
    def start_span(self, name, tags):
        raise RuntimeError("collector down")

    def end_span(self, span, tags, error=None):
        raise RuntimeError("collector down")

    def add_counter(self, name, value, tags):
        raise RuntimeError("collector down")

    def record_histogram(self, name, value, tags):
        raise RuntimeError("collector down")


# ---------------------------------------------------------------------------
# TelemetryMiddleware
# ---------------------------------------------------------------------------

class TestTelemetryMiddleware:
    async def test_success_recorded(self):
        collector = RecordingCollector()
        chat = (
            ChatPipeline(FakeBackend("Hi there"))
            .use(TelemetryMiddleware(collector, tags={"model": "m"}))
            .build()
        )
        request = ChatRequest(messages=HELLO)

        result = await chat.execute(request)

        assert result == ChatResponse.from_text("Hi there")
        assert collector.of_kind("start") == [
            ("start", SPAN_NAME, {"model": "m", "chat.message_count": 1}),
        ]
        end = collector.of_kind("end")[0]
        assert end[2]["outcome"] == "success"
        assert end[3] is None
        counter = collector.of_kind("counter")[0]
        assert counter[1:3] == (INTERACTIONS_COUNTER, 1)
        assert counter[3] == {"model": "m", "outcome": "success"}
        histogram = collector.of_kind("histogram")[0]
        assert histogram[1] == RESPONSE_TIME_HISTOGRAM
        assert histogram[2] >= 0
        assert request.metadata["elapsed_s"] == histogram[2]

    async def test_failure_recorded_and_reraised(self, server_error):
        collector = RecordingCollector()
        chat = (
            ChatPipeline(FakeBackend(error=server_error))
            .use(TelemetryMiddleware(collector))
            .build()
        )

        with pytest.raises(BackendError) as exc_info:
            await chat.invoke(HELLO)

        assert exc_info.value is server_error
        end = collector.of_kind("end")[0]
        assert end[2]["outcome"] == "failure"
        assert end[2]["error.type"] == "BackendError"
        assert end[3] is server_error
        assert collector.of_kind("counter")[0][3]["outcome"] == "failure"

    async def test_broken_collector_does_not_affect_call(self):
        backend = FakeBackend("still works")
        chat = ChatPipeline(backend).use(TelemetryMiddleware(BrokenCollector())).build()

        result = await chat.invoke(HELLO)

        assert result.text == "still works"
        assert backend.call_count == 1

    async def test_broken_collector_keeps_original_error(self, server_error):
        chat = (
            ChatPipeline(FakeBackend(error=server_error))
            .use(TelemetryMiddleware(BrokenCollector()))
            .build()
        )
        with pytest.raises(BackendError) as exc_info:
            await chat.invoke(HELLO)
        assert exc_info.value is server_error


# ---------------------------------------------------------------------------
# OpenTelemetryCollector
# ---------------------------------------------------------------------------

@pytest.fixture
def otel():
    exporter = InMemorySpanExporter()
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(exporter))
    reader = InMemoryMetricReader()
    meter_provider = MeterProvider(metric_readers=[reader])
    collector = OpenTelemetryCollector(
        "test", tracer_provider=tracer_provider, meter_provider=meter_provider,
    )
    yield collector, exporter, reader
    tracer_provider.shutdown()
    meter_provider.shutdown()


def _metric_names(reader: InMemoryMetricReader) -> set[str]:
    data = reader.get_metrics_data()
    return {
        metric.name
        for rm in data.resource_metrics
        for sm in rm.scope_metrics
        for metric in sm.metrics
    }


class TestOpenTelemetryCollector:
    async def test_span_and_metrics(self, otel):
        collector, exporter, reader = otel
        chat = (
            ChatPipeline(FakeBackend("ok"))
            .use(TelemetryMiddleware(collector, tags={"model": "m"}))
            .build()
        )

        await chat.invoke(HELLO)

        spans = exporter.get_finished_spans()
        assert len(spans) == 1
        assert spans[0].name == SPAN_NAME
        assert spans[0].attributes["outcome"] == "success"
        assert spans[0].attributes["model"] == "m"
        assert {INTERACTIONS_COUNTER, RESPONSE_TIME_HISTOGRAM} <= _metric_names(reader)

    async def test_error_status(self, otel, server_error):
        collector, exporter, _ = otel
        chat = (
            ChatPipeline(FakeBackend(error=server_error))
            .use(TelemetryMiddleware(collector))
            .build()
        )

        with pytest.raises(BackendError):
            await chat.invoke(HELLO)

        span = exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["error.type"] == "BackendError"

    def test_ad_hoc_instruments(self, otel):
        collector, _, reader = otel
        collector.add_counter("custom_total", 2, {"k": "v"})
        collector.record_histogram("custom_seconds", 0.5, {"k": "v"})
        assert {"custom_total", "custom_seconds"} <= _metric_names(reader)
