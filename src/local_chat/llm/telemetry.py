"""Telemetry middleware and the observability collector seam.

``TelemetryMiddleware`` records one span, one counter increment and one
duration histogram sample per chat call.  It never changes the response and
re-raises failures unchanged; errors raised by the collector itself are
logged and ignored so they cannot affect the chat call.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Protocol

from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

from local_chat.types import ChatResponse

from .middleware import ChatRequest, NextFn

_logger = logging.getLogger(__name__)

SPAN_NAME = "chat.invoke"
INTERACTIONS_COUNTER = "agent_interactions_total"
RESPONSE_TIME_HISTOGRAM = "agent_response_time_seconds"


# ---------------------------------------------------------------------------
# Collector protocol
# ---------------------------------------------------------------------------

class ObservabilityCollector(Protocol):
    """Sink for span and metric events."""

    def start_span(self, name: str, tags: Mapping[str, Any]) -> Any:
        ...

    def end_span(
        self,
        span: Any,
        tags: Mapping[str, Any],
        error: BaseException | None = None,
    ) -> None:
        ...

    def add_counter(self, name: str, value: int, tags: Mapping[str, Any]) -> None:
        ...

    def record_histogram(
        self, name: str, value: float, tags: Mapping[str, Any],
    ) -> None:
        ...


class OpenTelemetryCollector:
    """``ObservabilityCollector`` backed by the OpenTelemetry API.

    Uses whatever tracer/meter providers are installed globally (see
    ``local_chat.observability``); without them every call is a no-op.
    """

    def __init__(
        self,
        source_name: str = "local_chat",
        tracer_provider: trace.TracerProvider | None = None,
        meter_provider: metrics.MeterProvider | None = None,
    ) -> None:
        self._tracer = trace.get_tracer(source_name, tracer_provider=tracer_provider)
        meter = metrics.get_meter(source_name, meter_provider=meter_provider)
        self._counters = {
            INTERACTIONS_COUNTER: meter.create_counter(
                INTERACTIONS_COUNTER,
                description="Total number of agent interactions",
            ),
        }
        self._histograms = {
            RESPONSE_TIME_HISTOGRAM: meter.create_histogram(
                RESPONSE_TIME_HISTOGRAM,
                unit="s",
                description="Agent response time in seconds",
            ),
        }
        self._meter = meter

    def start_span(self, name: str, tags: Mapping[str, Any]) -> Any:
        return self._tracer.start_span(name, attributes=dict(tags))

    def end_span(
        self,
        span: Any,
        tags: Mapping[str, Any],
        error: BaseException | None = None,
    ) -> None:
        span.set_attributes(dict(tags))
        if error is not None:
            span.record_exception(error)
            span.set_status(Status(StatusCode.ERROR, str(error)))
        span.end()

    def add_counter(self, name: str, value: int, tags: Mapping[str, Any]) -> None:
        counter = self._counters.get(name)
        if counter is None:
            counter = self._counters[name] = self._meter.create_counter(name)
        counter.add(value, attributes=dict(tags))

    def record_histogram(
        self, name: str, value: float, tags: Mapping[str, Any],
    ) -> None:
        histogram = self._histograms.get(name)
        if histogram is None:
            histogram = self._histograms[name] = self._meter.create_histogram(name)
        histogram.record(value, attributes=dict(tags))


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class TelemetryMiddleware:
    """Middleware that times each call and reports it to a collector."""

    def __init__(
        self,
        collector: ObservabilityCollector,
        tags: Mapping[str, Any] | None = None,
    ) -> None:
        self.collector = collector
        self.tags = dict(tags or {})

    async def process(
        self,
        request: ChatRequest,
        next_fn: NextFn,
    ) -> ChatResponse:
        base_tags = {**self.tags, "chat.message_count": len(request.messages)}
        span = self._safe(self.collector.start_span, SPAN_NAME, base_tags)

        start = time.monotonic()
        try:
            response = await next_fn(request)
        except BaseException as e:
            elapsed = time.monotonic() - start
            tags = {**base_tags, "outcome": "failure", "error.type": type(e).__name__}
            self._record(span, tags, elapsed, error=e)
            _logger.error("Chat call failed after %.2fs: %s", elapsed, e)
            raise

        elapsed = time.monotonic() - start
        request.metadata["elapsed_s"] = elapsed
        self._record(span, {**base_tags, "outcome": "success"}, elapsed)
        _logger.info("Chat call completed in %.2fs", elapsed)
        return response

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(
        self,
        span: Any,
        tags: dict[str, Any],
        elapsed: float,
        error: BaseException | None = None,
    ) -> None:
        metric_tags = {k: v for k, v in tags.items() if k != "chat.message_count"}
        if span is not None:
            self._safe(self.collector.end_span, span, tags, error)
        self._safe(self.collector.add_counter, INTERACTIONS_COUNTER, 1, metric_tags)
        self._safe(
            self.collector.record_histogram,
            RESPONSE_TIME_HISTOGRAM, elapsed, metric_tags,
        )

    @staticmethod
    def _safe(fn: Any, *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception:
            _logger.exception(
                "Observability collector %s raised",
                getattr(fn, "__name__", fn),
            )
            return None
