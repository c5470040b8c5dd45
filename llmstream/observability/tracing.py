"""
llmstream - OpenTelemetry Tracing

Tracing is reached through an explicit observer handle carried on the call
context instead of an ambient "current span" lookup. A stream may be consumed
long after the call that opened it returned, so spans are started and ended
explicitly rather than through ``start_as_current_span``.

Usage:
    from llmstream.observability.tracing import setup_tracing, OpenTelemetryObserver

    setup_tracing(service_name="my-service", console_export=True)
    observer = OpenTelemetryObserver()
    ctx = CallContext(observer=observer)
"""

import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import SpanKind, Status, StatusCode


# Span names and attribute keys
SPAN_CLIENT_SEND = "llm.client.send_message"
SPAN_CLIENT_STREAM = "llm.client.stream_message"
ATTR_LLM_MODEL = "llm.model"
ATTR_LLM_PROVIDER = "llm.provider"
ATTR_LLM_STREAMING = "llm.streaming"
ATTR_FINISH_REASON = "llm.response.finish_reason"
ATTR_PROMPT_TOKENS = "llm.usage.prompt_tokens"
ATTR_COMPLETION_TOKENS = "llm.usage.completion_tokens"
ATTR_TOTAL_TOKENS = "llm.usage.total_tokens"
ATTR_MESSAGES_COUNT = "llm.request.messages_count"


class SpanHandle(ABC):
    """A started span that the caller is responsible for ending."""

    @abstractmethod
    def set_attribute(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def record_error(self, error: BaseException) -> None:
        pass

    @abstractmethod
    def set_ok(self, description: str = "") -> None:
        pass

    @abstractmethod
    def end(self) -> None:
        pass


class Observer(ABC):
    """Tracing collaborator passed explicitly through CallContext."""

    @abstractmethod
    def start_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None
    ) -> SpanHandle:
        pass


class _NoopSpan(SpanHandle):
    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def record_error(self, error: BaseException) -> None:
        pass

    def set_ok(self, description: str = "") -> None:
        pass

    def end(self) -> None:
        pass


class NoopObserver(Observer):
    """Default observer; records nothing."""

    def start_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None
    ) -> SpanHandle:
        return _NoopSpan()


class _OtelSpan(SpanHandle):
    def __init__(self, span: trace.Span):
        self._span = span

    def set_attribute(self, key: str, value: Any) -> None:
        if value is not None:
            self._span.set_attribute(key, value)

    def record_error(self, error: BaseException) -> None:
        self._span.record_exception(error)
        self._span.set_status(Status(StatusCode.ERROR, str(error)))

    def set_ok(self, description: str = "") -> None:
        # OK status does not accept a description in the OTel API
        self._span.set_status(Status(StatusCode.OK))
        if description:
            self._span.set_attribute("llm.status_detail", description)

    def end(self) -> None:
        self._span.end()


class OpenTelemetryObserver(Observer):
    """Observer backed by an OpenTelemetry tracer."""

    def __init__(self, tracer: Optional[trace.Tracer] = None):
        self._tracer = tracer or trace.get_tracer("llmstream")

    def start_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None
    ) -> SpanHandle:
        clean = {k: v for k, v in (attributes or {}).items() if v is not None}
        span = self._tracer.start_span(name, kind=SpanKind.CLIENT, attributes=clean)
        return _OtelSpan(span)


# ============================================================
# SDK setup
# ============================================================

def setup_tracing(
    service_name: str = "llmstream",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    exporter: Optional[SpanExporter] = None,
    set_global: bool = True,
) -> TracerProvider:
    """
    Install an SDK tracer provider.

    Args:
        service_name: Name of the service
        service_version: Version of the service
        otlp_endpoint: OTLP collector endpoint (falls back to OTEL_EXPORTER_OTLP_ENDPOINT)
        console_export: Export spans to stdout (also enabled by OTEL_CONSOLE_EXPORT=true)
        exporter: Extra exporter, flushed synchronously (useful in tests)
        set_global: Register the provider as the global tracer provider

    Returns:
        The configured TracerProvider
    """
    if otlp_endpoint is None:
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    if os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        console_export = True

    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
    })
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        # Requires opentelemetry-exporter-otlp
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    if console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    if set_global:
        trace.set_tracer_provider(provider)

    return provider
