"""
llmstream - Observability Module

- Structured JSON logging with explicitly bound fields
- OpenTelemetry tracing through an explicit observer handle
"""

from .logging import JSONFormatter, StructuredLogger, get_logger, setup_logging
from .tracing import NoopObserver, Observer, OpenTelemetryObserver, SpanHandle, setup_tracing
