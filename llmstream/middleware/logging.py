"""
llmstream - Logging Middleware

Structured records before and after every call.

Levels:
- MINIMAL: model, duration, token counts
- STANDARD: adds message count and finish reason
- VERBOSE: adds the first message and the response content, truncated to
  500 characters. Raw prompt and response text may contain sensitive data;
  do not use VERBOSE in production.

For streams the "after" record is written exactly once: ``llm stream
completed``, ``llm stream failed`` or ``llm stream abandoned``.
"""

import time
from typing import Any, Dict, Optional

from .chain import Middleware, SendFn, StreamFn
from ..core.config import LogLevel
from ..core.context import CallContext
from ..core.models import ChatRequest, ChatResponse, Usage
from ..observability.logging import StructuredLogger, get_logger
from ..streaming.events import StreamEvent, StreamEventType
from ..streaming.stream import ChatStream, StreamObserver, observe_stream


TRUNCATE_LEN = 500

_LEVEL_ORDER = {LogLevel.MINIMAL: 0, LogLevel.STANDARD: 1, LogLevel.VERBOSE: 2}


def _at_least(level: LogLevel, threshold: LogLevel) -> bool:
    return _LEVEL_ORDER[level] >= _LEVEL_ORDER[threshold]


def truncate(text: str, limit: int = TRUNCATE_LEN) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _duration_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _usage_fields(usage: Optional[Usage]) -> Dict[str, Any]:
    if usage is None:
        return {}
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


def request_fields(request: ChatRequest, level: LogLevel) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"model": request.model}

    if _at_least(level, LogLevel.STANDARD):
        fields["message_count"] = len(request.messages)

    if _at_least(level, LogLevel.VERBOSE) and request.messages:
        first = request.messages[0]
        fields["first_message_role"] = first.role.value
        fields["first_message_content"] = truncate(first.content)

    return fields


def response_fields(response: ChatResponse, duration_ms: float, level: LogLevel) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"model": response.model, "duration_ms": duration_ms}
    fields.update(_usage_fields(response.usage))

    if _at_least(level, LogLevel.STANDARD) and response.finish_reason:
        fields["finish_reason"] = response.finish_reason

    if _at_least(level, LogLevel.VERBOSE) and response.content:
        fields["response_content"] = truncate(response.content)

    return fields


class _StreamLogObserver(StreamObserver):
    """Writes the single closing record for a stream."""

    def __init__(self, logger: StructuredLogger, model: str, level: LogLevel, start: float):
        self._logger = logger
        self._model = model
        self._level = level
        self._start = start
        self._usage: Optional[Usage] = None

    def on_event(self, event: StreamEvent) -> None:
        if event.type == StreamEventType.USAGE and event.usage is not None:
            self._usage = event.usage

    def on_done(self, finish_reason: str) -> None:
        fields: Dict[str, Any] = {"model": self._model, "duration_ms": _duration_ms(self._start)}
        if _at_least(self._level, LogLevel.STANDARD) and finish_reason:
            fields["finish_reason"] = finish_reason
        fields.update(_usage_fields(self._usage))
        self._logger.info("llm stream completed", **fields)

    def on_error(self, error: BaseException) -> None:
        self._logger.error(
            "llm stream failed",
            model=self._model,
            duration_ms=_duration_ms(self._start),
            error=str(error),
        )

    def on_abandon(self) -> None:
        self._logger.info(
            "llm stream abandoned",
            model=self._model,
            duration_ms=_duration_ms(self._start),
        )


def logging_middleware(
    logger: Optional[StructuredLogger] = None,
    level: LogLevel = LogLevel.STANDARD,
) -> Middleware:
    """
    Create a logging middleware.

    Args:
        logger: Structured logger (defaults to "llmstream.client")
        level: Verbosity tier
    """
    base_logger = logger or get_logger("llmstream.client")

    def send(next_fn: SendFn) -> SendFn:
        async def call(request: ChatRequest, ctx: CallContext) -> ChatResponse:
            log = base_logger.bind(request_id=ctx.request_id)
            log.info("llm send", **request_fields(request, level))

            start = time.perf_counter()
            try:
                response = await next_fn(request, ctx)
            except Exception as e:
                log.error(
                    "llm send failed",
                    model=request.model,
                    duration_ms=_duration_ms(start),
                    error=str(e),
                )
                raise

            log.info("llm send completed", **response_fields(response, _duration_ms(start), level))
            return response
        return call

    def stream(next_fn: StreamFn) -> StreamFn:
        async def call(request: ChatRequest, ctx: CallContext) -> ChatStream:
            log = base_logger.bind(request_id=ctx.request_id)
            log.info("llm stream", **request_fields(request, level))

            start = time.perf_counter()
            try:
                inner = await next_fn(request, ctx)
            except Exception as e:
                log.error(
                    "llm stream failed",
                    model=request.model,
                    duration_ms=_duration_ms(start),
                    error=str(e),
                )
                raise

            return observe_stream(inner, _StreamLogObserver(log, request.model, level, start))
        return call

    return Middleware(send=send, stream=stream, name="logging")
