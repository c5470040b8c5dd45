"""
llmstream - Observability Middleware

Opens one span per call through the explicit observer handle, records the
outcome (finish reason, usage, error) and ends the span exactly once.
"""

from typing import Optional

from .chain import Middleware, SendFn, StreamFn
from ..core.context import CallContext
from ..core.models import ChatRequest, ChatResponse, Usage
from ..observability.tracing import (
    ATTR_COMPLETION_TOKENS,
    ATTR_FINISH_REASON,
    ATTR_LLM_MODEL,
    ATTR_LLM_PROVIDER,
    ATTR_LLM_STREAMING,
    ATTR_MESSAGES_COUNT,
    ATTR_PROMPT_TOKENS,
    ATTR_TOTAL_TOKENS,
    SPAN_CLIENT_SEND,
    SPAN_CLIENT_STREAM,
    Observer,
    SpanHandle,
)
from ..streaming.events import StreamEvent, StreamEventType
from ..streaming.stream import ChatStream, StreamObserver, observe_stream


def _record_result(span: SpanHandle, finish_reason: str, usage: Optional[Usage]) -> None:
    if finish_reason:
        span.set_attribute(ATTR_FINISH_REASON, finish_reason)
    if usage is not None:
        span.set_attribute(ATTR_PROMPT_TOKENS, usage.prompt_tokens)
        span.set_attribute(ATTR_COMPLETION_TOKENS, usage.completion_tokens)
        span.set_attribute(ATTR_TOTAL_TOKENS, usage.total_tokens)


class _SpanStreamObserver(StreamObserver):
    def __init__(self, span: SpanHandle):
        self._span = span
        self._usage: Optional[Usage] = None

    def on_event(self, event: StreamEvent) -> None:
        if event.type == StreamEventType.USAGE and event.usage is not None:
            self._usage = event.usage

    def on_done(self, finish_reason: str) -> None:
        _record_result(self._span, finish_reason, self._usage)
        self._span.set_ok()

    def on_error(self, error: BaseException) -> None:
        self._span.record_error(error)

    def on_abandon(self) -> None:
        _record_result(self._span, "", self._usage)
        self._span.set_ok("llm stream abandoned")

    def on_close(self) -> None:
        self._span.end()


def observability_middleware(observer: Optional[Observer] = None, provider: str = "") -> Middleware:
    """
    Create an observability middleware.

    Args:
        observer: Observer to use; defaults to the one carried by each call's context
        provider: Provider name recorded on every span
    """

    def _start(name: str, request: ChatRequest, ctx: CallContext, streaming: bool) -> SpanHandle:
        handle = observer or ctx.observer
        return handle.start_span(name, {
            ATTR_LLM_MODEL: request.model,
            ATTR_LLM_PROVIDER: provider or None,
            ATTR_LLM_STREAMING: streaming,
            ATTR_MESSAGES_COUNT: len(request.messages),
            "llm.request_id": ctx.request_id,
        })

    def send(next_fn: SendFn) -> SendFn:
        async def call(request: ChatRequest, ctx: CallContext) -> ChatResponse:
            span = _start(SPAN_CLIENT_SEND, request, ctx, streaming=False)
            try:
                response = await next_fn(request, ctx)
            except BaseException as e:
                span.record_error(e)
                span.end()
                raise

            _record_result(span, response.finish_reason, response.usage)
            span.set_ok()
            span.end()
            return response
        return call

    def stream(next_fn: StreamFn) -> StreamFn:
        async def call(request: ChatRequest, ctx: CallContext) -> ChatStream:
            span = _start(SPAN_CLIENT_STREAM, request, ctx, streaming=True)
            try:
                inner = await next_fn(request, ctx)
            except BaseException as e:
                span.record_error(e)
                span.end()
                raise
            return observe_stream(inner, _SpanStreamObserver(span))
        return call

    return Middleware(send=send, stream=stream, name="observability")
