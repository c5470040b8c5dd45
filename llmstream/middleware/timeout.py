"""
llmstream - Timeout Middleware

Bounds each call with a deadline derived from the caller's context.

- One-shot: the call runs under a child context and is abandoned with
  DeadlineExceededError at the deadline; the child is released either way
- Streaming: the child context governs every frame read and is released
  when the stream finishes, fails or is abandoned

Nested deadlines keep the earliest one.
"""

from .chain import Middleware, SendFn, StreamFn
from ..core.context import CallContext
from ..core.models import ChatRequest, ChatResponse
from ..streaming.stream import ChatStream, StreamObserver, observe_stream


class _ReleaseOnClose(StreamObserver):
    def __init__(self, ctx: CallContext):
        self._ctx = ctx

    def on_close(self) -> None:
        self._ctx.cancel()


def timeout_middleware(seconds: float) -> Middleware:
    """
    Create a timeout middleware.

    Args:
        seconds: Per-call budget; must be positive
    """
    if seconds <= 0:
        raise ValueError("timeout must be positive")

    def send(next_fn: SendFn) -> SendFn:
        async def call(request: ChatRequest, ctx: CallContext) -> ChatResponse:
            child = ctx.with_timeout(seconds)
            try:
                return await child.bound(next_fn(request, child))
            finally:
                child.cancel()
        return call

    def stream(next_fn: StreamFn) -> StreamFn:
        async def call(request: ChatRequest, ctx: CallContext) -> ChatStream:
            child = ctx.with_timeout(seconds)
            try:
                inner = await child.bound(next_fn(request, child))
            except BaseException:
                child.cancel()
                raise
            return observe_stream(inner, _ReleaseOnClose(child))
        return call

    return Middleware(send=send, stream=stream, name="timeout")
