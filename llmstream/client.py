"""
llmstream - Client

Facade that runs requests through the middleware chains and an adapter.

Usage:
    from llmstream import Client, ChatRequest, Message
    from llmstream.adapters import get_adapter
    from llmstream.middleware import logging_middleware, timeout_middleware

    client = Client(
        get_adapter("anthropic"),
        middlewares=[logging_middleware(), timeout_middleware(30.0)],
    )
    request = ChatRequest(model="claude-3-5-sonnet-20241022", messages=[Message.user("Hi")])

    async with await client.stream_message(request) as stream:
        async for event in stream:
            ...
"""

from typing import List, Optional, Sequence

from .adapters.base import BaseAdapter, ProviderCapability
from .core.config import ClientConfig
from .core.context import CallContext
from .core.models import ChatRequest, ChatResponse
from .middleware.chain import Middleware, build_send_chain, build_stream_chain
from .middleware.logging import logging_middleware
from .middleware.observability import observability_middleware
from .middleware.retry import retry_middleware
from .middleware.timeout import timeout_middleware
from .observability.logging import StructuredLogger
from .observability.tracing import Observer
from .streaming.stream import ChatStream, single_event_stream


class Client:
    """
    Chat client over one adapter.

    Both chains are built once at construction; ``middlewares[0]`` is the
    outermost wrapper.
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        middlewares: Optional[Sequence[Middleware]] = None,
        observer: Optional[Observer] = None,
    ):
        self.adapter = adapter
        self.middlewares: List[Middleware] = list(middlewares or [])
        self.observer = observer
        self._send = build_send_chain(self._base_send, self.middlewares)
        self._stream = build_stream_chain(self._base_stream, self.middlewares)

    @classmethod
    def from_config(
        cls,
        adapter: BaseAdapter,
        config: Optional[ClientConfig] = None,
        observer: Optional[Observer] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> "Client":
        """
        Build a client with the default middleware stack.

        Order (outermost first): observability, logging, retry, timeout. The
        timeout therefore bounds each attempt, not the whole retry loop.
        """
        config = config or ClientConfig.from_env()
        middlewares = [
            observability_middleware(observer, provider=adapter.provider.value),
            logging_middleware(logger, config.log_level),
            retry_middleware(config.retry),
        ]
        if config.timeout is not None:
            middlewares.append(timeout_middleware(config.timeout))
        return cls(adapter, middlewares, observer=observer)

    def _context(self, ctx: Optional[CallContext]) -> CallContext:
        if ctx is not None:
            return ctx
        return CallContext.background(observer=self.observer)

    async def _base_send(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        return await self.adapter.send_message(request, ctx)

    async def _base_stream(self, request: ChatRequest, ctx: CallContext) -> ChatStream:
        if self.adapter.capability == ProviderCapability.STREAMING:
            return await self.adapter.stream_message(request, ctx)
        response = await self.adapter.send_message(request, ctx)
        return single_event_stream(response, provider=self.adapter.provider.value)

    async def send_message(
        self,
        request: ChatRequest,
        ctx: Optional[CallContext] = None
    ) -> ChatResponse:
        """Run a one-shot call through the send chain."""
        return await self._send(request, self._context(ctx))

    async def stream_message(
        self,
        request: ChatRequest,
        ctx: Optional[CallContext] = None
    ) -> ChatStream:
        """
        Open a stream through the stream chain.

        Pre-stream errors are raised here; mid-stream errors are raised while
        iterating the returned stream.
        """
        return await self._stream(request, self._context(ctx))

    async def close(self) -> None:
        await self.adapter.close()
