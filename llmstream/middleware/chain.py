"""
llmstream - Middleware Chain

A middleware is a record with an optional one-shot wrapper and an optional
stream wrapper. A wrapper takes the next function and returns a new one:

    send wrapper:   (SendFn)   -> SendFn
    stream wrapper: (StreamFn) -> StreamFn

Chains are folded once, in reverse, so ``middlewares[0]`` is outermost.
Entries without the relevant wrapper are skipped.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from ..core.context import CallContext
from ..core.models import ChatRequest, ChatResponse
from ..streaming.stream import ChatStream


SendFn = Callable[[ChatRequest, CallContext], Awaitable[ChatResponse]]
StreamFn = Callable[[ChatRequest, CallContext], Awaitable[ChatStream]]

SendWrapper = Callable[[SendFn], SendFn]
StreamWrapper = Callable[[StreamFn], StreamFn]


@dataclass
class Middleware:
    """Cross-cutting behavior for the one-shot and/or streaming path."""
    send: Optional[SendWrapper] = None
    stream: Optional[StreamWrapper] = None
    name: str = ""


def build_send_chain(base: SendFn, middlewares: Sequence[Middleware]) -> SendFn:
    """Wrap ``base`` so that ``middlewares[0]`` runs first."""
    chain = base
    for middleware in reversed(middlewares):
        if middleware.send is not None:
            chain = middleware.send(chain)
    return chain


def build_stream_chain(base: StreamFn, middlewares: Sequence[Middleware]) -> StreamFn:
    """Wrap ``base`` so that ``middlewares[0]`` runs first."""
    chain = base
    for middleware in reversed(middlewares):
        if middleware.stream is not None:
            chain = middleware.stream(chain)
    return chain
