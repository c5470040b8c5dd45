"""
llmstream - Chat Stream

Lazy, single-pass event stream over an EventSource.

Lifecycle:
- The consumer pulls one event per ``__anext__``; nothing advances otherwise
- A ``done`` event or a raised error is terminal; the source is closed
  exactly once before the event or error reaches the caller
- ``aclose()`` before a terminal condition is abandonment; it also closes
  the source exactly once
- A finished stream cannot be iterated or collected again

Usage:
    async with await client.stream_message(request) as stream:
        async for event in stream:
            if event.type == StreamEventType.CONTENT:
                print(event.content, end="")

    response = await (await client.stream_message(request)).collect()
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .accumulator import StreamAccumulator
from .events import StreamEvent
from ..core.errors import StreamConsumedError
from ..core.models import ChatResponse


class EventSource(ABC):
    """
    Producer behind a ChatStream.

    ``next()`` returns the next event, or None once the sequence has ended
    without a ``done`` event; errors are raised. ``aclose()`` releases the
    underlying resource and is called exactly once by the owning stream.
    """

    @abstractmethod
    async def next(self) -> Optional[StreamEvent]:
        pass

    @abstractmethod
    async def aclose(self) -> None:
        pass


class ListEventSource(EventSource):
    """Source over events that are already in memory."""

    def __init__(self, events: Iterable[StreamEvent]):
        self._events = list(events)
        self._position = 0

    async def next(self) -> Optional[StreamEvent]:
        if self._position >= len(self._events):
            return None
        event = self._events[self._position]
        self._position += 1
        return event

    async def aclose(self) -> None:
        self._events = []


class _State(str, Enum):
    OPEN = "open"
    ENDED = "ended"          # terminal event handed out, end-of-iteration pending
    CONSUMED = "consumed"


class ChatStream:
    """Single-pass async iterator of StreamEvent values."""

    def __init__(
        self,
        source: EventSource,
        model: str = "",
        response_id: str = "",
        provider: str = "",
    ):
        self._source = source
        self._state = _State.OPEN
        self._source_closed = False
        self._abandoned = False
        self.model = model
        self.response_id = response_id
        self.provider = provider

    # ============================================================
    # Iteration
    # ============================================================

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._state == _State.ENDED:
            self._state = _State.CONSUMED
            raise StopAsyncIteration
        if self._state == _State.CONSUMED:
            raise StreamConsumedError()

        try:
            event = await self._source.next()
        except BaseException:
            self._state = _State.CONSUMED
            await self._close_source()
            raise

        if event is None:
            self._state = _State.CONSUMED
            await self._close_source()
            raise StopAsyncIteration

        if event.is_terminal:
            self._state = _State.ENDED
            await self._close_source()

        return event

    async def _close_source(self) -> None:
        if self._source_closed:
            return
        self._source_closed = True
        await self._source.aclose()

    # ============================================================
    # Closing
    # ============================================================

    async def aclose(self) -> None:
        """Stop consuming. Closing before a terminal condition is abandonment."""
        if self._state == _State.OPEN:
            self._abandoned = True
        self._state = _State.CONSUMED
        await self._close_source()

    async def __aenter__(self) -> "ChatStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    @property
    def finished(self) -> bool:
        return self._state != _State.OPEN

    # ============================================================
    # Accumulation
    # ============================================================

    async def collect_partial(self) -> Tuple[ChatResponse, Optional[Exception]]:
        """
        Drain the stream and fold it into a ChatResponse.

        Returns the (possibly partial) response together with the error that
        ended the stream, or None when it completed normally.
        """
        if self._state != _State.OPEN:
            raise StreamConsumedError()

        acc = StreamAccumulator(response_id=self.response_id, model=self.model)
        try:
            async for event in self:
                acc.add(event)
        except Exception as e:
            return acc.result(), e
        return acc.result(), None

    async def collect(self) -> ChatResponse:
        """
        Drain the stream and return the assembled response.

        A mid-stream error is re-raised with the partial response attached
        as ``error.partial_response``.
        """
        response, error = await self.collect_partial()
        if error is not None:
            error.partial_response = response
            raise error
        return response


def single_event_stream(response: ChatResponse, provider: str = "") -> ChatStream:
    """
    Wrap a finished response as a stream.

    Yields content, reasoning, one tool_call per tool call (full arguments,
    index by position), usage and done, skipping empty parts.
    """
    events: List[StreamEvent] = []

    if response.content:
        events.append(StreamEvent.content_delta(response.content))
    if response.reasoning:
        events.append(StreamEvent.reasoning_delta(response.reasoning))
    for index, tc in enumerate(response.tool_calls):
        events.append(StreamEvent.tool_call_delta(
            index=index,
            id=tc.id,
            name=tc.function.name,
            arguments=tc.function.arguments,
        ))
    if response.usage is not None:
        events.append(StreamEvent.usage_snapshot(response.usage))
    events.append(StreamEvent.done(response.finish_reason))

    return ChatStream(
        ListEventSource(events),
        model=response.model,
        response_id=response.id,
        provider=provider,
    )


# ============================================================
# Observation
# ============================================================

class StreamObserver:
    """
    Hooks called while a wrapped stream is consumed.

    Exactly one of on_done / on_error / on_abandon fires, followed by
    on_close, which always fires last and exactly once.
    """

    def on_first_event(self, event: StreamEvent) -> None:
        pass

    def on_event(self, event: StreamEvent) -> None:
        pass

    def on_done(self, finish_reason: str) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass

    def on_abandon(self) -> None:
        pass

    def on_close(self) -> None:
        pass


class _ObservedSource(EventSource):
    """Re-exposes an inner stream's events while calling observer hooks."""

    def __init__(self, inner: ChatStream, observer: StreamObserver):
        self._inner = inner
        self._observer = observer
        self._seen_first = False
        self._finished = False

    async def next(self) -> Optional[StreamEvent]:
        try:
            event = await self._inner.__anext__()
        except StopAsyncIteration:
            self._finish_done("")
            return None
        except BaseException as e:
            if not self._finished:
                self._finished = True
                self._observer.on_error(e)
                self._observer.on_close()
            raise

        if not self._seen_first:
            self._seen_first = True
            self._observer.on_first_event(event)
        self._observer.on_event(event)

        if event.is_terminal:
            self._finish_done(event.finish_reason)
        return event

    def _finish_done(self, finish_reason: str) -> None:
        if self._finished:
            return
        self._finished = True
        self._observer.on_done(finish_reason)
        self._observer.on_close()

    async def aclose(self) -> None:
        abandoning = not self._finished
        self._finished = True
        if abandoning:
            self._observer.on_abandon()
        try:
            await self._inner.aclose()
        finally:
            if abandoning:
                self._observer.on_close()


def observe_stream(stream: ChatStream, observer: StreamObserver) -> ChatStream:
    """
    Wrap ``stream`` so ``observer`` sees its lifecycle.

    The returned stream yields the same events. Closing it delegates to the
    wrapped stream's ``aclose()``; the wrapper never owns the transport.
    """
    return ChatStream(
        _ObservedSource(stream, observer),
        model=stream.model,
        response_id=stream.response_id,
        provider=stream.provider,
    )
