"""
llmstream - Middleware Tests

Verifies:
- Chain composition order (first middleware is outermost)
- Timeout bounds one-shot calls and whole stream lifetimes
- Retry attempts, backoff growth, exhaustion and cancellation
- Logging writes exactly one closing record per call or stream
"""

import asyncio
import logging
import time
from typing import List, Optional

import pytest

from llmstream.adapters.anthropic_adapter import AnthropicAdapter
from llmstream.adapters.stub_adapter import StubAdapter
from llmstream.client import Client
from llmstream.core.config import LogLevel, RetryConfig
from llmstream.core.context import CallContext
from llmstream.core.errors import (
    CallCancelledError,
    DeadlineExceededError,
    RetryExhaustedError,
    StreamReadError,
    UpstreamHTTPError,
)
from llmstream.core.models import ChatRequest, Message
from llmstream.middleware import (
    Middleware,
    build_send_chain,
    build_stream_chain,
    calculate_backoff,
    default_retryable,
    logging_middleware,
    retry_middleware,
    timeout_middleware,
)
from llmstream.streaming.events import StreamEvent
from llmstream.streaming.stream import ChatStream, EventSource, ListEventSource

from conftest import sse


REQUEST = ChatRequest(model="test-model", messages=[Message.user("Hello")])


class FailingSource(EventSource):
    """Yields the given events, then raises."""

    def __init__(self, events: List[StreamEvent], error: Exception):
        self._events = list(events)
        self._error = error
        self.close_count = 0

    async def next(self) -> Optional[StreamEvent]:
        if self._events:
            return self._events.pop(0)
        raise self._error

    async def aclose(self) -> None:
        self.close_count += 1


def finished_stream() -> ChatStream:
    return ChatStream(ListEventSource([
        StreamEvent.content_delta("hi"),
        StreamEvent.done("stop"),
    ]), model="test-model")


def recording(name: str, log: List[str]) -> Middleware:
    def send(next_fn):
        async def call(request, ctx):
            log.append(f"{name}:before")
            response = await next_fn(request, ctx)
            log.append(f"{name}:after")
            return response
        return call

    def stream(next_fn):
        async def call(request, ctx):
            log.append(f"{name}:stream")
            return await next_fn(request, ctx)
        return call

    return Middleware(send=send, stream=stream, name=name)


# ============================================================
# Chain Tests
# ============================================================

class TestChain:
    """Test middleware composition."""

    @pytest.mark.asyncio
    async def test_first_middleware_is_outermost(self, ctx):
        log: List[str] = []

        async def base(request, ctx):
            log.append("base")
            return await StubAdapter().send_message(request, ctx)

        chain = build_send_chain(base, [recording("a", log), recording("b", log)])
        await chain(REQUEST, ctx)

        assert log == ["a:before", "b:before", "base", "b:after", "a:after"]

    @pytest.mark.asyncio
    async def test_stream_chain_order(self, ctx):
        log: List[str] = []

        async def base(request, ctx):
            log.append("base")
            return finished_stream()

        chain = build_stream_chain(base, [recording("a", log), recording("b", log)])
        await chain(REQUEST, ctx)

        assert log == ["a:stream", "b:stream", "base"]

    @pytest.mark.asyncio
    async def test_missing_wrappers_skipped(self, ctx):
        log: List[str] = []

        async def base(request, ctx):
            return finished_stream()

        send_only = Middleware(send=recording("s", log).send, name="send-only")
        chain = build_stream_chain(base, [send_only, recording("b", log)])
        await chain(REQUEST, ctx)

        assert log == ["b:stream"]

    @pytest.mark.asyncio
    async def test_empty_chain_is_base(self, ctx):
        async def base(request, ctx):
            return finished_stream()

        assert build_stream_chain(base, []) is base


# ============================================================
# Timeout Tests
# ============================================================

class TestTimeout:
    """Test the timeout middleware."""

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            timeout_middleware(0)

    @pytest.mark.asyncio
    async def test_one_shot_deadline(self):
        client = Client(StubAdapter(delay=0.2), [timeout_middleware(0.02)])

        start = time.monotonic()
        with pytest.raises(DeadlineExceededError):
            await client.send_message(REQUEST)
        elapsed = time.monotonic() - start

        assert elapsed < 0.15

    @pytest.mark.asyncio
    async def test_one_shot_within_budget(self):
        client = Client(StubAdapter(delay=0.01), [timeout_middleware(1.0)])

        response = await client.send_message(REQUEST)

        assert response.content == "stub: deterministic response"

    @pytest.mark.asyncio
    async def test_earlier_parent_deadline_wins(self):
        client = Client(StubAdapter(delay=0.2), [timeout_middleware(5.0)])
        ctx = CallContext.background().with_timeout(0.02)

        start = time.monotonic()
        with pytest.raises(DeadlineExceededError):
            await client.send_message(REQUEST, ctx)

        assert time.monotonic() - start < 0.15

    @pytest.mark.asyncio
    async def test_stream_deadline_covers_later_frames(self, fake_provider):
        fake_provider.respond(
            [
                sse({"type": "message_start", "message": {"usage": {"input_tokens": 1}}},
                    {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "a"}}),
                sse({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "b"}},
                    {"type": "message_stop"}),
            ],
            delay=[0.0, 0.5],
        )
        client = Client(AnthropicAdapter(fake_provider.config()), [timeout_middleware(0.1)])

        start = time.monotonic()
        stream = await client.stream_message(REQUEST)
        first = await stream.__anext__()
        with pytest.raises(DeadlineExceededError):
            await stream.__anext__()
        elapsed = time.monotonic() - start
        await client.close()

        assert first.content == "a"
        assert elapsed < 0.4
        assert fake_provider.bodies[0].close_count == 1

    @pytest.mark.asyncio
    async def test_child_released_when_stream_completes(self, ctx):
        seen: List[CallContext] = []

        async def base(request, child):
            seen.append(child)
            return finished_stream()

        stream = await build_stream_chain(base, [timeout_middleware(5.0)])(REQUEST, ctx)
        assert not seen[0].cancelled

        await stream.collect()

        assert seen[0].cancelled
        assert not ctx.cancelled

    @pytest.mark.asyncio
    async def test_child_released_when_stream_abandoned(self, ctx):
        seen: List[CallContext] = []

        async def base(request, child):
            seen.append(child)
            return finished_stream()

        stream = await build_stream_chain(base, [timeout_middleware(5.0)])(REQUEST, ctx)
        await stream.__anext__()
        await stream.aclose()

        assert seen[0].cancelled
        assert stream.abandoned

    @pytest.mark.asyncio
    async def test_child_released_when_stream_fails(self, ctx):
        seen: List[CallContext] = []
        source = FailingSource([StreamEvent.content_delta("x")], StreamReadError("reset"))

        async def base(request, child):
            seen.append(child)
            return ChatStream(source)

        stream = await build_stream_chain(base, [timeout_middleware(5.0)])(REQUEST, ctx)
        with pytest.raises(StreamReadError):
            await stream.collect()

        assert seen[0].cancelled
        assert source.close_count == 1

    @pytest.mark.asyncio
    async def test_child_released_when_open_fails(self, ctx):
        seen: List[CallContext] = []

        async def base(request, child):
            seen.append(child)
            raise UpstreamHTTPError(503, provider="anthropic")

        with pytest.raises(UpstreamHTTPError):
            await build_stream_chain(base, [timeout_middleware(5.0)])(REQUEST, ctx)

        assert seen[0].cancelled


# ============================================================
# Retry Tests
# ============================================================

FAST_RETRY = RetryConfig(max_retries=3, initial_backoff=0.01, backoff_factor=2.0, jitter_fraction=0.0)


class TestRetry:
    """Test the retry middleware."""

    def test_no_stream_wrapper(self):
        assert retry_middleware().stream is None

    @pytest.mark.asyncio
    async def test_exhausts_after_max_retries(self):
        failures = [UpstreamHTTPError(503, provider="stub") for _ in range(10)]
        adapter = StubAdapter(failures=failures)
        client = Client(adapter, [retry_middleware(FAST_RETRY)])

        with pytest.raises(RetryExhaustedError) as exc_info:
            await client.send_message(REQUEST)

        assert adapter.calls == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.last_error is failures[3]
        assert exc_info.value.__cause__ is failures[3]
        assert "503" in str(exc_info.value)

        gaps = [b - a for a, b in zip(adapter.call_times, adapter.call_times[1:])]
        assert gaps[0] >= 0.009
        assert gaps[0] < gaps[1] < gaps[2]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        adapter = StubAdapter(failures=[UpstreamHTTPError(429), UpstreamHTTPError(502)])
        client = Client(adapter, [retry_middleware(FAST_RETRY)])

        response = await client.send_message(REQUEST)

        assert adapter.calls == 3
        assert response.content == "stub: deterministic response"

    @pytest.mark.asyncio
    async def test_non_retryable_propagates(self):
        error = UpstreamHTTPError(400, body="bad request")
        adapter = StubAdapter(failures=[error])
        client = Client(adapter, [retry_middleware(FAST_RETRY)])

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.send_message(REQUEST)

        assert exc_info.value is error
        assert adapter.calls == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        adapter = StubAdapter(failures=[UpstreamHTTPError(503)])
        client = Client(adapter, [retry_middleware(RetryConfig(max_retries=0))])

        with pytest.raises(RetryExhaustedError) as exc_info:
            await client.send_message(REQUEST)

        assert exc_info.value.attempts == 1
        assert adapter.calls == 1

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self):
        adapter = StubAdapter(failures=[DeadlineExceededError()])
        client = Client(adapter, [retry_middleware(FAST_RETRY)])

        with pytest.raises(DeadlineExceededError):
            await client.send_message(REQUEST)

        assert adapter.calls == 1

    @pytest.mark.asyncio
    async def test_cancel_aborts_backoff_wait(self):
        adapter = StubAdapter(failures=[UpstreamHTTPError(503) for _ in range(5)])
        client = Client(adapter, [retry_middleware(RetryConfig(initial_backoff=10.0, jitter_fraction=0.0))])
        ctx = CallContext.background()
        asyncio.get_running_loop().call_later(0.05, ctx.cancel)

        start = time.monotonic()
        with pytest.raises(CallCancelledError):
            await client.send_message(REQUEST, ctx)

        assert time.monotonic() - start < 1.0
        assert adapter.calls == 1

    @pytest.mark.asyncio
    async def test_deadline_cuts_backoff_wait(self):
        adapter = StubAdapter(failures=[UpstreamHTTPError(503) for _ in range(5)])
        client = Client(adapter, [retry_middleware(RetryConfig(initial_backoff=10.0, jitter_fraction=0.0))])
        ctx = CallContext.background().with_timeout(0.05)

        start = time.monotonic()
        with pytest.raises(DeadlineExceededError):
            await client.send_message(REQUEST, ctx)

        assert time.monotonic() - start < 1.0

    @pytest.mark.asyncio
    async def test_retry_attempts_logged(self, records_named):
        adapter = StubAdapter(failures=[UpstreamHTTPError(503), UpstreamHTTPError(503)])
        client = Client(adapter, [retry_middleware(FAST_RETRY)])

        await client.send_message(REQUEST)

        records = records_named("llm send retry")
        assert [r.attempt for r in records] == [1, 2]
        assert all(r.levelno == logging.WARNING for r in records)


class TestBackoff:
    """Test backoff calculation."""

    def test_exponential_without_jitter(self):
        assert [calculate_backoff(i, FAST_RETRY) for i in range(3)] == pytest.approx([0.01, 0.02, 0.04])

    def test_capped(self):
        config = RetryConfig(initial_backoff=1.0, max_backoff=5.0, jitter_fraction=0.0)

        assert calculate_backoff(10, config) == 5.0

    def test_jitter_bounds(self):
        config = RetryConfig(initial_backoff=1.0, jitter_fraction=0.1)

        for _ in range(50):
            delay = calculate_backoff(1, config)
            assert 2.0 <= delay <= 2.2

    @pytest.mark.parametrize("error, expected", [
        (UpstreamHTTPError(429), True),
        (UpstreamHTTPError(503), True),
        (RuntimeError("upstream returned 529 overloaded"), True),
        (UpstreamHTTPError(400), False),
        (ValueError("bad input"), False),
    ])
    def test_default_retryable(self, error, expected):
        assert default_retryable(error) is expected


# ============================================================
# Logging Tests
# ============================================================

class TestLoggingMiddleware:
    """Test structured call logging."""

    @pytest.mark.asyncio
    async def test_send_records(self, test_logger, records_named):
        client = Client(StubAdapter(), [logging_middleware(test_logger)])
        ctx = CallContext.background()

        await client.send_message(REQUEST, ctx)

        (before,) = records_named("llm send")
        (after,) = records_named("llm send completed")
        assert before.model == "test-model"
        assert before.message_count == 1
        assert before.request_id == ctx.request_id
        assert after.finish_reason == "stop"
        assert after.total_tokens == 14
        assert after.duration_ms >= 0
        assert after.request_id == ctx.request_id

    @pytest.mark.asyncio
    async def test_send_failure(self, test_logger, records_named):
        client = Client(StubAdapter(failures=[UpstreamHTTPError(500)]), [logging_middleware(test_logger)])

        with pytest.raises(UpstreamHTTPError):
            await client.send_message(REQUEST)

        (record,) = records_named("llm send failed")
        assert record.levelno == logging.ERROR
        assert "500" in record.error
        assert records_named("llm send completed") == []

    @pytest.mark.asyncio
    async def test_minimal_level(self, test_logger, records_named):
        client = Client(StubAdapter(), [logging_middleware(test_logger, LogLevel.MINIMAL)])

        await client.send_message(REQUEST)

        (before,) = records_named("llm send")
        (after,) = records_named("llm send completed")
        assert not hasattr(before, "message_count")
        assert not hasattr(after, "finish_reason")
        assert after.total_tokens == 14

    @pytest.mark.asyncio
    async def test_verbose_truncates_content(self, test_logger, records_named):
        long_text = "x" * 600
        client = Client(StubAdapter(content=long_text), [logging_middleware(test_logger, LogLevel.VERBOSE)])
        request = ChatRequest(model="test-model", messages=[Message.user(long_text)])

        await client.send_message(request)

        (before,) = records_named("llm send")
        (after,) = records_named("llm send completed")
        assert before.first_message_role == "user"
        assert before.first_message_content == "x" * 500 + "..."
        assert after.response_content == "x" * 500 + "..."

    @pytest.mark.asyncio
    async def test_stream_completed_once(self, test_logger, records_named):
        client = Client(StubAdapter(), [logging_middleware(test_logger)])

        stream = await client.stream_message(REQUEST)
        await stream.collect()
        await stream.aclose()

        assert len(records_named("llm stream")) == 1
        (record,) = records_named("llm stream completed")
        assert record.finish_reason == "stop"
        assert record.total_tokens == 14
        assert records_named("llm stream abandoned") == []

    @pytest.mark.asyncio
    async def test_stream_abandoned_once(self, test_logger, records_named):
        client = Client(StubAdapter(), [logging_middleware(test_logger)])

        stream = await client.stream_message(REQUEST)
        await stream.__anext__()
        await stream.aclose()
        await stream.aclose()

        assert len(records_named("llm stream abandoned")) == 1
        assert records_named("llm stream completed") == []
        assert records_named("llm stream failed") == []

    @pytest.mark.asyncio
    async def test_stream_failed_mid_stream(self, test_logger, records_named, ctx):
        async def base(request, ctx):
            return ChatStream(FailingSource([StreamEvent.content_delta("x")], StreamReadError("reset")))

        chain = build_stream_chain(base, [logging_middleware(test_logger)])
        stream = await chain(REQUEST, ctx)

        with pytest.raises(StreamReadError):
            async for _ in stream:
                pass
        await stream.aclose()

        (record,) = records_named("llm stream failed")
        assert "reset" in record.error
        assert records_named("llm stream abandoned") == []

    @pytest.mark.asyncio
    async def test_stream_open_failure(self, test_logger, records_named, fake_provider):
        fake_provider.respond(["overloaded"], status_code=529)
        client = Client(AnthropicAdapter(fake_provider.config()), [logging_middleware(test_logger)])

        with pytest.raises(UpstreamHTTPError):
            await client.stream_message(REQUEST)
        await client.close()

        (record,) = records_named("llm stream failed")
        assert "529" in record.error
