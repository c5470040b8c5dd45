"""
llmstream - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Fake SSE transports built on real httpx objects
- Log capture helpers
"""

import asyncio
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx
import pytest

from llmstream.adapters.base import AdapterConfig
from llmstream.core.context import CallContext
from llmstream.observability.logging import StructuredLogger


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )

    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# Fake SSE transport
# ============================================================

Chunk = Union[str, bytes]


class CountingByteStream(httpx.AsyncByteStream):
    """
    Byte stream that records how often it was closed.

    Args:
        chunks: Raw body chunks, delivered in order
        delay: Seconds to wait before each chunk, or one value per chunk
        error: Raised after the last chunk instead of ending cleanly
    """

    def __init__(
        self,
        chunks: Sequence[Chunk],
        delay: Union[float, Sequence[float]] = 0.0,
        error: Optional[BaseException] = None,
    ):
        self.chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        if isinstance(delay, (int, float)):
            self.delays = [float(delay)] * len(self.chunks)
        else:
            self.delays = list(delay) + [0.0] * (len(self.chunks) - len(delay))
        self.error = error
        self.close_count = 0
        self.chunks_sent = 0

    async def __aiter__(self):
        for chunk, delay in zip(self.chunks, self.delays):
            if delay:
                await asyncio.sleep(delay)
            self.chunks_sent += 1
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.close_count += 1


def sse(*payloads: Any, done: bool = False) -> str:
    """Encode payloads as SSE data frames (dicts are JSON-encoded)."""
    frames = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        frames.append(f"data: {data}\n\n")
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames)


@pytest.fixture
def sse_response():
    """
    Build an open streaming httpx.Response over a CountingByteStream.

    Usage:
        response, body = sse_response([sse({"type": "ping"})])
    """
    def factory(
        chunks: Sequence[Chunk],
        status_code: int = 200,
        delay: Union[float, Sequence[float]] = 0.0,
        error: Optional[BaseException] = None,
    ):
        body = CountingByteStream(chunks, delay=delay, error=error)
        response = httpx.Response(
            status_code,
            stream=body,
            headers={"content-type": "text/event-stream"},
            request=httpx.Request("POST", "https://provider.test/stream"),
        )
        return response, body
    return factory


class FakeProvider:
    """
    httpx.MockTransport that answers every request with a prepared body.

    Records each request and each body stream it handed out.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.bodies: List[CountingByteStream] = []
        self._responses: List[Dict[str, Any]] = []
        self.transport = httpx.MockTransport(self._handle)

    def respond(
        self,
        chunks: Sequence[Chunk],
        status_code: int = 200,
        delay: Union[float, Sequence[float]] = 0.0,
        error: Optional[BaseException] = None,
    ) -> "FakeProvider":
        self._responses.append({
            "chunks": chunks,
            "status_code": status_code,
            "delay": delay,
            "error": error,
        })
        return self

    def fail_connect(self, error: BaseException) -> "FakeProvider":
        self._responses.append({"raise": error})
        return self

    def config(self, api_key: str = "test-key") -> AdapterConfig:
        return AdapterConfig(api_key=api_key, base_url="https://provider.test", transport=self.transport)

    @property
    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        planned = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if "raise" in planned:
            raise planned["raise"]
        body = CountingByteStream(planned["chunks"], delay=planned["delay"], error=planned["error"])
        self.bodies.append(body)
        return httpx.Response(
            planned["status_code"],
            stream=body,
            headers={"content-type": "text/event-stream"},
        )


@pytest.fixture
def fake_provider() -> FakeProvider:
    """Fake SSE provider endpoint for adapter and client tests."""
    return FakeProvider()


@pytest.fixture
def ctx() -> CallContext:
    """Background call context with no deadline."""
    return CallContext.background()


# ============================================================
# Logging Configuration
# ============================================================

@pytest.fixture(autouse=True)
def configure_test_logging():
    """Let llmstream debug records through during tests."""
    logging.getLogger("llmstream").setLevel(logging.DEBUG)
    yield


@pytest.fixture
def test_logger() -> StructuredLogger:
    """Structured logger whose records can be captured with caplog."""
    logger = logging.getLogger("llmstream.test")
    logger.setLevel(logging.DEBUG)
    return StructuredLogger(logger)


@pytest.fixture
def records_named(caplog) -> Callable[[str], List[logging.LogRecord]]:
    """Return captured records whose message matches exactly."""
    caplog.set_level(logging.DEBUG)

    def lookup(message: str) -> List[logging.LogRecord]:
        return [r for r in caplog.records if r.getMessage() == message]
    return lookup


# ============================================================
# Skip Helpers
# ============================================================

skip_if_no_anthropic = pytest.mark.skipif(
    not os.getenv("ANTHROPIC_API_KEY"),
    reason="Requires ANTHROPIC_API_KEY"
)
