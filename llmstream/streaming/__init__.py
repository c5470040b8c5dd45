"""
llmstream - Streaming Module

Uniform streaming support for all providers with:
- One event model (content, reasoning, tool_call, usage, done)
- Lazy single-pass streams with exactly-once transport release
- Index-keyed tool call reassembly
- Lifecycle observation for middleware
"""

from .events import StreamEvent, StreamEventType, ToolCallDelta
from .accumulator import StreamAccumulator, ToolCallBuilder
from .stream import (
    ChatStream,
    EventSource,
    ListEventSource,
    StreamObserver,
    observe_stream,
    single_event_stream,
)
from .sse import SSEFrameReader
from .normalizer import TranslatingSource, normalize_finish_reason
