"""
llmstream - Streaming Core for Multi-Provider Chat Clients

Lazy, provider-agnostic event streams over Server-Sent-Events transports,
with a composable middleware chain (timeout, retry, logging, tracing) around
both the one-shot and the streaming call paths.
"""

__version__ = "1.0.0"

from .client import Client
from .core.context import CallContext
from .core.models import ChatRequest, ChatResponse, Message, ToolCall, ToolDefinition, Usage
from .streaming.events import StreamEvent, StreamEventType, ToolCallDelta
from .streaming.stream import ChatStream, single_event_stream

__all__ = [
    "Client",
    "CallContext",
    "ChatRequest",
    "ChatResponse",
    "Message",
    "ToolCall",
    "ToolDefinition",
    "Usage",
    "StreamEvent",
    "StreamEventType",
    "ToolCallDelta",
    "ChatStream",
    "single_event_stream",
]
