"""
llmstream - Stream Events

Uniform event model shared by every provider translator.

A stream yields, in order, any number of content / reasoning / tool_call /
usage events and at most one terminal ``done`` event. Errors are never
events; they are raised from the stream's next step.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..core.models import Usage


class StreamEventType(str, Enum):
    """Types of streaming events."""
    CONTENT = "content"         # Text fragment to append
    REASONING = "reasoning"     # Chain-of-thought fragment
    TOOL_CALL = "tool_call"     # Tool call fragment (ToolCallDelta)
    USAGE = "usage"             # Token usage snapshot
    DONE = "done"               # Terminal, carries the finish reason


@dataclass
class ToolCallDelta:
    """
    One fragment of a streamed tool call.

    ``index`` is the only correlation key; ``id`` and ``name`` are only
    guaranteed on the first fragment for an index.
    """
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


@dataclass
class StreamEvent:
    """Tagged stream event; exactly one payload field is set per type."""
    type: StreamEventType
    content: str = ""
    tool_call: Optional[ToolCallDelta] = None
    usage: Optional[Usage] = None
    finish_reason: str = ""

    @classmethod
    def content_delta(cls, text: str) -> "StreamEvent":
        return cls(type=StreamEventType.CONTENT, content=text)

    @classmethod
    def reasoning_delta(cls, text: str) -> "StreamEvent":
        return cls(type=StreamEventType.REASONING, content=text)

    @classmethod
    def tool_call_delta(
        cls,
        index: int,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: str = ""
    ) -> "StreamEvent":
        return cls(
            type=StreamEventType.TOOL_CALL,
            tool_call=ToolCallDelta(index=index, id=id, name=name, arguments=arguments)
        )

    @classmethod
    def usage_snapshot(cls, usage: Usage) -> "StreamEvent":
        return cls(type=StreamEventType.USAGE, usage=usage)

    @classmethod
    def done(cls, finish_reason: str) -> "StreamEvent":
        return cls(type=StreamEventType.DONE, finish_reason=finish_reason)

    @property
    def is_terminal(self) -> bool:
        return self.type == StreamEventType.DONE
