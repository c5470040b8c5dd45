"""
llmstream - Stream Accumulator

Folds a uniform event sequence into one ChatResponse.

Tool calls come in pieces keyed by index:
1. First fragment: id and function name (arguments usually empty)
2. Further fragments: partial argument JSON, concatenated in arrival order
3. Indices may arrive out of order; the builder list grows to fit

Usage and finish reason are snapshots: the last one seen wins.
"""

from dataclasses import dataclass
from typing import List, Optional

from .events import StreamEvent, StreamEventType, ToolCallDelta
from ..core.models import ChatResponse, FunctionCall, ToolCall, Usage


@dataclass
class ToolCallBuilder:
    """Accumulates the fragments of one tool call."""
    id: str = ""
    name: str = ""
    arguments: str = ""

    def update(self, delta: ToolCallDelta):
        if delta.id:
            self.id = delta.id
        if delta.name:
            self.name = delta.name
        if delta.arguments:
            self.arguments += delta.arguments

    def build(self) -> ToolCall:
        return ToolCall(
            id=self.id,
            function=FunctionCall(name=self.name, arguments=self.arguments)
        )


class StreamAccumulator:
    """
    Left fold over stream events.

    Usage:
        acc = StreamAccumulator(model="gpt-4o")
        async for event in stream:
            acc.add(event)
        response = acc.result()
    """

    def __init__(self, response_id: str = "", model: str = ""):
        self.response_id = response_id
        self.model = model
        self._content: List[str] = []
        self._reasoning: List[str] = []
        self._tool_calls: List[ToolCallBuilder] = []
        self.usage: Optional[Usage] = None
        self.finish_reason: str = ""

    def add(self, event: StreamEvent) -> None:
        """Apply one event."""
        if event.type == StreamEventType.CONTENT:
            self._content.append(event.content)
        elif event.type == StreamEventType.REASONING:
            self._reasoning.append(event.content)
        elif event.type == StreamEventType.TOOL_CALL and event.tool_call is not None:
            self._builder(event.tool_call.index).update(event.tool_call)
        elif event.type == StreamEventType.USAGE and event.usage is not None:
            self.usage = event.usage
        elif event.type == StreamEventType.DONE:
            self.finish_reason = event.finish_reason

    def _builder(self, index: int) -> ToolCallBuilder:
        if index < 0:
            raise ValueError(f"tool call index must be >= 0, got {index}")
        while len(self._tool_calls) <= index:
            self._tool_calls.append(ToolCallBuilder())
        return self._tool_calls[index]

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def reasoning(self) -> str:
        return "".join(self._reasoning)

    def result(self) -> ChatResponse:
        """Snapshot of everything folded so far."""
        return ChatResponse(
            id=self.response_id,
            model=self.model,
            content=self.content,
            reasoning=self.reasoning,
            tool_calls=[builder.build() for builder in self._tool_calls],
            finish_reason=self.finish_reason,
            usage=self.usage,
        )
