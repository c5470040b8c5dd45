"""
llmstream - Stub Provider Adapter

Deterministic in-process adapter for tests and offline runs.
No network calls, no external provider keys required.

It only implements the one-shot path, so clients reach it in streaming mode
through the single-event fallback.
"""

import asyncio
import time
from typing import List, Optional, Sequence

from .base import AdapterConfig, BaseAdapter
from ..core.context import CallContext
from ..core.models import ChatRequest, ChatResponse, FinishReason, Provider, ToolCall, Usage


class StubAdapter(BaseAdapter):
    """
    Deterministic adapter for tests and offline runs.

    Args:
        content: Text returned by every successful call
        tool_calls: Tool calls attached to the response
        usage: Usage attached to the response
        delay: Seconds to wait before answering (ignores the call context)
        failures: Errors raised by the first calls, one per call, in order
    """

    provider = Provider.STUB

    def __init__(
        self,
        config: Optional[AdapterConfig] = None,
        content: str = "stub: deterministic response",
        tool_calls: Optional[List[ToolCall]] = None,
        usage: Optional[Usage] = None,
        finish_reason: str = FinishReason.STOP.value,
        delay: float = 0.0,
        failures: Optional[Sequence[BaseException]] = None,
    ):
        super().__init__(config)
        self.content = content
        self.tool_calls = list(tool_calls or [])
        self.usage = usage if usage is not None else Usage(prompt_tokens=8, completion_tokens=6)
        self.finish_reason = finish_reason
        self.delay = delay
        self._failures = list(failures or [])
        self.calls = 0
        self.call_times: List[float] = []

    async def send_message(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        self.calls += 1
        self.call_times.append(time.monotonic())

        if self.delay:
            await asyncio.sleep(self.delay)

        if self._failures:
            raise self._failures.pop(0)

        return ChatResponse.create(
            content=self.content,
            model=request.model or "stub-model",
            usage=self.usage,
            finish_reason=self.finish_reason,
            tool_calls=self.tool_calls,
        )
