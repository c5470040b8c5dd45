"""
llmstream - Stream Translation

Base class for provider wire-to-event translators, plus the finish-reason
normalization tables.

A translator reads SSE frames through an SSEFrameReader and turns each
payload into zero or more uniform StreamEvents:

- The call context is checked before every frame read
- Each read is bounded by the remaining deadline
- One frame may produce several events; they are handed out one per step
- End of transport without a terminal frame simply ends the sequence
- Malformed payloads raise StreamProtocolError, provider error frames raise
  ProviderStreamError; nothing is retried
"""

import json
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .events import StreamEvent
from .sse import SSEFrameReader
from .stream import EventSource
from ..core.context import CallContext
from ..core.errors import StreamProtocolError
from ..core.models import FinishReason
from ..observability.logging import get_logger


logger = get_logger("llmstream.streaming")


# ============================================================
# Finish reason normalization
# ============================================================

ANTHROPIC_FINISH_MAP: Dict[str, str] = {
    "end_turn": FinishReason.STOP.value,
    "stop_sequence": FinishReason.STOP.value,
    "tool_use": FinishReason.TOOL_CALLS.value,
    "max_tokens": FinishReason.LENGTH.value,
}

GOOGLE_FINISH_MAP: Dict[str, str] = {
    "STOP": FinishReason.STOP.value,
    "MAX_TOKENS": FinishReason.LENGTH.value,
    "SAFETY": FinishReason.CONTENT_FILTER.value,
    "RECITATION": FinishReason.CONTENT_FILTER.value,
}


def normalize_finish_reason(provider: str, raw: Optional[str]) -> str:
    """
    Map a provider finish indicator to a normalized reason.

    Unknown Anthropic and Google values map to "stop"; OpenAI values are
    already normalized and pass through unchanged.
    """
    if provider == "anthropic":
        return ANTHROPIC_FINISH_MAP.get(raw or "", FinishReason.STOP.value)
    if provider == "google":
        return GOOGLE_FINISH_MAP.get(raw or "", FinishReason.STOP.value)
    return raw or FinishReason.STOP.value


# ============================================================
# Translator base
# ============================================================

class TranslatingSource(EventSource):
    """
    EventSource that owns an SSE connection and translates its frames.

    Subclasses implement ``handle(data)`` for one decoded JSON payload and
    may override ``finish()`` to flush events at end of transport.
    """

    provider: str = ""

    def __init__(self, reader: SSEFrameReader, ctx: CallContext):
        self._reader = reader
        self._ctx = ctx
        self._pending: Deque[StreamEvent] = deque()
        self._ended = False

    async def next(self) -> Optional[StreamEvent]:
        while True:
            if self._pending:
                event = self._pending.popleft()
                if event.is_terminal:
                    self._ended = True
                    self._pending.clear()
                return event

            if self._ended:
                return None

            self._ctx.check()
            payload = await self._ctx.bound(self._reader.next_frame())

            if payload is None:
                self._ended = True
                self._pending.extend(self.finish())
                continue

            self._pending.extend(self.handle(self.parse(payload)))

    def parse(self, payload: str) -> Dict[str, Any]:
        """Decode one frame payload as a JSON object."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise StreamProtocolError(str(e), provider=self.provider, payload=payload) from e

        if not isinstance(data, dict):
            raise StreamProtocolError(
                f"expected a JSON object, got {type(data).__name__}",
                provider=self.provider,
                payload=payload,
            )
        return data

    @abstractmethod
    def handle(self, data: Dict[str, Any]) -> List[StreamEvent]:
        """Translate one decoded payload into events."""
        pass

    def finish(self) -> List[StreamEvent]:
        """Events to emit when the transport ends without a terminal frame."""
        return []

    def skip(self, reason: str, **fields) -> List[StreamEvent]:
        logger.debug("stream frame skipped", provider=self.provider, reason=reason, **fields)
        return []

    async def aclose(self) -> None:
        await self._reader.aclose()
