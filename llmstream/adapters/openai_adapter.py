"""
llmstream - OpenAI Provider Adapter

Streaming adapter for OpenAI's Chat Completions API.

Chunks already carry deltas keyed by tool-call index, so translation is
mostly a pass-through. With ``stream_options.include_usage`` the usage chunk
arrives after the chunk carrying ``finish_reason``; the terminal ``done``
event is therefore held back until the usage chunk or the end of the stream.
"""

from typing import Any, Dict, List, Optional

from .base import StreamingAdapter
from ..core.errors import ProviderStreamError
from ..core.models import ChatRequest, Provider, Usage
from ..streaming.events import StreamEvent
from ..streaming.normalizer import TranslatingSource, normalize_finish_reason


class OpenAIStreamTranslator(TranslatingSource):
    """Translates chat.completion.chunk payloads into uniform events."""

    provider = Provider.OPENAI.value

    def __init__(self, reader, ctx):
        super().__init__(reader, ctx)
        self._finish_reason: Optional[str] = None

    def handle(self, data: Dict[str, Any]) -> List[StreamEvent]:
        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            error_type = error.get("type", "") if isinstance(error, dict) else ""
            raise ProviderStreamError(self.provider, message or "unknown stream error", error_type=error_type or "")

        events: List[StreamEvent] = []

        for choice in data.get("choices") or []:
            delta = choice.get("delta") or {}

            content = delta.get("content")
            if content:
                events.append(StreamEvent.content_delta(content))

            reasoning = delta.get("reasoning") or delta.get("reasoning_content")
            if reasoning:
                events.append(StreamEvent.reasoning_delta(reasoning))

            for part in delta.get("tool_calls") or []:
                function = part.get("function") or {}
                events.append(StreamEvent.tool_call_delta(
                    index=part.get("index") or 0,
                    id=part.get("id"),
                    name=function.get("name"),
                    arguments=function.get("arguments") or "",
                ))

            if choice.get("finish_reason"):
                self._finish_reason = choice["finish_reason"]

        usage = data.get("usage")
        if isinstance(usage, dict):
            events.append(StreamEvent.usage_snapshot(_parse_usage(usage)))
            if self._finish_reason is not None:
                events.append(self._done())

        return events

    def finish(self) -> List[StreamEvent]:
        if self._finish_reason is not None:
            return [self._done()]
        return []

    def _done(self) -> StreamEvent:
        return StreamEvent.done(normalize_finish_reason(self.provider, self._finish_reason))


def _parse_usage(usage: Dict[str, Any]) -> Usage:
    completion_details = usage.get("completion_tokens_details") or {}
    prompt_details = usage.get("prompt_tokens_details") or {}
    return Usage(
        prompt_tokens=usage.get("prompt_tokens") or 0,
        completion_tokens=usage.get("completion_tokens") or 0,
        total_tokens=usage.get("total_tokens") or 0,
        reasoning_tokens=completion_details.get("reasoning_tokens") or 0,
        cached_tokens=prompt_details.get("cached_tokens") or 0,
    )


class OpenAIAdapter(StreamingAdapter):
    """
    Adapter for OpenAI Chat Completions API.

    Supports:
    - Streaming chat (text, reasoning, parallel tool calls)
    - One-shot chat by collecting the stream
    """

    provider = Provider.OPENAI
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    API_KEY_ENV = "OPENAI_API_KEY"
    translator = OpenAIStreamTranslator

    def _stream_path(self, request: ChatRequest) -> str:
        return "/chat/completions"

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def _build_stream_payload(self, request: ChatRequest) -> Dict[str, Any]:
        """Build OpenAI-specific chat payload."""
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": self._normalize_messages(request),
            "stream": True,
            "stream_options": {"include_usage": True},
        }

        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens

        tools = self._normalize_tools(request)
        if tools:
            payload["tools"] = tools

        return payload
