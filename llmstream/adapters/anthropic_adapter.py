"""
llmstream - Anthropic Provider Adapter

Streaming adapter for Anthropic's Messages API.

SSE lifecycle:
    message_start -> content_block_start -> content_block_delta(s) ->
    content_block_stop -> message_delta -> message_stop
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from .base import StreamingAdapter
from ..core.errors import ProviderStreamError, StreamProtocolError
from ..core.models import ChatRequest, Message, Provider, Role, Usage
from ..streaming.events import StreamEvent
from ..streaming.normalizer import TranslatingSource, normalize_finish_reason


class AnthropicStreamTranslator(TranslatingSource):
    """
    Translates Anthropic block events into uniform events.

    Tool calls are indexed by a counter bumped on every ``tool_use`` block
    start; argument fragments belong to the last opened tool block.
    """

    provider = Provider.ANTHROPIC.value

    def __init__(self, reader, ctx):
        super().__init__(reader, ctx)
        self._tool_index = 0
        self._input_tokens = 0
        self._output_tokens = 0
        self._cached_tokens = 0
        self._stop_reason = ""

    def handle(self, data: Dict[str, Any]) -> List[StreamEvent]:
        event_type = data.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise StreamProtocolError("missing event type", provider=self.provider)

        if event_type == "message_start":
            usage = (data.get("message") or {}).get("usage") or {}
            self._input_tokens = usage.get("input_tokens") or 0
            self._cached_tokens = (
                (usage.get("cache_creation_input_tokens") or 0)
                + (usage.get("cache_read_input_tokens") or 0)
            )
            return []

        if event_type == "content_block_start":
            block = data.get("content_block") or {}
            if block.get("type") != "tool_use":
                return []
            event = StreamEvent.tool_call_delta(
                index=self._tool_index,
                id=block.get("id"),
                name=block.get("name"),
            )
            self._tool_index += 1
            return [event]

        if event_type == "content_block_delta":
            return self._handle_delta(data.get("delta") or {})

        if event_type == "message_delta":
            usage = data.get("usage") or {}
            self._output_tokens = usage.get("output_tokens") or 0
            stop_reason = (data.get("delta") or {}).get("stop_reason")
            if stop_reason:
                self._stop_reason = stop_reason
            return [StreamEvent.usage_snapshot(Usage(
                prompt_tokens=self._input_tokens,
                completion_tokens=self._output_tokens,
                total_tokens=self._input_tokens + self._output_tokens,
                cached_tokens=self._cached_tokens,
            ))]

        if event_type == "message_stop":
            return [StreamEvent.done(normalize_finish_reason(self.provider, self._stop_reason))]

        if event_type == "error":
            error = data.get("error") or {}
            raise ProviderStreamError(
                self.provider,
                error.get("message") or "unknown stream error",
                error_type=error.get("type", ""),
            )

        if event_type in ("content_block_stop", "ping"):
            return []

        return self.skip("unknown event type", event_type=event_type)

    def _handle_delta(self, delta: Dict[str, Any]) -> List[StreamEvent]:
        delta_type = delta.get("type")

        if delta_type == "text_delta":
            text = delta.get("text") or ""
            return [StreamEvent.content_delta(text)] if text else []

        if delta_type == "thinking_delta":
            thinking = delta.get("thinking") or ""
            return [StreamEvent.reasoning_delta(thinking)] if thinking else []

        if delta_type == "input_json_delta":
            fragment = delta.get("partial_json") or ""
            if not fragment:
                return []
            if self._tool_index == 0:
                raise StreamProtocolError(
                    "input_json_delta outside a tool_use block",
                    provider=self.provider,
                )
            return [StreamEvent.tool_call_delta(index=self._tool_index - 1, arguments=fragment)]

        return self.skip("unknown delta type", delta_type=delta_type)


class AnthropicAdapter(StreamingAdapter):
    """
    Adapter for Anthropic Claude API.

    Supports:
    - Streaming chat (text, extended thinking, tool use)
    - One-shot chat by collecting the stream
    """

    provider = Provider.ANTHROPIC
    DEFAULT_BASE_URL = "https://api.anthropic.com"
    API_KEY_ENV = "ANTHROPIC_API_KEY"
    API_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 4096
    translator = AnthropicStreamTranslator

    def _stream_path(self, request: ChatRequest) -> str:
        return "/v1/messages"

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.API_VERSION,
        }

    def _build_stream_payload(self, request: ChatRequest) -> Dict[str, Any]:
        """Build Anthropic-specific chat payload."""
        system_content, messages = self._extract_system_message(request.messages)

        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": self._convert_messages(messages),
            "max_tokens": request.max_tokens or self.DEFAULT_MAX_TOKENS,  # required by Anthropic
            "stream": True,
        }

        if system_content:
            payload["system"] = system_content

        if request.temperature is not None:
            payload["temperature"] = request.temperature

        if request.tools:
            payload["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters or {"type": "object", "properties": {}},
                }
                for tool in request.tools
            ]

        if request.metadata and request.metadata.get("user_id"):
            payload["metadata"] = {"user_id": request.metadata["user_id"]}

        return payload

    def _extract_system_message(
        self,
        messages: List[Message]
    ) -> Tuple[Optional[str], List[Message]]:
        """Anthropic takes the system prompt as a separate parameter."""
        system_parts = []
        filtered = []

        for msg in messages:
            if msg.role == Role.SYSTEM:
                system_parts.append(msg.content)
            else:
                filtered.append(msg)

        system_content = "\n\n".join(p for p in system_parts if p) or None
        return system_content, filtered

    def _convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Convert generic messages to Anthropic format."""
        result = []

        for msg in messages:
            if msg.role == Role.TOOL:
                result.append({
                    "role": "user",
                    "content": [{
                        "type": "tool_result",
                        "tool_use_id": msg.tool_call_id or "",
                        "content": msg.content,
                    }]
                })
                continue

            if msg.role == Role.ASSISTANT and msg.tool_calls:
                blocks: List[Dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.function.name,
                        "input": _decode_arguments(tc.function.arguments),
                    })
                result.append({"role": "assistant", "content": blocks})
                continue

            result.append({"role": msg.role.value, "content": msg.content})

        return result


def _decode_arguments(arguments: str) -> Dict[str, Any]:
    if not arguments:
        return {}
    try:
        decoded = json.loads(arguments)
    except json.JSONDecodeError:
        return {}
    return decoded if isinstance(decoded, dict) else {}
