"""
llmstream - Google Provider Adapter

Streaming adapter for Google's Gemini API (``streamGenerateContent`` with
``alt=sse``).
"""

import json
from typing import Any, Dict, List, Optional

from .base import StreamingAdapter
from ..core.errors import ProviderStreamError
from ..core.models import ChatRequest, Message, Provider, Role, Usage
from ..streaming.events import StreamEvent
from ..streaming.normalizer import TranslatingSource, normalize_finish_reason


class GeminiStreamTranslator(TranslatingSource):
    """
    Translates cumulative Gemini frames into uniform events.

    Each frame repeats the whole text generated so far, so only the suffix
    beyond what was already emitted is sent on (counted in code points).
    Thought parts are diffed separately onto the reasoning channel.
    Function calls arrive whole and are emitted once.
    Usage and finish reason are only reported from the frame carrying
    ``finishReason``.
    """

    provider = Provider.GOOGLE.value

    def __init__(self, reader, ctx):
        super().__init__(reader, ctx)
        self._text_length = 0
        self._reasoning_length = 0
        self._tool_calls_emitted = False
        self._usage: Optional[Usage] = None
        self._finished = False

    def handle(self, data: Dict[str, Any]) -> List[StreamEvent]:
        error = data.get("error")
        if error:
            if isinstance(error, dict):
                raise ProviderStreamError(
                    self.provider,
                    error.get("message") or "unknown stream error",
                    error_type=str(error.get("status") or error.get("code") or ""),
                )
            raise ProviderStreamError(self.provider, str(error))

        usage_metadata = data.get("usageMetadata")
        if isinstance(usage_metadata, dict):
            self._usage = _parse_usage(usage_metadata)

        candidates = data.get("candidates") or []
        if not candidates:
            return self.skip("frame without candidates")

        candidate = candidates[0] or {}
        events: List[StreamEvent] = []

        parts = (candidate.get("content") or {}).get("parts") or []
        text_parts: List[str] = []
        reasoning_parts: List[str] = []
        calls: List[Dict[str, Any]] = []

        for part in parts:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if text:
                if part.get("thought"):
                    reasoning_parts.append(text)
                else:
                    text_parts.append(text)
            if part.get("functionCall"):
                calls.append(part["functionCall"])

        if calls and not self._tool_calls_emitted:
            self._tool_calls_emitted = True
            for index, call in enumerate(calls):
                events.append(StreamEvent.tool_call_delta(
                    index=index,
                    id=f"call_{index}",
                    name=call.get("name", ""),
                    arguments=json.dumps(call.get("args") or {}),
                ))

        full_text = "\n".join(text_parts)
        if len(full_text) > self._text_length:
            events.append(StreamEvent.content_delta(full_text[self._text_length:]))
            self._text_length = len(full_text)

        full_reasoning = "\n".join(reasoning_parts)
        if len(full_reasoning) > self._reasoning_length:
            events.append(StreamEvent.reasoning_delta(full_reasoning[self._reasoning_length:]))
            self._reasoning_length = len(full_reasoning)

        finish_reason = candidate.get("finishReason")
        if finish_reason:
            self._finished = True
            if self._usage is not None:
                events.append(StreamEvent.usage_snapshot(self._usage))
            events.append(StreamEvent.done(normalize_finish_reason(self.provider, finish_reason)))

        return events

    def finish(self) -> List[StreamEvent]:
        # Transport ended without a finish frame: still report usage we saw
        if not self._finished and self._usage is not None:
            return [StreamEvent.usage_snapshot(self._usage)]
        return []


def _parse_usage(metadata: Dict[str, Any]) -> Usage:
    return Usage(
        prompt_tokens=metadata.get("promptTokenCount") or 0,
        completion_tokens=metadata.get("candidatesTokenCount") or 0,
        total_tokens=metadata.get("totalTokenCount") or 0,
        reasoning_tokens=metadata.get("thoughtsTokenCount") or 0,
        cached_tokens=metadata.get("cachedContentTokenCount") or 0,
    )


class GoogleAdapter(StreamingAdapter):
    """
    Adapter for Google Gemini API.

    Supports:
    - Streaming chat (text, thought summaries, function calling)
    - One-shot chat by collecting the stream
    """

    provider = Provider.GOOGLE
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    API_KEY_ENV = "GOOGLE_API_KEY"
    translator = GeminiStreamTranslator

    def _stream_path(self, request: ChatRequest) -> str:
        model_name = request.model
        if model_name.startswith("models/"):
            model_name = model_name[len("models/"):]
        return f"/models/{model_name}:streamGenerateContent?alt=sse"

    def _auth_headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.config.api_key}

    def _build_stream_payload(self, request: ChatRequest) -> Dict[str, Any]:
        """Build Gemini-specific chat payload."""
        payload: Dict[str, Any] = {
            "contents": self._convert_messages(request.messages),
        }

        generation_config: Dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        if request.tools:
            payload["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    }
                    for tool in request.tools
                ]
            }]

        system_instruction = self._extract_system_instruction(request.messages)
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        return payload

    def _extract_system_instruction(self, messages: List[Message]) -> Optional[str]:
        for msg in messages:
            if msg.role == Role.SYSTEM and msg.content:
                return msg.content
        return None

    def _convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Convert generic messages to Gemini format."""
        result = []

        for msg in messages:
            if msg.role == Role.SYSTEM:
                continue

            role = "user" if msg.role in (Role.USER, Role.TOOL) else "model"
            parts: List[Dict[str, Any]] = []

            if msg.role == Role.TOOL:
                parts.append({
                    "functionResponse": {
                        "name": msg.tool_call_id or "",
                        "response": {"content": msg.content},
                    }
                })
            else:
                if msg.content:
                    parts.append({"text": msg.content})
                for tc in msg.tool_calls or []:
                    try:
                        args = json.loads(tc.function.arguments) if tc.function.arguments else {}
                    except json.JSONDecodeError:
                        args = {}
                    parts.append({"functionCall": {"name": tc.function.name, "args": args}})

            if parts:
                result.append({"role": role, "parts": parts})

        return result
