"""
llmstream - Core Data Models

Generic request/response types shared by every provider. Provider-specific
one-shot schemas live with their adapters; the streaming core only needs the
already-converted generic shapes below.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


# ============================================================
# Enums
# ============================================================

class Provider(str, Enum):
    """Supported AI providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    STUB = "stub"


class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Normalized completion finish reasons."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


# ============================================================
# Tool Calling
# ============================================================

@dataclass
class FunctionCall:
    """Function call made by the model."""
    name: str
    arguments: str  # JSON string


@dataclass
class ToolCall:
    """Tool call in a response."""
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall = field(default_factory=lambda: FunctionCall("", ""))


@dataclass
class ToolDefinition:
    """Tool offered to the model."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# Messages
# ============================================================

@dataclass
class Message:
    """Unified text message."""
    role: Role
    content: str = ""
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        tool_calls: Optional[List[ToolCall]] = None
    ) -> Message:
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> Message:
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)


# ============================================================
# Request / Response
# ============================================================

@dataclass
class ChatRequest:
    """
    Generic chat request handed to an adapter.

    Example:
        request = ChatRequest(
            model="claude-3-5-sonnet-20241022",
            messages=[Message.system("You are helpful."), Message.user("Hi")],
        )
    """
    model: str
    messages: List[Message] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    tools: Optional[List[ToolDefinition]] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class Usage:
    """
    Token usage snapshot.

    reasoning_tokens and cached_tokens are subset counts already included in
    prompt/completion tokens; they are broken out for attribution.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int = 0
    cached_tokens: int = 0

    def __post_init__(self):
        if self.total_tokens == 0:
            self.total_tokens = self.prompt_tokens + self.completion_tokens


@dataclass
class ChatResponse:
    """Completed response, from a one-shot call or from stream accumulation."""
    id: str = ""
    model: str = ""
    content: str = ""
    reasoning: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = ""
    usage: Optional[Usage] = None

    @classmethod
    def create(
        cls,
        content: str,
        model: str = "",
        usage: Optional[Usage] = None,
        finish_reason: str = FinishReason.STOP.value,
        tool_calls: Optional[List[ToolCall]] = None,
    ) -> ChatResponse:
        """Helper to create a response with a generated id."""
        return cls(
            id=f"chatcmpl-{uuid.uuid4().hex[:12]}",
            model=model,
            content=content,
            tool_calls=list(tool_calls or []),
            finish_reason=finish_reason,
            usage=usage,
        )


def message_to_dict(msg: Message) -> Dict[str, Any]:
    """Convert a message to the OpenAI-style wire dict."""
    result: Dict[str, Any] = {"role": msg.role.value, "content": msg.content}

    if msg.tool_call_id:
        result["tool_call_id"] = msg.tool_call_id

    if msg.tool_calls:
        result["tool_calls"] = [
            {
                "id": tc.id,
                "type": tc.type,
                "function": {
                    "name": tc.function.name,
                    "arguments": tc.function.arguments
                }
            }
            for tc in msg.tool_calls
        ]

    return result
