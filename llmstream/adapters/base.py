"""
llmstream - Provider Adapter Base

Abstract base class for provider adapters.

Every adapter implements ``send_message``. Adapters that can deliver
incrementally also implement ``stream_message``; the capability tag is
resolved once at construction and tells the client which path to use.

The streaming adapters share one flow:
1. Build a provider payload from the generic request
2. Open the SSE transport (pre-stream errors raise here)
3. Return a ChatStream backed by the provider's translator
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Type

import httpx

from ..core.context import CallContext
from ..core.errors import MissingAPIKeyError
from ..core.http_client import open_event_stream
from ..core.models import ChatRequest, ChatResponse, Provider, message_to_dict
from ..observability.logging import get_logger
from ..streaming.normalizer import TranslatingSource
from ..streaming.sse import SSEFrameReader
from ..streaming.stream import ChatStream


logger = get_logger("llmstream.adapters")


class ProviderCapability(str, Enum):
    """How an adapter can deliver a response."""
    STREAMING = "streaming"
    ONE_SHOT = "one_shot"


@dataclass
class AdapterConfig:
    """Configuration for a provider adapter."""
    api_key: str = ""
    base_url: Optional[str] = None
    timeout: float = 60.0
    # Custom httpx transport (e.g. httpx.MockTransport in tests)
    transport: Optional[httpx.AsyncBaseTransport] = None


class BaseAdapter(ABC):
    """
    Abstract base class for provider adapters.

    The adapter is responsible for:
    1. Converting the generic request into the provider format
    2. Making the call
    3. Converting the provider reply into events or a ChatResponse
    """

    provider: Provider

    def __init__(self, config: Optional[AdapterConfig] = None):
        self.config = config or AdapterConfig()
        self.capability = self._resolve_capability()

    def _resolve_capability(self) -> ProviderCapability:
        if type(self).stream_message is not BaseAdapter.stream_message:
            return ProviderCapability.STREAMING
        return ProviderCapability.ONE_SHOT

    @property
    def supports_streaming(self) -> bool:
        return self.capability == ProviderCapability.STREAMING

    @abstractmethod
    async def send_message(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        """
        Generate a complete response.

        Args:
            request: Generic chat request
            ctx: Call context (deadline, cancellation, observer)

        Returns:
            The finished response
        """
        pass

    async def stream_message(self, request: ChatRequest, ctx: CallContext) -> ChatStream:
        """
        Open a streaming response.

        Only adapters with the STREAMING capability override this. Errors
        raised here are pre-stream errors; no stream exists yet.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support streaming")

    async def close(self) -> None:
        """Release adapter resources."""
        pass


class StreamingAdapter(BaseAdapter):
    """
    Base for adapters that talk SSE over httpx.

    Subclasses provide the payload, path, auth headers and translator class.
    ``send_message`` collects the adapter's own stream.
    """

    DEFAULT_BASE_URL = ""
    API_KEY_ENV = ""
    translator: Type[TranslatingSource]

    def __init__(self, config: Optional[AdapterConfig] = None):
        super().__init__(config)
        self.base_url = self.config.base_url or self.DEFAULT_BASE_URL
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=self.config.timeout,
            transport=self.config.transport,
        )

    async def stream_message(self, request: ChatRequest, ctx: CallContext) -> ChatStream:
        """Open the provider's SSE stream and return a translated ChatStream."""
        if not self.config.api_key:
            raise MissingAPIKeyError(self.provider.value, self.API_KEY_ENV)

        ctx.check()
        payload = self._build_stream_payload(request)

        logger.debug(
            "opening stream",
            provider=self.provider.value,
            model=request.model,
            request_id=ctx.request_id,
        )

        response = await ctx.bound(open_event_stream(
            self.client,
            "POST",
            self._stream_path(request),
            json=payload,
            headers=self._auth_headers(),
            provider=self.provider.value,
            request_id=ctx.request_id,
        ))

        reader = SSEFrameReader(response, provider=self.provider.value)
        return ChatStream(
            self.translator(reader, ctx),
            model=request.model,
            response_id=f"chatcmpl-{uuid.uuid4().hex[:12]}",
            provider=self.provider.value,
        )

    async def send_message(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        """Generate a complete response by collecting the stream."""
        stream = await self.stream_message(request, ctx)
        return await stream.collect()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # ============================================================
    # Provider hooks
    # ============================================================

    @abstractmethod
    def _build_stream_payload(self, request: ChatRequest) -> Dict[str, Any]:
        pass

    @abstractmethod
    def _stream_path(self, request: ChatRequest) -> str:
        pass

    @abstractmethod
    def _auth_headers(self) -> Dict[str, str]:
        pass

    # ============================================================
    # Helper methods for subclasses
    # ============================================================

    def _normalize_messages(self, request: ChatRequest) -> List[Dict[str, Any]]:
        """OpenAI-style message dicts. Override in subclass if needed."""
        return [message_to_dict(msg) for msg in request.messages]

    def _normalize_tools(self, request: ChatRequest) -> Optional[List[Dict[str, Any]]]:
        """OpenAI-style tool dicts. Override in subclass if needed."""
        if not request.tools:
            return None

        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters
                }
            }
            for tool in request.tools
        ]
