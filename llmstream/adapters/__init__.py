"""
llmstream Adapters Module

Provider-specific adapters that translate between the generic request and
event model and each provider's native streaming API.
"""

from dataclasses import replace
from typing import Optional

from .base import AdapterConfig, BaseAdapter, ProviderCapability, StreamingAdapter
from .anthropic_adapter import AnthropicAdapter, AnthropicStreamTranslator
from .google_adapter import GeminiStreamTranslator, GoogleAdapter
from .openai_adapter import OpenAIAdapter, OpenAIStreamTranslator
from .stub_adapter import StubAdapter
from ..core.config import get_api_key

__all__ = [
    "AdapterConfig",
    "BaseAdapter",
    "ProviderCapability",
    "StreamingAdapter",
    "AnthropicAdapter",
    "AnthropicStreamTranslator",
    "GoogleAdapter",
    "GeminiStreamTranslator",
    "OpenAIAdapter",
    "OpenAIStreamTranslator",
    "StubAdapter",
    "get_adapter",
]


def get_adapter(provider: str, config: Optional[AdapterConfig] = None) -> BaseAdapter:
    """
    Factory function to get the appropriate adapter for a provider.

    Args:
        provider: Provider name ("openai", "anthropic", "google", "stub")
        config: Adapter configuration; the API key falls back to the
            provider's environment variable when not set

    Returns:
        Configured adapter instance

    Raises:
        ValueError: If provider is not supported
    """
    adapters = {
        "openai": OpenAIAdapter,
        "anthropic": AnthropicAdapter,
        "google": GoogleAdapter,
        "stub": StubAdapter,
    }

    name = provider.lower()
    adapter_class = adapters.get(name)
    if not adapter_class:
        raise ValueError(f"Unsupported provider: {provider}")

    config = config or AdapterConfig()
    if not config.api_key:
        config = replace(config, api_key=get_api_key(name) or "")

    return adapter_class(config)
