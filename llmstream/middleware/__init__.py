"""
llmstream Middleware Module

Composable wrappers around the one-shot and streaming call paths.
"""

from .chain import Middleware, SendFn, StreamFn, build_send_chain, build_stream_chain
from .logging import logging_middleware
from .observability import observability_middleware
from .retry import calculate_backoff, default_retryable, retry_middleware
from .timeout import timeout_middleware

__all__ = [
    "Middleware",
    "SendFn",
    "StreamFn",
    "build_send_chain",
    "build_stream_chain",
    "logging_middleware",
    "observability_middleware",
    "calculate_backoff",
    "default_retryable",
    "retry_middleware",
    "timeout_middleware",
]
