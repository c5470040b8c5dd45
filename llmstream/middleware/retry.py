"""
llmstream - Retry Middleware

Exponential backoff with jitter for the one-shot path.

Streams are never retried: a partially delivered stream cannot be replayed
without duplicating output, so this middleware has no stream wrapper.
"""

import random
from typing import Callable, Optional

from .chain import Middleware, SendFn
from ..core.config import RetryConfig
from ..core.context import CallContext
from ..core.errors import RetryExhaustedError, is_cancellation
from ..core.models import ChatRequest, ChatResponse
from ..observability.logging import get_logger


logger = get_logger("llmstream.retry")

RETRYABLE_STATUS_MARKERS = ("429", "500", "502", "503", "529")

RetryPredicate = Callable[[BaseException], bool]


def default_retryable(error: BaseException) -> bool:
    """Retry when the error text mentions a transient status code."""
    message = str(error)
    return any(code in message for code in RETRYABLE_STATUS_MARKERS)


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Delay before retry ``attempt`` (0-based), in seconds.

    Base is ``initial * factor**attempt`` capped at ``max_backoff``; jitter is
    added on top, uniform in ``[0, base * jitter_fraction)``.
    """
    base = min(config.initial_backoff * (config.backoff_factor ** attempt), config.max_backoff)
    if config.jitter_fraction > 0:
        base += random.uniform(0, base * config.jitter_fraction)
    return base


def retry_middleware(
    config: Optional[RetryConfig] = None,
    retryable: Optional[RetryPredicate] = None,
) -> Middleware:
    """
    Create a retry middleware.

    Args:
        config: Backoff settings (defaults: 3 retries, 1s initial, 30s cap,
            factor 2.0, 10% jitter)
        retryable: Predicate deciding whether an error is worth retrying
    """
    config = config or RetryConfig()
    is_retryable = retryable or default_retryable

    def send(next_fn: SendFn) -> SendFn:
        async def call(request: ChatRequest, ctx: CallContext) -> ChatResponse:
            attempt = 0
            while True:
                try:
                    return await next_fn(request, ctx)
                except Exception as e:
                    if is_cancellation(e) or not is_retryable(e):
                        raise
                    if attempt >= config.max_retries:
                        raise RetryExhaustedError(attempt + 1, e) from e

                    delay = calculate_backoff(attempt, config)
                    attempt += 1
                    logger.warning(
                        "llm send retry",
                        model=request.model,
                        request_id=ctx.request_id,
                        attempt=attempt,
                        max_retries=config.max_retries,
                        delay_ms=round(delay * 1000, 2),
                        error=str(e),
                    )
                    await ctx.sleep(delay)
        return call

    return Middleware(send=send, stream=None, name="retry")
