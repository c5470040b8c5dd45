"""
llmstream - Error Definitions

Error taxonomy for the streaming core, split the same way callers need to
react to it:

- Pre-stream errors: raised from the stream-opening call, no stream exists
- Mid-stream transport errors: raised from the stream's next step
- Mid-stream protocol errors: malformed payloads or provider error frames
- Cancellation: caller deadline or explicit cancel, observed cooperatively
- Retry exhaustion: one-shot path only, wraps the last underlying failure
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"
    CANCELLATION = "cancellation_error"


@dataclass
class ErrorDetails:
    """Full error information, serializable for logs and API payloads."""
    code: str
    message: str
    type: ErrorType

    provider: Optional[str] = None
    request_id: str = ""

    retryable: bool = False
    status_code: Optional[int] = None
    partial_content: Optional[str] = None

    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.request_id:
            result["request_id"] = self.request_id
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.partial_content:
            result["partial_content"] = self.partial_content
        if self.details:
            result["details"] = self.details

        return {"error": result}


class LLMStreamError(Exception):
    """Base exception for all llmstream errors."""

    def __init__(self, error: ErrorDetails):
        self.error = error
        # Set by ChatStream.collect() when the failure interrupted a stream
        self.partial_response = None
        super().__init__(error.message)

    @property
    def retryable(self) -> bool:
        return self.error.retryable


# ============================================================
# Pre-stream errors
# ============================================================

class UpstreamHTTPError(LLMStreamError):
    """Provider answered the stream request with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        body: str = "",
        provider: str = "",
        request_id: str = ""
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(
            ErrorDetails(
                code=f"upstream_{status_code}",
                message=f"non-2xx status {status_code}: {body}" if body else f"non-2xx status {status_code}",
                type=ErrorType.INFRA,
                provider=provider or None,
                request_id=request_id,
                retryable=status_code in (429, 500, 502, 503, 504, 529),
                status_code=status_code
            )
        )


class TransportConnectError(LLMStreamError):
    """The stream request could not be sent."""

    def __init__(self, message: str, provider: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="connection_failed",
                message=f"error sending stream request: {message}",
                type=ErrorType.INFRA,
                provider=provider or None,
                request_id=request_id,
                retryable=True
            )
        )


class MissingAPIKeyError(LLMStreamError):
    """Adapter has no credentials configured."""

    def __init__(self, provider: str, env_var: str = ""):
        hint = f" (set {env_var})" if env_var else ""
        super().__init__(
            ErrorDetails(
                code="missing_api_key",
                message=f"{provider} API key is not set{hint}",
                type=ErrorType.SEMANTIC,
                provider=provider,
                retryable=False
            )
        )


# ============================================================
# Mid-stream errors
# ============================================================

class StreamReadError(LLMStreamError):
    """Reading from the open connection failed."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(
            ErrorDetails(
                code="stream_read_error",
                message=f"SSE read error: {message}",
                type=ErrorType.INFRA,
                provider=provider or None,
                retryable=False
            )
        )


class StreamProtocolError(LLMStreamError):
    """A frame payload could not be parsed as the expected envelope."""

    def __init__(self, message: str, provider: str = "", payload: str = ""):
        details = {"payload": payload[:200]} if payload else {}
        super().__init__(
            ErrorDetails(
                code="stream_protocol_error",
                message=f"failed to parse stream event: {message}",
                type=ErrorType.INFRA,
                provider=provider or None,
                retryable=False,
                details=details
            )
        )


class ProviderStreamError(LLMStreamError):
    """The provider reported an error inside the stream."""

    def __init__(self, provider: str, message: str, error_type: str = ""):
        self.provider_message = message
        details = {"provider_error_type": error_type} if error_type else {}
        super().__init__(
            ErrorDetails(
                code="provider_stream_error",
                message=f"{provider} stream error: {message}",
                type=ErrorType.INFRA,
                provider=provider,
                retryable=False,
                details=details
            )
        )


class StreamConsumedError(LLMStreamError):
    """A stream was iterated or collected after it had already finished."""

    def __init__(self):
        super().__init__(
            ErrorDetails(
                code="stream_consumed",
                message="stream has already been consumed; open a new call to stream again",
                type=ErrorType.SEMANTIC,
                retryable=False
            )
        )


# ============================================================
# Cancellation
# ============================================================

class CancellationError(LLMStreamError):
    """Base class for cooperative cancellation conditions."""
    pass


class CallCancelledError(CancellationError):
    """The call context was cancelled explicitly."""

    def __init__(self, message: str = "context canceled"):
        super().__init__(
            ErrorDetails(
                code="canceled",
                message=message,
                type=ErrorType.CANCELLATION,
                retryable=False
            )
        )


class DeadlineExceededError(CancellationError):
    """The call context deadline elapsed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(
            ErrorDetails(
                code="deadline_exceeded",
                message=message,
                type=ErrorType.CANCELLATION,
                retryable=False
            )
        )


# ============================================================
# Retry
# ============================================================

class RetryExhaustedError(LLMStreamError):
    """
    All retry attempts were consumed without success.

    The last underlying failure is kept on ``last_error`` and chained as
    ``__cause__`` so callers can inspect the root cause.
    """

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            ErrorDetails(
                code="retry_exhausted",
                message=f"all retry attempts exhausted after {attempts - 1} retries: {last_error}",
                type=ErrorType.INFRA,
                retryable=False,
                details={"attempts": attempts}
            )
        )


def is_cancellation(error: BaseException) -> bool:
    """Check whether an error is a cancellation condition."""
    return isinstance(error, CancellationError)
