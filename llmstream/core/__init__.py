"""
llmstream Core Module

Generic data models, error taxonomy, call context and configuration.
"""

from .models import (
    # Enums
    Provider,
    Role,
    FinishReason,

    # Messages
    Message,
    message_to_dict,

    # Tool calling
    ToolCall,
    ToolDefinition,
    FunctionCall,

    # Request / response
    ChatRequest,
    ChatResponse,
    Usage,
)
from .errors import (
    ErrorType,
    ErrorDetails,
    LLMStreamError,
    UpstreamHTTPError,
    TransportConnectError,
    MissingAPIKeyError,
    StreamReadError,
    StreamProtocolError,
    ProviderStreamError,
    StreamConsumedError,
    CancellationError,
    CallCancelledError,
    DeadlineExceededError,
    RetryExhaustedError,
    is_cancellation,
)
from .context import CallContext
from .config import ClientConfig, LogLevel, RetryConfig, get_api_key
