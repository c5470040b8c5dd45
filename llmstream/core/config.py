"""
llmstream - Configuration

Dataclass configs with defaults and environment loaders.

Environment:
    LLMSTREAM_TIMEOUT        per-call timeout in seconds (unset = no timeout)
    LLMSTREAM_MAX_RETRIES    one-shot retry count (default 3)
    LLMSTREAM_LOG_LEVEL      minimal | standard | verbose (default standard)
    ANTHROPIC_API_KEY, GOOGLE_API_KEY, OPENAI_API_KEY
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


# Provider name -> environment variable holding its key
API_KEY_ENV_VARS: Dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class LogLevel(str, Enum):
    """Verbosity of the logging middleware."""
    MINIMAL = "minimal"
    STANDARD = "standard"
    VERBOSE = "verbose"


@dataclass
class RetryConfig:
    """Configuration for one-shot retry behavior."""
    max_retries: int = 3
    initial_backoff: float = 1.0  # seconds
    max_backoff: float = 30.0  # seconds
    backoff_factor: float = 2.0
    jitter_fraction: float = 0.1  # 0 disables jitter

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff durations must be >= 0")
        if self.backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")
        if not 0.0 <= self.jitter_fraction <= 1.0:
            raise ValueError("jitter_fraction must be between 0 and 1")


@dataclass
class ClientConfig:
    """Settings used to assemble the default middleware stack."""
    timeout: Optional[float] = None
    retry: RetryConfig = field(default_factory=RetryConfig)
    log_level: LogLevel = LogLevel.STANDARD

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load configuration from LLMSTREAM_* environment variables."""
        timeout = _parse_float("LLMSTREAM_TIMEOUT")
        if timeout is not None and timeout <= 0:
            raise ValueError("LLMSTREAM_TIMEOUT must be positive")

        max_retries = _parse_int("LLMSTREAM_MAX_RETRIES")
        if max_retries is not None and max_retries < 0:
            raise ValueError("LLMSTREAM_MAX_RETRIES must be >= 0")
        retry = RetryConfig() if max_retries is None else RetryConfig(max_retries=max_retries)

        raw_level = os.getenv("LLMSTREAM_LOG_LEVEL", "").strip().lower()
        if raw_level:
            try:
                log_level = LogLevel(raw_level)
            except ValueError:
                raise ValueError(
                    f"LLMSTREAM_LOG_LEVEL must be one of minimal, standard, verbose; got {raw_level!r}"
                ) from None
        else:
            log_level = LogLevel.STANDARD

        return cls(timeout=timeout, retry=retry, log_level=log_level)


def get_api_key(provider: str) -> Optional[str]:
    """Read the API key for a provider from its environment variable."""
    env_var = API_KEY_ENV_VARS.get(provider)
    if env_var is None:
        return None
    return os.getenv(env_var) or None


def _parse_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number; got {raw!r}") from None


def _parse_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer; got {raw!r}") from None
