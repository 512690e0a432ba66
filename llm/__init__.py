"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, LLMClientError, Message, StreamEvent, StreamEventType
from .factory import create_llm_client, LLMProvider
from .rate_limiter import RateLimiter, RetryManager, is_rate_limit_error

__all__ = [
    "BaseLLMClient",
    "LLMClientError",
    "Message",
    "StreamEvent",
    "StreamEventType",
    "create_llm_client",
    "LLMProvider",
    "RateLimiter",
    "RetryManager",
    "is_rate_limit_error",
]
