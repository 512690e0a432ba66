"""Base LLM client interface."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import AsyncIterator, Optional, List
from pydantic import BaseModel

from schemas.tools import ToolCall, ToolDefinition


class LLMClientError(Exception):
    """Raised when the LLM client cannot serve a request (e.g. not configured)."""


class Message(BaseModel):
    """Chat message."""
    role: str  # "user", "assistant", "tool"
    content: str = ""
    tool_call_id: Optional[str] = None  # For tool responses
    tool_calls: Optional[List[ToolCall]] = None  # For assistant messages with tool calls
    is_error: bool = False  # For tool responses


class StreamEventType(str, Enum):
    """Provider-neutral streaming event types."""
    MESSAGE_START = "message_start"
    BLOCK_START = "block_start"
    TEXT_DELTA = "text_delta"
    INPUT_JSON_DELTA = "input_json_delta"
    BLOCK_STOP = "block_stop"
    MESSAGE_DELTA = "message_delta"
    MESSAGE_STOP = "message_stop"


class StreamEvent(BaseModel):
    """One event of a streamed model turn."""
    type: StreamEventType
    index: int = 0
    block_type: Optional[str] = None  # "text" or "tool_use" on BLOCK_START
    tool_id: Optional[str] = None
    tool_name: Optional[str] = None
    text: str = ""
    partial_json: str = ""
    stop_reason: Optional[str] = None


class BaseLLMClient(ABC):
    """Abstract base class for streaming LLM clients."""

    @abstractmethod
    async def open_stream(
        self,
        messages: List[Message],
        system: str,
        tools: Optional[List[ToolDefinition]] = None,
        max_tokens: int = 2000
    ) -> AsyncIterator[StreamEvent]:
        """
        Start a streamed completion.

        The request is sent before this returns, so request-level failures
        (overload, rate limits) raise here rather than mid-iteration.

        Args:
            messages: Conversation, first message from the user
            system: System prompt
            tools: Optional tools offered to the model
            max_tokens: Maximum tokens in response

        Returns:
            Async iterator of StreamEvents
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass
