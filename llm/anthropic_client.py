"""Anthropic Claude streaming client implementation."""

import os
import logging
from typing import Any, AsyncIterator, Dict, Optional, List

import anthropic

from schemas.tools import ToolDefinition
from .base_client import BaseLLMClient, LLMClientError, Message, StreamEvent, StreamEventType

logger = logging.getLogger(__name__)


class AnthropicClient(BaseLLMClient):
    """Anthropic Claude client implementation."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-sonnet-4-20250514)
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            self.client = anthropic.AsyncAnthropic(api_key=self.api_key)
            logger.info(f"Anthropic client initialized with model: {self.model}")
        else:
            logger.warning("No Anthropic API key provided")

    @staticmethod
    def _to_anthropic_messages(messages: List[Message]) -> List[Dict[str, Any]]:
        """Convert messages to Anthropic content blocks, merging consecutive same-role turns."""
        converted: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == "tool":
                role = "user"
                blocks = [{
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                    "is_error": msg.is_error,
                }]
            elif msg.role == "assistant" and msg.tool_calls:
                role = "assistant"
                blocks = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.input,
                    })
            else:
                role = msg.role
                blocks = [{"type": "text", "text": msg.content}]

            if converted and converted[-1]["role"] == role:
                converted[-1]["content"].extend(blocks)
            else:
                converted.append({"role": role, "content": blocks})

        return converted

    async def open_stream(
        self,
        messages: List[Message],
        system: str,
        tools: Optional[List[ToolDefinition]] = None,
        max_tokens: int = 2000
    ) -> AsyncIterator[StreamEvent]:
        """Send a streaming request to Anthropic."""
        if not self.client:
            raise LLMClientError("Anthropic client not initialized. Check API key.")

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": self._to_anthropic_messages(messages),
            "stream": True,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = [tool.to_anthropic() for tool in tools]

        try:
            stream = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise

        return self._translate(stream)

    async def _translate(self, stream) -> AsyncIterator[StreamEvent]:
        """Map raw Anthropic stream events to StreamEvents."""
        async for event in stream:
            if event.type == "message_start":
                yield StreamEvent(type=StreamEventType.MESSAGE_START)

            elif event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    yield StreamEvent(
                        type=StreamEventType.BLOCK_START,
                        index=event.index,
                        block_type="tool_use",
                        tool_id=block.id,
                        tool_name=block.name,
                    )
                else:
                    yield StreamEvent(
                        type=StreamEventType.BLOCK_START,
                        index=event.index,
                        block_type=block.type,
                    )

            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    yield StreamEvent(type=StreamEventType.TEXT_DELTA, index=event.index, text=delta.text)
                elif delta.type == "input_json_delta":
                    yield StreamEvent(
                        type=StreamEventType.INPUT_JSON_DELTA,
                        index=event.index,
                        partial_json=delta.partial_json,
                    )

            elif event.type == "content_block_stop":
                yield StreamEvent(type=StreamEventType.BLOCK_STOP, index=event.index)

            elif event.type == "message_delta":
                yield StreamEvent(type=StreamEventType.MESSAGE_DELTA, stop_reason=event.delta.stop_reason)

            elif event.type == "message_stop":
                yield StreamEvent(type=StreamEventType.MESSAGE_STOP)

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "anthropic"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
