"""Pieces of the model -> tool -> model loop: stream accumulation and tool execution."""

import json
import logging
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from config.settings import Settings
from llm.base_client import StreamEvent, StreamEventType
from memory.context_manager import SessionContextManager
from schemas.events import (
    ChunkEvent,
    ContentStartChunk,
    MessageDeltaChunk,
    MessageStartChunk,
    TextDeltaChunk,
    ToolInputDeltaChunk,
    ToolRef,
    ToolStartChunk,
)
from schemas.tools import ToolCall, ToolCallResult
from .tools import ToolExecutor

logger = logging.getLogger(__name__)


class StreamAccumulator:
    """
    Rebuilds one streamed model turn from StreamEvents.

    Text deltas are accumulated and forwarded; tool input fragments are
    concatenated per block and speculatively parsed after each fragment. A
    block whose input is still unparsable when it closes is logged and runs
    with an empty object.
    """

    def __init__(self, accumulated: str = ""):
        """
        Args:
            accumulated: Text already streamed earlier in the same query
        """
        self.accumulated = accumulated
        self.text = ""
        self.tool_calls: List[ToolCall] = []
        self.stop_reason: Optional[str] = None
        self._open_calls: Dict[int, ToolCall] = {}

    def feed(self, event: StreamEvent) -> List[ChunkEvent]:
        """Apply one event and return the chunks to emit for it."""
        if event.type == StreamEventType.MESSAGE_START:
            return [MessageStartChunk()]

        if event.type == StreamEventType.BLOCK_START:
            if event.block_type == "tool_use":
                call = ToolCall(id=event.tool_id or "", name=event.tool_name or "")
                self._open_calls[event.index] = call
                return [ToolStartChunk(tool=ToolRef(name=call.name, id=call.id))]
            return [ContentStartChunk(content_type=event.block_type or "text")]

        if event.type == StreamEventType.TEXT_DELTA:
            self.text += event.text
            self.accumulated += event.text
            return [TextDeltaChunk(delta=event.text, accumulated=self.accumulated)]

        if event.type == StreamEventType.INPUT_JSON_DELTA:
            call = self._open_calls.get(event.index)
            if call is None:
                logger.warning(f"Tool input fragment for unknown block {event.index}")
                return []
            call.input_json += event.partial_json
            self._try_parse(call)
            return [ToolInputDeltaChunk(delta=event.partial_json)]

        if event.type == StreamEventType.BLOCK_STOP:
            call = self._open_calls.pop(event.index, None)
            if call is not None:
                self._finalize(call)
                self.tool_calls.append(call)
            return []

        if event.type == StreamEventType.MESSAGE_DELTA:
            if event.stop_reason:
                self.stop_reason = event.stop_reason
                return [MessageDeltaChunk(stop_reason=event.stop_reason)]
            return []

        return []

    @staticmethod
    def _try_parse(call: ToolCall) -> bool:
        try:
            parsed = json.loads(call.input_json)
        except json.JSONDecodeError:
            return False  # Incomplete; wait for the next fragment
        if isinstance(parsed, dict):
            call.input = parsed
            return True
        return False

    def _finalize(self, call: ToolCall):
        if not call.input_json.strip():
            call.input = {}
            return
        if not self._try_parse(call):
            logger.warning(f"Unparsable input for tool {call.name}, using empty arguments: {call.input_json!r}")
            call.input = {}


class ToolRunOutcome(BaseModel):
    """Result of running one tool call."""
    result: ToolCallResult
    args: Dict = Field(default_factory=dict)
    cached: bool = False


class ToolRunner:
    """Runs tool calls through the cache, argument enhancement and the executor."""

    def __init__(
        self,
        executor: ToolExecutor,
        context_manager: SessionContextManager,
        settings: Optional[Settings] = None
    ):
        self.executor = executor
        self.context_manager = context_manager
        self.settings = settings or Settings()

    async def run(self, call: ToolCall, session_id: str, query: str) -> ToolRunOutcome:
        """
        Execute one tool call.

        Cached results are reused unless the tool is time-sensitive. On a miss
        the arguments are enhanced from session context, the tool is invoked,
        and the result is cached and recorded. Executor failures become error
        results; they never raise.

        Args:
            call: Tool call from the model
            session_id: Session ID
            query: Current user query (for reference cues)

        Returns:
            ToolRunOutcome
        """
        time_sensitive = self.settings.is_time_sensitive(call.name)

        if not time_sensitive:
            cached = await self.context_manager.get_cached_result(call.name, call.input)
            if cached is not None:
                logger.info(f"Using cached result for {call.name}")
                return ToolRunOutcome(result=cached, args=call.input, cached=True)

        args = await self.context_manager.enhance_tool_arguments(session_id, call.name, call.input, query)

        try:
            result = await self.executor.call_tool(call.name, args)
        except Exception as e:
            logger.error(f"Error calling tool {call.name}: {e}")
            return ToolRunOutcome(result=ToolCallResult.from_error(e), args=args)

        if not time_sensitive:
            await self.context_manager.cache_tool_result(
                call.name, args, result, self.settings.cache_ttl_for(call.name)
            )
        await self.context_manager.record_tool_usage(session_id, call.name, args, result)

        return ToolRunOutcome(result=result, args=args)
