"""Chunk events streamed from the orchestrator to its caller."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .tools import ToolUsage


class ChunkType(str, Enum):
    """Chunk event types."""
    QUERY_START = "query_start"
    MESSAGE_START = "message_start"
    CONTENT_START = "content_start"
    TOOL_START = "tool_start"
    TEXT_DELTA = "text_delta"
    TOOL_INPUT_DELTA = "tool_input_delta"
    TOOL_EXECUTING = "tool_executing"
    TOOL_RESULT = "tool_result"
    MESSAGE_DELTA = "message_delta"
    COMPLETE = "complete"
    ERROR = "error"


class BaseChunk(BaseModel):
    """Base model for all chunk events; serialises with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: ChunkType

    def to_wire(self) -> Dict[str, Any]:
        """Dict form for the transport layer."""
        return self.model_dump(mode="json", by_alias=True)


class ToolRef(BaseModel):
    """Tool identity inside a tool_start event."""
    name: str
    id: str


class QueryStartChunk(BaseChunk):
    type: Literal[ChunkType.QUERY_START] = ChunkType.QUERY_START
    query_type: str
    tools_available: int


class MessageStartChunk(BaseChunk):
    type: Literal[ChunkType.MESSAGE_START] = ChunkType.MESSAGE_START


class ContentStartChunk(BaseChunk):
    type: Literal[ChunkType.CONTENT_START] = ChunkType.CONTENT_START
    content_type: str = "text"


class ToolStartChunk(BaseChunk):
    type: Literal[ChunkType.TOOL_START] = ChunkType.TOOL_START
    tool: ToolRef


class TextDeltaChunk(BaseChunk):
    type: Literal[ChunkType.TEXT_DELTA] = ChunkType.TEXT_DELTA
    delta: str
    accumulated: str
    is_verbatim: bool = False


class ToolInputDeltaChunk(BaseChunk):
    type: Literal[ChunkType.TOOL_INPUT_DELTA] = ChunkType.TOOL_INPUT_DELTA
    delta: str


class ToolExecutingChunk(BaseChunk):
    type: Literal[ChunkType.TOOL_EXECUTING] = ChunkType.TOOL_EXECUTING
    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolResultChunk(BaseChunk):
    type: Literal[ChunkType.TOOL_RESULT] = ChunkType.TOOL_RESULT
    tool: str
    result: List[Dict[str, Any]] = Field(default_factory=list)
    cached: bool = False


class MessageDeltaChunk(BaseChunk):
    type: Literal[ChunkType.MESSAGE_DELTA] = ChunkType.MESSAGE_DELTA
    stop_reason: str


class CompleteChunk(BaseChunk):
    type: Literal[ChunkType.COMPLETE] = ChunkType.COMPLETE
    response: str
    tools_used: List[ToolUsage] = Field(default_factory=list)
    query_type: Optional[str] = None


class ErrorChunk(BaseChunk):
    type: Literal[ChunkType.ERROR] = ChunkType.ERROR
    error: str


ChunkEvent = Union[
    QueryStartChunk,
    MessageStartChunk,
    ContentStartChunk,
    ToolStartChunk,
    TextDeltaChunk,
    ToolInputDeltaChunk,
    ToolExecutingChunk,
    ToolResultChunk,
    MessageDeltaChunk,
    CompleteChunk,
    ErrorChunk,
]
