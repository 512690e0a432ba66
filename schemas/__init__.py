"""Pydantic schemas for the Business Assistant."""

from .context import QueryType, UserIntent, ToolContext
from .tools import (
    VERBATIM_MARKER,
    ToolDefinition,
    ToolCall,
    TextContent,
    ToolCallResult,
    ToolUsage,
    PlainText,
    VerbatimText,
    StructuredResult,
    ToolOutput,
    classify_tool_output,
)
from .events import ChunkType, ChunkEvent
from .responses import RouterOutput

__all__ = [
    "QueryType",
    "UserIntent",
    "ToolContext",
    "VERBATIM_MARKER",
    "ToolDefinition",
    "ToolCall",
    "TextContent",
    "ToolCallResult",
    "ToolUsage",
    "PlainText",
    "VerbatimText",
    "StructuredResult",
    "ToolOutput",
    "classify_tool_output",
    "ChunkType",
    "ChunkEvent",
    "RouterOutput",
]
