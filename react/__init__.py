"""Tool execution and the streamed tool-call loop."""

from .loop import StreamAccumulator, ToolRunner, ToolRunOutcome
from .tools import ToolExecutor, ToolExecutorError, MCPToolExecutor

__all__ = [
    "StreamAccumulator",
    "ToolRunner",
    "ToolRunOutcome",
    "ToolExecutor",
    "ToolExecutorError",
    "MCPToolExecutor",
]
