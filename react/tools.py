"""Tool executors: the contract the orchestrator consumes, and an MCP client."""

import logging
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from schemas.tools import TextContent, ToolCallResult, ToolDefinition

logger = logging.getLogger(__name__)


class ToolExecutorError(Exception):
    """Raised when the executor is not connected or a tool is unknown."""


class ToolExecutor(ABC):
    """Abstract base class for tool executors."""

    @abstractmethod
    async def list_tools(self) -> List[ToolDefinition]:
        """List the tools the executor offers."""
        pass

    @abstractmethod
    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        """
        Invoke a tool.

        Args:
            name: Tool name
            arguments: JSON arguments

        Returns:
            ToolCallResult with text content blocks
        """
        pass

    async def close(self) -> None:
        """Release executor resources."""
        return None


class MCPToolExecutor(ToolExecutor):
    """Tool executor backed by an MCP server subprocess over stdio."""

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None
    ):
        """
        Initialize MCP executor.

        Args:
            command: Server executable (e.g. "node" or "python")
            args: Server arguments (e.g. the server script path)
            env: Optional environment for the subprocess
        """
        self.command = command
        self.args = args or []
        self.env = env
        self._session: Optional[ClientSession] = None
        self._exit_stack: Optional[AsyncExitStack] = None
        self._tools: List[ToolDefinition] = []

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Start the server subprocess and initialize the MCP session."""
        server_params = StdioServerParameters(command=self.command, args=self.args, env=self.env)

        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(stdio_client(server_params))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
        except Exception as e:
            await stack.aclose()
            logger.error(f"MCP connection to '{self.command}' failed: {e}")
            raise

        self._exit_stack = stack
        self._session = session
        logger.info(f"Connected to MCP server: {self.command} {' '.join(self.args)}")

    async def list_tools(self) -> List[ToolDefinition]:
        if not self._session:
            raise ToolExecutorError("Not connected to MCP server")

        result = await self._session.list_tools()
        self._tools = [
            ToolDefinition(
                name=tool.name,
                description=tool.description or "",
                input_schema=tool.inputSchema,
            )
            for tool in result.tools
        ]
        logger.info(f"MCP server offers {len(self._tools)} tools")
        return self._tools

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        if not self._session:
            raise ToolExecutorError("Not connected to MCP server")
        if self._tools and name not in {tool.name for tool in self._tools}:
            raise ToolExecutorError(f"Unknown tool: {name}")

        result = await self._session.call_tool(name, arguments)
        content = [
            TextContent(text=block.text)
            for block in result.content
            if getattr(block, "type", None) == "text"
        ]
        logger.debug(f"Tool {name} returned {len(content)} text block(s), isError={result.isError}")
        return ToolCallResult(content=content, is_error=bool(result.isError))

    async def close(self) -> None:
        if self._exit_stack:
            await self._exit_stack.aclose()
            logger.info("Disconnected from MCP server")
        self._exit_stack = None
        self._session = None
