#!/usr/bin/env python3
"""Business Assistant CLI chat."""

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime
from typing import List

from config.settings import Settings
from llm.factory import create_llm_client
from memory.context_manager import SessionContextManager
from memory.models import HistoryMessage
from memory.sqlite_store import ConversationHistoryStore
from memory.ttl_store import InMemoryTTLStore, RedisTTLStore
from orchestrator import ConversationOrchestrator
from react.tools import MCPToolExecutor
from schemas.events import ChunkType

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit", "bye"}


def build_orchestrator(settings: Settings, in_memory: bool) -> ConversationOrchestrator:
    """Wire the orchestrator from settings."""
    store = InMemoryTTLStore() if in_memory else RedisTTLStore(settings.redis_host, settings.redis_port)
    executor = MCPToolExecutor(settings.mcp_server_command, settings.mcp_server_args)
    llm_client = create_llm_client(api_key=settings.anthropic_api_key, model=settings.llm_model)

    return ConversationOrchestrator(
        llm_client=llm_client,
        tool_executor=executor,
        context_manager=SessionContextManager(store, settings),
        settings=settings,
    )


def _history_entry(messages: List[HistoryMessage], role: str, content: str, tool_used=None) -> HistoryMessage:
    return HistoryMessage(
        id=len(messages) + 1,
        role=role,
        content=content,
        tool_used=tool_used,
        timestamp=datetime.now().isoformat(),
    )


async def chat(settings: Settings, user_id: str, session_id: str, in_memory: bool):
    """Interactive chat loop."""
    orchestrator = build_orchestrator(settings, in_memory)
    history_store = ConversationHistoryStore(settings.history_db_path)

    # Resumed sessions continue the stored conversation; save() replaces the whole row
    existing = history_store.get(user_id, session_id)
    history: List[HistoryMessage] = list(existing.messages) if existing else []
    title = existing.title if existing else None
    if existing:
        print(f"Resuming '{existing.title}' ({len(history)} messages)")

    await orchestrator.tool_executor.connect()
    await orchestrator.get_tools()
    print(f"Session {session_id}. Type 'exit' to quit.\n")

    try:
        while True:
            try:
                query = await asyncio.to_thread(input, "You: ")
            except EOFError:
                break
            query = query.strip()
            if not query:
                continue
            if query.lower() in EXIT_COMMANDS:
                break

            history.append(_history_entry(history, "user", query))
            print("Assistant: ", end="", flush=True)
            streamed = False

            async for chunk in orchestrator.process_query(query, session_id, user_id):
                if chunk.type == ChunkType.TEXT_DELTA:
                    print(chunk.delta, end="", flush=True)
                    streamed = True
                elif chunk.type == ChunkType.TOOL_EXECUTING and settings.verbose:
                    print(f"\n  [tool] {chunk.tool} {chunk.args}", flush=True)
                elif chunk.type == ChunkType.COMPLETE:
                    if not streamed:
                        print(chunk.response, end="")
                    print("\n")
                    tool_used = ", ".join(usage.name for usage in chunk.tools_used) or None
                    history.append(_history_entry(history, "assistant", chunk.response, tool_used))
                elif chunk.type == ChunkType.ERROR:
                    print(f"\n{chunk.error}\n", file=sys.stderr)
                    history.append(_history_entry(history, "error", chunk.error))

            await asyncio.to_thread(history_store.save, user_id, session_id, history, title)
    finally:
        await orchestrator.close()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Business Assistant - streamed, context-aware chat over business tools"
    )
    parser.add_argument(
        "--user",
        "-u",
        type=str,
        default="anonymous",
        help="User ID (default: anonymous)"
    )
    parser.add_argument(
        "--session",
        "-s",
        type=str,
        help="Session ID to resume (default: new session)"
    )
    parser.add_argument(
        "--mcp-command",
        type=str,
        help="MCP tool server command (overrides MCP_SERVER_COMMAND)"
    )
    parser.add_argument(
        "--mcp-args",
        nargs="*",
        help="MCP tool server arguments (overrides MCP_SERVER_ARGS)"
    )
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="Keep session context in process instead of Redis"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    settings = Settings(
        mcp_server_command=args.mcp_command,
        mcp_server_args=args.mcp_args,
        verbose=args.verbose,
    )

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.mcp_server_command:
        print("No MCP server configured. Set MCP_SERVER_COMMAND or pass --mcp-command.", file=sys.stderr)
        sys.exit(1)

    session_id = args.session or str(uuid.uuid4())

    try:
        asyncio.run(chat(settings, args.user, session_id, args.in_memory))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
