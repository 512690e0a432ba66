"""Application settings."""

import os
from typing import Optional, List
from pydantic import BaseModel, Field


# Field name -> environment variable
_ENV_VARS = {
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "llm_model": "LLM_MODEL",
    "redis_host": "REDIS_HOST",
    "redis_port": "REDIS_PORT",
    "session_ttl_seconds": "SESSION_TTL_SECONDS",
    "max_messages": "MAX_MESSAGES",
    "max_tool_history": "MAX_TOOL_HISTORY",
    "compression_threshold": "COMPRESSION_THRESHOLD",
    "entity_ttl_seconds": "ENTITY_TTL_SECONDS",
    "rate_limit_max_requests": "RATE_LIMIT_MAX_REQUESTS",
    "rate_limit_window_seconds": "RATE_LIMIT_WINDOW_SECONDS",
    "retry_max_retries": "RETRY_MAX_RETRIES",
    "retry_base_delay": "RETRY_BASE_DELAY",
    "search_cache_ttl": "SEARCH_CACHE_TTL",
    "detail_cache_ttl": "DETAIL_CACHE_TTL",
    "time_sensitive_tools": "TIME_SENSITIVE_TOOLS",
    "mcp_server_command": "MCP_SERVER_COMMAND",
    "mcp_server_args": "MCP_SERVER_ARGS",
    "history_db_path": "HISTORY_DB_PATH",
    "log_level": "LOG_LEVEL",
}

# Comma separated in the environment
_LIST_FIELDS = {"time_sensitive_tools", "mcp_server_args"}


class Settings(BaseModel):
    """Application configuration settings."""

    # Upstream model
    anthropic_api_key: Optional[str] = None
    llm_model: Optional[str] = None  # Override default model

    # TTL store (Redis)
    redis_host: str = "localhost"
    redis_port: int = 6379

    # Session context
    session_ttl_seconds: int = 24 * 60 * 60
    max_messages: int = 15
    max_tool_history: int = 5
    compression_threshold: int = 500
    entity_ttl_seconds: int = 10 * 60

    # Rate limiting and retries
    rate_limit_max_requests: int = 15
    rate_limit_window_seconds: float = 60.0
    rate_limit_min_interval: float = 0.1
    retry_max_retries: int = 3
    retry_base_delay: float = 1.0

    # Tool result cache
    search_cache_ttl: int = 300
    detail_cache_ttl: int = 3600
    time_sensitive_tools: List[str] = Field(default_factory=lambda: ["date-utility"])

    # Orchestration
    max_tool_iterations: int = 10
    verbatim_line_delay: float = 0.01

    # Tool server (MCP over stdio)
    mcp_server_command: Optional[str] = None
    mcp_server_args: List[str] = Field(default_factory=list)

    # Long-term conversation history
    history_db_path: str = "data/conversations.db"

    # Logging
    log_level: str = "INFO"
    verbose: bool = False

    def __init__(self, **data):
        data = {key: value for key, value in data.items() if value is not None}

        # Auto-load from environment if not provided
        for field, env_var in _ENV_VARS.items():
            if data.get(field) is not None:
                continue
            value = os.environ.get(env_var)
            if value is None or value == "":
                continue
            if field in _LIST_FIELDS:
                value = [item.strip() for item in value.split(",") if item.strip()]
            data[field] = value

        super().__init__(**data)

    def cache_ttl_for(self, tool_name: str) -> int:
        """Cache TTL in seconds for a tool; 0 means never cache."""
        if self.is_time_sensitive(tool_name):
            return 0
        if "search" in tool_name.lower():
            return self.search_cache_ttl
        return self.detail_cache_ttl

    def is_time_sensitive(self, tool_name: str) -> bool:
        """Whether results of this tool must never be cached."""
        return tool_name in self.time_sensitive_tools
