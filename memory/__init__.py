"""Session context and conversation history."""

from .models import (
    ActiveEntities,
    Conversation,
    ConversationMessage,
    HistoryMessage,
    Session,
    ToolUsageRecord,
)
from .ttl_store import TTLStore, InMemoryTTLStore, RedisTTLStore
from .context_manager import SessionContextManager
from .sqlite_store import ConversationHistoryStore, generate_title_from_messages

__all__ = [
    "ActiveEntities",
    "Conversation",
    "ConversationMessage",
    "HistoryMessage",
    "Session",
    "ToolUsageRecord",
    "TTLStore",
    "InMemoryTTLStore",
    "RedisTTLStore",
    "SessionContextManager",
    "ConversationHistoryStore",
    "generate_title_from_messages",
]
