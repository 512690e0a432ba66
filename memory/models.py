"""Session context data models."""

import time
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, model_validator


Role = Literal["user", "assistant", "system"]


class ConversationMessage(BaseModel):
    """A single message in the live session context."""
    role: Role
    content: str
    timestamp: float = Field(default_factory=time.time)
    tools_used: Optional[List[str]] = None
    summary: Optional[str] = None  # Set on synthetic messages standing in for pruned history


class ToolUsageRecord(BaseModel):
    """Digest of one tool call; the full result is never stored."""
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result_summary: str = ""
    result_ids: List[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)


class ActiveEntities(BaseModel):
    """Cross-turn working memory: one most-recent slot per entity type."""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    awaiting_address_confirmation: bool = False
    awaiting_address_customer_id: Optional[str] = None
    last_updated: float = Field(default_factory=time.time)

    @model_validator(mode="after")
    def _check_confirmation_pair(self) -> "ActiveEntities":
        if bool(self.awaiting_address_confirmation) != bool(self.awaiting_address_customer_id):
            raise ValueError(
                "awaiting_address_confirmation and awaiting_address_customer_id must be set together"
            )
        return self

    def touch(self):
        self.last_updated = time.time()

    def is_stale(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.last_updated > ttl_seconds

    def begin_address_confirmation(self, customer_id: str, customer_name: Optional[str] = None):
        """Mark that the last turn asked whether to look up this customer's address."""
        if not customer_id:
            raise ValueError("customer_id is required to await an address confirmation")
        self.customer_id = customer_id
        if customer_name:
            self.customer_name = customer_name
        self.awaiting_address_confirmation = True
        self.awaiting_address_customer_id = customer_id
        self.touch()

    def clear_address_confirmation(self):
        self.awaiting_address_confirmation = False
        self.awaiting_address_customer_id = None
        self.touch()


class Session(BaseModel):
    """Live, TTL-bound conversation context."""
    session_id: str
    user_id: str = "anonymous"
    messages: List[ConversationMessage] = Field(default_factory=list)
    tool_usage_history: List[ToolUsageRecord] = Field(default_factory=list)
    active_entities: ActiveEntities = Field(default_factory=ActiveEntities)
    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    last_activity: float = Field(default_factory=time.time)


class HistoryMessage(BaseModel):
    """A message as kept in the long-term conversation history."""
    id: int
    role: Literal["user", "assistant", "system", "error"]
    content: str
    tool_used: Optional[str] = None
    timestamp: str
    streaming: Optional[bool] = None


class Conversation(BaseModel):
    """A saved conversation."""
    user_id: str
    session_id: str
    title: str = ""
    messages: List[HistoryMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
