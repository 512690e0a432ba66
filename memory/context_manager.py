"""Session context manager: live, TTL-bound conversation state and tool cache."""

import hashlib
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config.settings import Settings
from schemas.context import ToolContext, UserIntent
from schemas.tools import ToolCallResult
from .compression import compress_content, prune_messages
from .entity_extractor import (
    EntityUpdate,
    extract_entities,
    extract_result_ids,
    summarize_tool_result,
)
from .models import ActiveEntities, ConversationMessage, Session, ToolUsageRecord
from .ttl_store import TTLStore

logger = logging.getLogger(__name__)


class SessionContextManager:
    """Owns session lifecycle, pruning, tool history, active entities and the result cache."""

    REFERENCE_CUES = ["his", "her", "their", "this", "that", "the same"]
    CUSTOMER_ARG_TOOLS = re.compile(r"(customer|address|contact|details|info|find)", re.IGNORECASE)
    CUSTOMER_SEARCH_TOOLS = {"searchEstimateList", "searchInvoiceList"}
    PRODUCT_DETAIL_TOOLS = {"getProductDetails"}

    # Generate tool context
    RECENT_MESSAGE_WINDOW = 5
    MAX_QUERY_CHARS = 100
    INTENT_WINDOW = 3

    def __init__(self, store: TTLStore, settings: Optional[Settings] = None):
        """
        Initialize the context manager.

        Args:
            store: TTL-capable key-value store
            settings: Application settings (defaults loaded from environment)
        """
        self.store = store
        self.settings = settings or Settings()
        self._cue_patterns = [
            re.compile(rf"\b{re.escape(cue)}\b") for cue in self.REFERENCE_CUES
        ]

    @staticmethod
    def session_key(session_id: str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def cache_key(tool_name: str, args: Dict[str, Any]) -> str:
        """Content address for a tool call. Key order of args does not matter."""
        serialized = json.dumps(args, sort_keys=True, default=str)
        digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
        return f"cache:{tool_name}:{digest}"

    # Session lifecycle

    async def create_session(self, session_id: str, user_id: str = "anonymous") -> None:
        """Initialize an empty session."""
        session = Session(session_id=session_id, user_id=user_id)
        await self._save_session(session)
        logger.info(f"Created session {session_id} for user {user_id}")

    async def get_session(self, session_id: str) -> Optional[Session]:
        """
        Fetch a session and extend its TTL.

        Args:
            session_id: Session ID

        Returns:
            Session, or None if absent, expired or unreadable
        """
        key = self.session_key(session_id)
        raw = await self.store.get(key)
        if raw is None:
            return None

        try:
            session = Session.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable session {session_id}: {e}")
            return None

        await self.store.expire(key, self.settings.session_ttl_seconds)
        self._expire_stale_entities(session)
        return session

    async def ensure_session(self, session_id: str, user_id: str = "anonymous") -> Session:
        """Return the session, creating it on first contact."""
        session = await self.get_session(session_id)
        if session is not None:
            return session
        await self.create_session(session_id, user_id)
        return Session(session_id=session_id, user_id=user_id)

    async def _save_session(self, session: Session):
        self._expire_stale_entities(session)
        session.last_activity = time.time()
        await self.store.setex(
            self.session_key(session.session_id),
            self.settings.session_ttl_seconds,
            session.model_dump_json(),
        )

    def _expire_stale_entities(self, session: Session):
        if session.active_entities.is_stale(self.settings.entity_ttl_seconds):
            if session.active_entities.customer_id or session.active_entities.product_id:
                logger.info(f"Active entities expired for session {session.session_id}")
            session.active_entities = ActiveEntities()

    # Messages

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        tools_used: Optional[List[str]] = None
    ) -> None:
        """
        Compress and append a message, then prune history.

        Args:
            session_id: Session ID
            role: user, assistant or system
            content: Message text
            tools_used: Names of tools used to produce the message
        """
        session = await self.get_session(session_id)
        if session is None:
            logger.debug(f"add_message: no session {session_id}, message not stored")
            return

        session.messages.append(ConversationMessage(
            role=role,
            content=compress_content(content, self.settings.compression_threshold),
            tools_used=tools_used,
        ))

        before = len(session.messages)
        session.messages = prune_messages(session.messages, self.settings.max_messages)
        if len(session.messages) < before:
            logger.debug(f"Pruned session {session_id} from {before} to {len(session.messages)} messages")

        await self._save_session(session)

    # Tool usage and entities

    async def record_tool_usage(
        self,
        session_id: str,
        tool_name: str,
        args: Dict[str, Any],
        result: ToolCallResult
    ) -> None:
        """
        Record a digest of a tool call and update active entities from its result.

        Args:
            session_id: Session ID
            tool_name: Tool name
            args: Arguments the tool was called with
            result: Tool result
        """
        session = await self.get_session(session_id)
        if session is None:
            return

        text = result.text
        session.tool_usage_history.append(ToolUsageRecord(
            tool_name=tool_name,
            args={k: v for k, v in args.items() if k != "_context"},
            result_summary=summarize_tool_result(tool_name, text),
            result_ids=extract_result_ids(text),
        ))
        session.tool_usage_history = session.tool_usage_history[-self.settings.max_tool_history:]

        if not result.is_error:
            update = extract_entities(tool_name, text)
            if update is not None:
                self._apply_entities(session.active_entities, update)
                logger.info(
                    f"Active entities for {session_id}: customer={session.active_entities.customer_id} "
                    f"product={session.active_entities.product_id}"
                )

        await self._save_session(session)

    @staticmethod
    def _apply_entities(entities: ActiveEntities, update: EntityUpdate):
        for field, value in update.model_dump(exclude_none=True).items():
            setattr(entities, field, value)
        entities.touch()

    async def set_address_confirmation(
        self,
        session_id: str,
        customer_id: str,
        customer_name: Optional[str] = None
    ) -> None:
        """Remember that the assistant asked whether to look up this customer's address."""
        session = await self.get_session(session_id)
        if session is None:
            return
        session.active_entities.begin_address_confirmation(customer_id, customer_name)
        await self._save_session(session)

    async def clear_address_confirmation(self, session_id: str) -> None:
        session = await self.get_session(session_id)
        if session is None:
            return
        session.active_entities.clear_address_confirmation()
        await self._save_session(session)

    def has_reference_cue(self, query_text: str) -> bool:
        """Whether the query refers back to something ('his', 'that', 'the same', ...)."""
        lowered = query_text.lower()
        return any(pattern.search(lowered) for pattern in self._cue_patterns)

    async def enhance_tool_arguments(
        self,
        session_id: str,
        tool_name: str,
        args: Dict[str, Any],
        query_text: str
    ) -> Dict[str, Any]:
        """
        Fill identifiers the model left out, using the active entities.

        Only applies when the query contains a reference cue. Best effort: a
        miss leaves the arguments as the model produced them.

        Args:
            session_id: Session ID
            tool_name: Tool about to be called
            args: Arguments from the model (not mutated)
            query_text: Current user query

        Returns:
            A new argument dict
        """
        enhanced = dict(args)
        session = await self.get_session(session_id)
        if session is None or not self.has_reference_cue(query_text):
            return enhanced

        entities = session.active_entities
        if (
            entities.customer_id
            and not enhanced.get("customer_id")
            and not enhanced.get("id")
            and self.CUSTOMER_ARG_TOOLS.search(tool_name)
        ):
            if "customer_id" in enhanced or "customer" in tool_name.lower():
                enhanced["customer_id"] = entities.customer_id
            else:
                enhanced["id"] = entities.customer_id
            logger.info(f"Auto-filled customer id {entities.customer_id} for {tool_name}")

        if tool_name in self.CUSTOMER_SEARCH_TOOLS and not enhanced.get("search") and entities.customer_name:
            enhanced["search"] = entities.customer_name
            logger.info(f"Auto-filled search '{entities.customer_name}' for {tool_name}")

        if tool_name in self.PRODUCT_DETAIL_TOOLS and not enhanced.get("product_id") and entities.product_id:
            enhanced["product_id"] = entities.product_id
            logger.info(f"Auto-filled product id {entities.product_id} for {tool_name}")

        return enhanced

    async def generate_tool_context(self, session_id: str, query: str) -> ToolContext:
        """
        Build the context block offered to the model for tool-using queries.

        Args:
            session_id: Session ID
            query: Current user query

        Returns:
            ToolContext with recent queries, inferred intent and active entities
        """
        session = await self.get_session(session_id)
        if session is None:
            return ToolContext(recent_queries=[query], user_intent=UserIntent.UNKNOWN)

        recent_queries = [
            m.content[:self.MAX_QUERY_CHARS]
            for m in session.messages[-self.RECENT_MESSAGE_WINDOW:]
            if m.role == "user"
        ]
        recent_queries.append(query)
        entities = session.active_entities

        return ToolContext(
            recent_queries=recent_queries,
            user_intent=self.detect_intent(recent_queries),
            customer_id=entities.customer_id,
            customer_name=entities.customer_name,
            product_id=entities.product_id,
            product_name=entities.product_name,
        )

    def detect_intent(self, queries: List[str]) -> UserIntent:
        text = " ".join(queries[-self.INTENT_WINDOW:]).lower()
        if "product" in text:
            return UserIntent.PRODUCT_INQUIRY
        if "customer" in text:
            return UserIntent.CUSTOMER_MANAGEMENT
        if "invoice" in text:
            return UserIntent.BILLING_INQUIRY
        if "estimate" in text:
            return UserIntent.ESTIMATION
        return UserIntent.GENERAL_INQUIRY

    # Tool result cache

    async def cache_tool_result(
        self,
        tool_name: str,
        args: Dict[str, Any],
        result: ToolCallResult,
        ttl_seconds: int = 300
    ) -> None:
        """Cache a tool result. Error results and non-positive TTLs are not cached."""
        if result.is_error or ttl_seconds <= 0:
            return
        key = self.cache_key(tool_name, args)
        await self.store.setex(key, ttl_seconds, json.dumps(result.to_cache()))
        logger.debug(f"Cached {tool_name} result for {ttl_seconds}s")

    async def get_cached_result(self, tool_name: str, args: Dict[str, Any]) -> Optional[ToolCallResult]:
        """Return a cached tool result, or None on a miss."""
        raw = await self.store.get(self.cache_key(tool_name, args))
        if raw is None:
            return None
        try:
            return ToolCallResult.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable cache entry for {tool_name}: {e}")
            return None

    async def close(self) -> None:
        await self.store.close()
