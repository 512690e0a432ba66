"""Tests for the session context manager."""

import json
import time

import pytest
from pydantic import ValidationError

from config.settings import Settings
from memory.context_manager import SessionContextManager
from memory.models import ActiveEntities
from memory.ttl_store import InMemoryTTLStore
from schemas.context import UserIntent
from schemas.tools import ToolCallResult


ACME_RESULT = 'Found exact match for "Acme Corp":\n\n{"id": 42, "name": "Acme Corp", "email": "ops@acme.test"}'


def make_settings(**overrides) -> Settings:
    values = dict(
        max_messages=4,
        max_tool_history=5,
        compression_threshold=500,
        entity_ttl_seconds=600,
        session_ttl_seconds=3600,
    )
    values.update(overrides)
    return Settings(**values)


class TestSessionLifecycle:
    """Test session creation, lookup and expiry."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryTTLStore()
        self.manager = SessionContextManager(self.store, make_settings())

    @pytest.mark.asyncio
    async def test_missing_session_is_none(self):
        """Absent sessions are None, not errors."""
        assert await self.manager.get_session("nope") is None

    @pytest.mark.asyncio
    async def test_create_and_get(self):
        """Created sessions are readable."""
        await self.manager.create_session("s1", "user-1")
        session = await self.manager.get_session("s1")

        assert session is not None
        assert session.user_id == "user-1"
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_unreadable_session_is_none(self):
        """A malformed stored payload is treated as absent."""
        await self.store.setex("session:bad", 100, "not json")

        assert await self.manager.get_session("bad") is None

    @pytest.mark.asyncio
    async def test_ensure_session_creates_once(self):
        """ensure_session creates on first contact and reuses afterwards."""
        first = await self.manager.ensure_session("s1", "user-1")
        await self.manager.add_message("s1", "user", "hello")
        second = await self.manager.ensure_session("s1", "someone-else")

        assert first.messages == []
        assert second.user_id == "user-1"
        assert len(second.messages) == 1

    @pytest.mark.asyncio
    async def test_add_message_without_session_is_noop(self):
        """Writing to a missing session does not create it."""
        await self.manager.add_message("ghost", "user", "hello")

        assert await self.manager.get_session("ghost") is None


class TestMessagePruning:
    """Test message history bounds and compression."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = SessionContextManager(InMemoryTTLStore(), make_settings(max_messages=4))

    @pytest.mark.asyncio
    async def test_message_count_is_bounded(self):
        """History never exceeds max_messages + 2."""
        await self.manager.create_session("s1")

        for i in range(20):
            role = "user" if i % 2 == 0 else "assistant"
            await self.manager.add_message("s1", role, f"Message {i} about customer Jane Doe")
            session = await self.manager.get_session("s1")
            assert len(session.messages) <= 4 + 2
            assert len([m for m in session.messages if m.role == "system"]) <= 2

    @pytest.mark.asyncio
    async def test_pruned_history_is_summarized(self):
        """Pruned messages collapse into one summary system message."""
        await self.manager.create_session("s1")
        await self.manager.add_message("s1", "user", "find customer Jane Doe")
        for i in range(6):
            await self.manager.add_message("s1", "assistant", f"reply {i}")

        session = await self.manager.get_session("s1")
        summary = session.messages[0]

        assert summary.role == "system"
        assert summary.content.startswith("Previous conversation summary: Discussed customers")
        assert "Jane Doe" in summary.content
        assert [m.content for m in session.messages[-4:]] == [f"reply {i}" for i in range(2, 6)]

    @pytest.mark.asyncio
    async def test_long_content_is_compressed(self):
        """Stored content respects the compression threshold."""
        await self.manager.create_session("s1")
        await self.manager.add_message("s1", "assistant", "word " * 400)

        session = await self.manager.get_session("s1")

        assert len(session.messages[0].content) <= 500
        assert session.messages[0].content.endswith("[truncated]")


class TestToolUsageAndEntities:
    """Test tool usage records and active entity extraction."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryTTLStore()
        self.manager = SessionContextManager(self.store, make_settings())

    @pytest.mark.asyncio
    async def test_record_extracts_customer(self):
        """A customer lookup result binds the active customer."""
        await self.manager.create_session("s1")
        await self.manager.record_tool_usage(
            "s1", "findCustomerByName", {"customer_name": "Acme Corp"}, ToolCallResult.from_text(ACME_RESULT)
        )

        session = await self.manager.get_session("s1")
        record = session.tool_usage_history[0]

        assert session.active_entities.customer_id == "42"
        assert session.active_entities.customer_name == "Acme Corp"
        assert record.result_summary == "Found: Acme Corp"
        assert record.result_ids == ["42"]

    @pytest.mark.asyncio
    async def test_history_is_a_ring_buffer(self):
        """Only the most recent max_tool_history records are kept."""
        await self.manager.create_session("s1")
        for i in range(7):
            await self.manager.record_tool_usage(
                "s1", f"tool{i}", {}, ToolCallResult.from_text("plain text")
            )

        session = await self.manager.get_session("s1")

        assert len(session.tool_usage_history) == 5
        assert session.tool_usage_history[-1].tool_name == "tool6"
        assert session.tool_usage_history[-1].result_summary == "Result processed"

    @pytest.mark.asyncio
    async def test_private_context_arg_not_stored(self):
        """The _context argument is stripped from records."""
        await self.manager.create_session("s1")
        await self.manager.record_tool_usage(
            "s1", "searchInvoiceList", {"search": "x", "_context": {"a": 1}}, ToolCallResult.from_text("[]")
        )

        session = await self.manager.get_session("s1")

        assert session.tool_usage_history[0].args == {"search": "x"}
        assert session.tool_usage_history[0].result_summary == "Found 0 invoice(s)"

    @pytest.mark.asyncio
    async def test_error_results_do_not_bind_entities(self):
        """Failed tool calls leave entities alone."""
        await self.manager.create_session("s1")
        await self.manager.record_tool_usage(
            "s1", "findCustomerByName", {}, ToolCallResult.from_text('{"id": 7, "name": "X"}', is_error=True)
        )

        session = await self.manager.get_session("s1")

        assert session.active_entities.customer_id is None

    @pytest.mark.asyncio
    async def test_stale_entities_are_reset(self):
        """Entities unused for longer than the entity TTL are never served."""
        await self.manager.create_session("s1")
        await self.manager.record_tool_usage(
            "s1", "findCustomerByName", {}, ToolCallResult.from_text(ACME_RESULT)
        )

        session = await self.manager.get_session("s1")
        session.active_entities.last_updated = time.time() - 601
        await self.store.setex("session:s1", 3600, session.model_dump_json())

        session = await self.manager.get_session("s1")

        assert session.active_entities.customer_id is None
        assert session.active_entities.customer_name is None


class TestAddressConfirmation:
    """Test the confirmation flag pair."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = SessionContextManager(InMemoryTTLStore(), make_settings())

    @pytest.mark.asyncio
    async def test_set_and_clear_together(self):
        """The flag and the customer id are set and cleared together."""
        await self.manager.create_session("s1")
        await self.manager.set_address_confirmation("s1", "42", "Acme Corp")

        entities = (await self.manager.get_session("s1")).active_entities
        assert entities.awaiting_address_confirmation is True
        assert entities.awaiting_address_customer_id == "42"
        assert entities.customer_name == "Acme Corp"

        await self.manager.clear_address_confirmation("s1")

        entities = (await self.manager.get_session("s1")).active_entities
        assert entities.awaiting_address_confirmation is False
        assert entities.awaiting_address_customer_id is None

    def test_half_set_pair_is_rejected(self):
        """The model refuses a flag without a customer id and vice versa."""
        with pytest.raises(ValidationError):
            ActiveEntities(awaiting_address_confirmation=True)
        with pytest.raises(ValidationError):
            ActiveEntities(awaiting_address_customer_id="42")

    def test_empty_customer_id_is_rejected(self):
        """Beginning a confirmation needs a customer id."""
        with pytest.raises(ValueError):
            ActiveEntities().begin_address_confirmation("")


class TestArgumentEnhancement:
    """Test reference-cue argument auto-fill."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = SessionContextManager(InMemoryTTLStore(), make_settings())

    async def _bind_acme(self):
        await self.manager.create_session("s1")
        await self.manager.record_tool_usage(
            "s1", "findCustomerByName", {}, ToolCallResult.from_text(ACME_RESULT)
        )

    @pytest.mark.asyncio
    async def test_customer_id_filled_on_reference(self):
        """'his' fills customer_id for customer tools without mutating the input."""
        await self._bind_acme()
        args = {}

        enhanced = await self.manager.enhance_tool_arguments("s1", "searchCustomerAddress", args, "what is his address")

        assert enhanced == {"customer_id": "42"}
        assert args == {}

    @pytest.mark.asyncio
    async def test_id_filled_for_non_customer_tool_names(self):
        """Tools not named after customers get a plain id."""
        await self._bind_acme()

        enhanced = await self.manager.enhance_tool_arguments("s1", "getContactDetails", {}, "show that contact")

        assert enhanced == {"id": "42"}

    @pytest.mark.asyncio
    async def test_search_filled_for_invoice_list(self):
        """Invoice and estimate searches get the active customer name."""
        await self._bind_acme()

        enhanced = await self.manager.enhance_tool_arguments("s1", "searchInvoiceList", {}, "list their invoices")

        assert enhanced == {"search": "Acme Corp"}

    @pytest.mark.asyncio
    async def test_no_cue_no_fill(self):
        """Without a reference cue nothing is filled."""
        await self._bind_acme()

        enhanced = await self.manager.enhance_tool_arguments("s1", "searchCustomerAddress", {}, "show address")

        assert enhanced == {}

    @pytest.mark.asyncio
    async def test_existing_id_is_kept(self):
        """Explicit identifiers are never overwritten."""
        await self._bind_acme()

        enhanced = await self.manager.enhance_tool_arguments(
            "s1", "searchCustomerAddress", {"customer_id": "7"}, "what is his address"
        )

        assert enhanced == {"customer_id": "7"}

    @pytest.mark.asyncio
    async def test_tool_context(self):
        """Tool context carries recent queries, intent and entities."""
        await self._bind_acme()
        await self.manager.add_message("s1", "user", "find customer " + "x" * 200)

        context = await self.manager.generate_tool_context("s1", "what is his address")

        assert context.recent_queries[0] == ("find customer " + "x" * 200)[:100]
        assert context.recent_queries[-1] == "what is his address"
        assert context.user_intent == UserIntent.CUSTOMER_MANAGEMENT
        assert "Active customer: Acme Corp (ID: 42)" in context.to_prompt()


class TestResultCache:
    """Test the tool result cache."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = SessionContextManager(InMemoryTTLStore(), make_settings())

    @pytest.mark.asyncio
    async def test_miss_before_write(self):
        """Nothing is cached before the first write."""
        assert await self.manager.get_cached_result("searchCustomerList", {"search": "a"}) is None

    @pytest.mark.asyncio
    async def test_round_trip_is_deep_equal(self):
        """A cached result reads back unchanged, regardless of argument order."""
        result = ToolCallResult.from_text(json.dumps({"result": [{"id": 1}]}))
        await self.manager.cache_tool_result("searchCustomerList", {"a": 1, "b": 2}, result, 300)

        cached = await self.manager.get_cached_result("searchCustomerList", {"b": 2, "a": 1})

        assert cached == result

    @pytest.mark.asyncio
    async def test_errors_and_zero_ttl_not_cached(self):
        """Error results and zero TTLs are never cached."""
        await self.manager.cache_tool_result("x", {}, ToolCallResult.from_error("boom"), 300)
        await self.manager.cache_tool_result("y", {}, ToolCallResult.from_text("ok"), 0)

        assert await self.manager.get_cached_result("x", {}) is None
        assert await self.manager.get_cached_result("y", {}) is None
