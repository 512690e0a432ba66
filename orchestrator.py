"""Conversation orchestrator: the per-query streaming state machine."""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from config.settings import Settings

# Routing
from agents.router import QueryRouter
from agents.prompts import CONTEXT_INSTRUCTIONS

# LLM components
from llm.base_client import BaseLLMClient, Message, StreamEvent
from llm.rate_limiter import RateLimiter, RetryManager

# Memory components
from memory.context_manager import SessionContextManager
from memory.entity_extractor import extract_entities, summarize_tool_result
from memory.models import ConversationMessage, Session

# Tool loop components
from react.loop import StreamAccumulator, ToolRunner
from react.tools import ToolExecutor, ToolExecutorError

from schemas.context import QueryType
from schemas.events import (
    ChunkEvent,
    CompleteChunk,
    ErrorChunk,
    QueryStartChunk,
    TextDeltaChunk,
    ToolExecutingChunk,
    ToolResultChunk,
)
from schemas.responses import RouterOutput
from schemas.tools import (
    ToolCallResult,
    ToolDefinition,
    ToolUsage,
    VerbatimText,
    classify_tool_output,
)
from utils.text_filters import filter_internal_ids

logger = logging.getLogger(__name__)

ADDRESS_TOOL = "searchCustomerAddress"
CUSTOMER_LOOKUP_TOOL = "findCustomerByName"

NO_RESPONSE = "No response generated."
NOTHING_TO_CONFIRM = (
    "I'm not sure what you're saying yes to. Could you tell me what you'd like me to look up?"
)


def is_confirmation_reply(query: str) -> bool:
    """Whether the input is a bare 'yes' (case and surrounding space ignored)."""
    return query.strip().lower() == "yes"


def address_question(customer_name: str) -> str:
    return f"Would you like me to look up the address for {customer_name}? (yes/no)"


class ConversationOrchestrator:
    """
    Drives one query through Classify -> Confirm? -> Dispatch -> Streaming ->
    [ToolExecution -> Dispatch]* -> Complete, yielding chunk events throughout.
    """

    def __init__(
        self,
        llm_client: BaseLLMClient,
        tool_executor: ToolExecutor,
        context_manager: SessionContextManager,
        router: Optional[QueryRouter] = None,
        rate_limiter: Optional[RateLimiter] = None,
        retry_manager: Optional[RetryManager] = None,
        settings: Optional[Settings] = None
    ):
        """
        Initialize orchestrator.

        Args:
            llm_client: Streaming LLM client
            tool_executor: Executor for business tools
            context_manager: Session context manager
            router: Query router
            rate_limiter: Upstream call throttle
            retry_manager: Overload retry policy
            settings: Application settings
        """
        self.settings = settings or Settings()
        self.llm_client = llm_client
        self.tool_executor = tool_executor
        self.context_manager = context_manager
        self.router = router or QueryRouter()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_requests=self.settings.rate_limit_max_requests,
            window_seconds=self.settings.rate_limit_window_seconds,
            min_interval=self.settings.rate_limit_min_interval,
        )
        self.retry_manager = retry_manager or RetryManager(
            max_retries=self.settings.retry_max_retries,
            base_delay=self.settings.retry_base_delay,
        )
        self.tool_runner = ToolRunner(tool_executor, context_manager, self.settings)
        self._tools: Optional[List[ToolDefinition]] = None

    async def get_tools(self) -> List[ToolDefinition]:
        """Tool catalog, fetched from the executor once."""
        if self._tools is None:
            try:
                self._tools = await self.tool_executor.list_tools()
            except ToolExecutorError as e:
                logger.warning(f"No tools available: {e}")
                return []
        return self._tools

    async def process_query(
        self,
        query: str,
        session_id: str,
        user_id: str = "anonymous"
    ) -> AsyncIterator[ChunkEvent]:
        """
        Process one user query.

        Args:
            query: User text
            session_id: Session ID
            user_id: User ID, used when the session is created

        Yields:
            Chunk events, ending with exactly one complete or error chunk
        """
        try:
            async for chunk in self._process(query, session_id, user_id):
                yield chunk
        except Exception as e:
            logger.error(f"Error processing query for session {session_id}: {e}")
            yield ErrorChunk(error=f"Error processing query: {e}")

    async def _process(self, query: str, session_id: str, user_id: str) -> AsyncIterator[ChunkEvent]:
        session = await self.context_manager.ensure_session(session_id, user_id)

        if is_confirmation_reply(query):
            async for chunk in self._handle_confirmation(session, query):
                yield chunk
            return

        route = self.router.route(query, await self.get_tools())
        system_prompt = await self._build_system_prompt(route, session_id, query)
        messages = self._build_messages(session.messages, query)
        system_prompt = self._fold_summaries(system_prompt, session.messages)

        await self.context_manager.add_message(session_id, "user", query)

        yield QueryStartChunk(query_type=route.query_type.value, tools_available=len(route.tools))

        tools_used: List[ToolUsage] = []
        accumulated = ""

        for iteration in range(self.settings.max_tool_iterations):
            logger.debug(f"Model turn {iteration + 1}/{self.settings.max_tool_iterations}")

            stream = await self._dispatch(messages, system_prompt, route)
            turn = StreamAccumulator(accumulated)
            async for event in stream:
                for chunk in turn.feed(event):
                    yield chunk
            accumulated = turn.accumulated

            if not turn.tool_calls:
                break

            messages.append(Message(role="assistant", content=turn.text, tool_calls=turn.tool_calls))

            verbatim: List[str] = []
            confirmation: Optional[str] = None

            for call in turn.tool_calls:
                yield ToolExecutingChunk(tool=call.name, args=call.input)

                outcome = await self.tool_runner.run(call, session_id, query)
                result = outcome.result
                tools_used.append(ToolUsage(name=call.name, args=outcome.args, cached=outcome.cached))

                yield ToolResultChunk(
                    tool=call.name,
                    result=[block.model_dump() for block in result.content],
                    cached=outcome.cached,
                )
                messages.append(Message(
                    role="tool",
                    content="\n".join(block.text for block in result.content),
                    tool_call_id=call.id,
                    is_error=result.is_error,
                ))

                output = classify_tool_output(result)
                if isinstance(output, VerbatimText):
                    verbatim.append(output.text)
                elif call.name == CUSTOMER_LOOKUP_TOOL and not result.is_error:
                    confirmation = await self._begin_address_confirmation(session_id, call.name, result)

            if verbatim:
                text = "\n\n".join(verbatim)
                async for chunk in self._stream_verbatim(text):
                    yield chunk
                yield await self._complete(session_id, text, tools_used, route.query_type)
                return

            if confirmation:
                yield TextDeltaChunk(delta=confirmation, accumulated=confirmation)
                yield await self._complete(session_id, confirmation, tools_used, route.query_type)
                return
        else:
            logger.warning(
                f"Tool loop for session {session_id} stopped after {self.settings.max_tool_iterations} iterations"
            )

        yield await self._complete(session_id, accumulated or NO_RESPONSE, tools_used, route.query_type)

    async def _handle_confirmation(self, session: Session, query: str) -> AsyncIterator[ChunkEvent]:
        """Resolve a bare 'yes' without calling the model."""
        session_id = session.session_id
        entities = session.active_entities
        await self.context_manager.add_message(session_id, "user", query)

        if not entities.awaiting_address_confirmation:
            logger.info(f"'yes' with nothing pending for session {session_id}")
            yield await self._complete(session_id, NOTHING_TO_CONFIRM, [], None)
            return

        args = {"customer_id": entities.awaiting_address_customer_id}
        customer_name = entities.customer_name or "this customer"
        logger.info(f"Address confirmation for customer {args['customer_id']} in session {session_id}")

        try:
            result = await self.tool_executor.call_tool(ADDRESS_TOOL, args)
        except Exception as e:
            logger.error(f"Error calling tool {ADDRESS_TOOL}: {e}")
            result = ToolCallResult.from_error(e)

        await self.context_manager.clear_address_confirmation(session_id)

        output = classify_tool_output(result)
        if result.is_error or output is None:
            response = f"Sorry, I couldn't retrieve the address for {customer_name}. Please try again later."
        else:
            response = output.text

        yield await self._complete(session_id, response, [ToolUsage(name=ADDRESS_TOOL, args=args)], None)

    async def _begin_address_confirmation(
        self,
        session_id: str,
        tool_name: str,
        result: ToolCallResult
    ) -> Optional[str]:
        """After a successful customer lookup, ask whether to fetch the address."""
        update = extract_entities(tool_name, result.text)
        if update is None or not update.customer_id:
            return None

        await self.context_manager.set_address_confirmation(session_id, update.customer_id, update.customer_name)
        name = update.customer_name or "this customer"
        summary = summarize_tool_result(tool_name, result.text) or f"Found: {name}"
        return f"{summary}\n\n{address_question(name)}"

    async def _stream_verbatim(self, text: str) -> AsyncIterator[ChunkEvent]:
        """Stream tool output line by line, bypassing the model."""
        accumulated = ""
        for line in text.split("\n"):
            accumulated += line + "\n"
            yield TextDeltaChunk(delta=line + "\n", accumulated=accumulated.strip(), is_verbatim=True)
            await asyncio.sleep(self.settings.verbatim_line_delay)

    async def _complete(
        self,
        session_id: str,
        response: str,
        tools_used: List[ToolUsage],
        query_type: Optional[QueryType]
    ) -> CompleteChunk:
        """Persist the final assistant message and build the complete event."""
        tool_names = [usage.name for usage in tools_used]
        await self.context_manager.add_message(
            session_id,
            "assistant",
            filter_internal_ids(response),
            tool_names or None,
        )
        return CompleteChunk(
            response=response,
            tools_used=tools_used,
            query_type=query_type.value if query_type else None,
        )

    async def _dispatch(
        self,
        messages: List[Message],
        system_prompt: str,
        route: RouterOutput
    ) -> AsyncIterator[StreamEvent]:
        """
        Open a model stream through the rate limiter and retry policy.

        The first event is read inside the retried call, so overloads raised
        before anything reaches the caller are retried. Errors raised after
        the first event propagate: chunks already emitted cannot be taken back.
        """
        snapshot = list(messages)

        async def open_stream():
            stream = await self.llm_client.open_stream(
                messages=snapshot,
                system=system_prompt,
                tools=route.tools or None,
                max_tokens=route.max_tokens,
            )
            events = stream.__aiter__()
            try:
                first = await events.__anext__()
            except StopAsyncIteration:
                first = None
            return self._resume_stream(first, events)

        return await self.rate_limiter.execute(lambda: self.retry_manager.execute(open_stream))

    @staticmethod
    async def _resume_stream(
        first: Optional[StreamEvent],
        events: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[StreamEvent]:
        if first is None:
            return
        yield first
        async for event in events:
            yield event

    async def _build_system_prompt(self, route: RouterOutput, session_id: str, query: str) -> str:
        if route.query_type not in (QueryType.BUSINESS, QueryType.COMPLEX):
            return route.system_prompt
        tool_context = await self.context_manager.generate_tool_context(session_id, query)
        return f"{route.system_prompt}\n\n{tool_context.to_prompt()}\n\n{CONTEXT_INSTRUCTIONS}"

    @staticmethod
    def _fold_summaries(system_prompt: str, history: List[ConversationMessage]) -> str:
        """Summaries of pruned history travel in the system prompt."""
        summaries = [m.content for m in history if m.role == "system"]
        if not summaries:
            return system_prompt
        return system_prompt + "\n\n" + "\n".join(summaries)

    @staticmethod
    def _build_messages(history: List[ConversationMessage], query: str) -> List[Message]:
        """
        Replay session history for the model.

        Roles alternate (consecutive same-role messages are merged) and the
        first message is always from the user.
        """
        messages: List[Message] = []
        for entry in history:
            if entry.role == "system":
                continue
            if not messages and entry.role != "user":
                continue
            if messages and messages[-1].role == entry.role:
                messages[-1].content += "\n\n" + entry.content
            else:
                messages.append(Message(role=entry.role, content=entry.content))

        if messages and messages[-1].role == "user":
            messages[-1].content += "\n\n" + query
        else:
            messages.append(Message(role="user", content=query))
        return messages

    def get_status(self) -> Dict[str, Any]:
        """Tool catalog size and rate limiter usage."""
        return {
            "tools": len(self._tools or []),
            "rate_limiter": self.rate_limiter.get_status(),
        }

    async def close(self):
        """Shut down the executor, the session store and the rate limiter."""
        await self.tool_executor.close()
        await self.context_manager.close()
        self.rate_limiter.cleanup()
