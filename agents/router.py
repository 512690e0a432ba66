"""Query router: classification, prompt, tool subset and token budget."""

import logging
from typing import List

from schemas.context import QueryType
from schemas.responses import RouterOutput
from schemas.tools import ToolDefinition
from .prompts import GREETING_PROMPT, SIMPLE_PROMPT, BUSINESS_PROMPT, COMPLEX_PROMPT

logger = logging.getLogger(__name__)


GREETINGS = [
    "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
    "thanks", "thank you", "ty", "thx", "bye", "goodbye", "see you", "later",
    "how are you", "whats up", "wassup", "morning", "evening",
]

DATE_KEYWORDS = [
    "yesterday", "today", "tomorrow", "last", "this", "next", "past", "ago",
    "date", "time", "period", "range", "week", "month", "year", "days",
    "quarter", "decade", "century", "morning", "afternoon", "evening",
    "night", "dawn", "dusk", "noon", "midnight", "hour", "minute", "second",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december", "jan", "feb", "mar", "apr",
    "jun", "jul", "aug", "sep", "oct", "nov", "dec", "what is", "when is",
]

SIMPLE_PATTERNS = [
    "what can you do", "help me", "who are you", "how do i",
    "can you help", "what are your capabilities", "what tools", "how does this work",
]

BUSINESS_KEYWORDS = [
    "customer", "product", "invoice", "estimate", "search", "find", "get", "list",
    "show", "display", "fetch", "retrieve", "lookup", "details", "info", "address",
    "email", "phone", "contact", "create", "add", "update", "delete",
]

COMPLEX_PATTERNS = [
    "compare", "analyze", "report", "calculate", "multiple", "all customers who",
    "send email", "generate report", "analysis", "summary", "overview", "dashboard",
    "export", "import", "bulk", "batch",
]

COMPLEX_LENGTH = 150
SIMPLE_MAX_LENGTH = 100

DATE_TOOL = "date-utility"
NAME_LOOKUP_TOOL = "findCustomerByName"


class QueryRouter:
    """Routes queries to the cheapest adequate model configuration."""

    SYSTEM_PROMPTS = {
        QueryType.GREETING: GREETING_PROMPT,
        QueryType.SIMPLE: SIMPLE_PROMPT,
        QueryType.BUSINESS: BUSINESS_PROMPT,
        QueryType.COMPLEX: COMPLEX_PROMPT,
    }

    MAX_TOKENS = {
        QueryType.GREETING: 100,
        QueryType.SIMPLE: 300,
        QueryType.BUSINESS: 1500,
        QueryType.COMPLEX: 2000,
    }

    def route(self, query: str, tools: List[ToolDefinition]) -> RouterOutput:
        """
        Classify a query and select prompt, tools and token budget.

        Args:
            query: Raw user text
            tools: Full tool catalog

        Returns:
            RouterOutput for the model dispatch
        """
        query_type = self.classify(query)
        selected = self.select_tools(query_type, query, tools)

        logger.info(
            f"Routed query as {query_type.value}: {len(selected)}/{len(tools)} tools, "
            f"max_tokens={self.MAX_TOKENS[query_type]}"
        )

        return RouterOutput(
            query_type=query_type,
            system_prompt=self.SYSTEM_PROMPTS[query_type],
            tools=selected,
            max_tokens=self.MAX_TOKENS[query_type],
        )

    def classify(self, query: str) -> QueryType:
        """Classify a query. Total and deterministic; order of checks matters."""
        text = query.lower().strip()

        # Business first: anything that needs tools
        if any(keyword in text for keyword in BUSINESS_KEYWORDS):
            return QueryType.BUSINESS

        # Dates need the date tool
        if any(keyword in text for keyword in DATE_KEYWORDS):
            return QueryType.BUSINESS

        if any(pattern in text for pattern in COMPLEX_PATTERNS) or len(text) > COMPLEX_LENGTH:
            return QueryType.COMPLEX

        if any(pattern in text for pattern in SIMPLE_PATTERNS) and len(text) < SIMPLE_MAX_LENGTH:
            return QueryType.SIMPLE

        if any(
            text == greeting or text.startswith(greeting + " ") or text.endswith(" " + greeting)
            for greeting in GREETINGS
        ):
            return QueryType.GREETING

        return QueryType.SIMPLE

    def select_tools(
        self,
        query_type: QueryType,
        query: str,
        tools: List[ToolDefinition]
    ) -> List[ToolDefinition]:
        """Tool subset for a query class: none, keyword-filtered, or all."""
        if query_type in (QueryType.GREETING, QueryType.SIMPLE):
            return []
        if query_type == QueryType.COMPLEX:
            return list(tools)

        text = query.lower()
        relevant = [tool for tool in tools if self._is_relevant(tool.name.lower(), text)]
        if relevant:
            return relevant

        return [
            tool for tool in tools
            if "search" in tool.name.lower() or "list" in tool.name.lower() or tool.name == DATE_TOOL
        ]

    def _is_relevant(self, tool_name: str, text: str) -> bool:
        """Whether one tool (lowercased name) matches the query text."""
        if tool_name == DATE_TOOL:
            return any(keyword in text for keyword in DATE_KEYWORDS)

        if tool_name == NAME_LOOKUP_TOOL.lower() and (
            "by name" in text or "named" in text or ("customer" in text and "name" in text)
        ):
            return True

        if ("customer" in text or "client" in text) and "customer" in tool_name:
            return True
        if "product" in text and "product" in tool_name:
            return True
        if "invoice" in text and "invoice" in tool_name:
            return True
        if ("estimate" in text or "quote" in text) and "estimate" in tool_name:
            return True

        asks_lookup = any(word in text for word in ("search", "find", "get", "list", "show"))
        offers_lookup = any(word in tool_name for word in ("search", "get", "list"))
        return asks_lookup and offers_lookup
