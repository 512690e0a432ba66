"""Lossy compression and pruning of session messages.

Only used for conversational recall. Nothing compressed here may be relied on
for business values.
"""

import json
import re
from typing import Any, List

from .entity_extractor import find_json_fragment
from .models import ConversationMessage

TRUNCATION_MARKER = "... [truncated]"
SUMMARY_PREFIX = "Previous conversation summary: "
MAX_SYSTEM_MESSAGES = 2
MAX_SUMMARY_ENTITIES = 3

FILLER_PHRASES = [
    "I understand that",
    "Let me help you with",
    "Based on the search results",
    "Here's what I found",
    "According to the data",
]

# Each filler phrase is removed up to the end of its sentence
_FILLER_PATTERNS = [
    re.compile(re.escape(phrase) + r"[^.]*\.\s*", re.IGNORECASE)
    for phrase in FILLER_PHRASES
]

ESSENTIAL_FIELDS = [
    "id", "name", "customer_name", "product_name", "email",
    "invoice_number", "estimate_number", "total", "status",
]
MAX_ARRAY_ITEMS = 3

SUMMARY_TOPICS = {
    "customer": "customers",
    "product": "products",
    "invoice": "invoices",
    "estimate": "estimates",
}

_PROPER_NOUN_PAIR = re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b")


def _project_item(item: Any) -> Any:
    if not isinstance(item, dict):
        return item
    return {
        "id": item.get("id"),
        "name": item.get("name") or item.get("customer_name") or item.get("product_name"),
        "key_field": item.get("invoice_number") or item.get("estimate_number") or item.get("email"),
    }


def extract_essential(data: Any) -> Any:
    """Project a JSON value down to the fields worth remembering."""
    if isinstance(data, list):
        return [_project_item(item) for item in data[:MAX_ARRAY_ITEMS]]
    if isinstance(data, dict):
        return {key: data[key] for key in ESSENTIAL_FIELDS if key in data}
    return data


def _compress_embedded_json(content: str) -> str:
    fragment = find_json_fragment(content)
    if fragment is None:
        return content
    try:
        data = json.loads(fragment)
    except json.JSONDecodeError:
        return content

    projected = json.dumps(extract_essential(data))
    if len(projected) >= len(fragment):
        return content
    return content.replace(fragment, projected, 1)


def compress_content(content: str, threshold: int = 500) -> str:
    """
    Compress message content for storage.

    Content at or under the threshold is returned unchanged. Longer content has
    whitespace collapsed, filler sentences removed and any embedded JSON value
    reduced to its essential fields; whatever is still too long is truncated.
    The result is never longer than the input.

    Args:
        content: Message text
        threshold: Length above which compression applies

    Returns:
        Compressed text
    """
    if len(content) <= threshold:
        return content

    compressed = re.sub(r"\s+", " ", content).strip()
    for pattern in _FILLER_PATTERNS:
        compressed = pattern.sub("", compressed)
    compressed = _compress_embedded_json(compressed)

    if len(compressed) > threshold:
        cut = max(threshold - len(TRUNCATION_MARKER), 0)
        compressed = compressed[:cut] + TRUNCATION_MARKER

    return compressed


def summarize_messages(messages: List[ConversationMessage]) -> str:
    """Heuristic one-line summary: topics touched plus a few proper-noun pairs."""
    text = " ".join(message.content for message in messages)
    lowered = text.lower()

    topics = [label for keyword, label in SUMMARY_TOPICS.items() if keyword in lowered]
    summary = f"Discussed {', '.join(topics) if topics else 'general topics'}"

    entities = []
    for match in _PROPER_NOUN_PAIR.findall(text):
        if match not in entities:
            entities.append(match)
        if len(entities) == MAX_SUMMARY_ENTITIES:
            break
    if entities:
        summary += f" regarding {', '.join(entities)}"

    return summary


def prune_messages(messages: List[ConversationMessage], max_messages: int) -> List[ConversationMessage]:
    """
    Bound a message list to max_messages conversational messages plus at most
    MAX_SYSTEM_MESSAGES system messages.

    Older conversational messages collapse into one synthetic system message,
    which takes one of the system slots and absorbs any earlier summary.
    """
    system = [m for m in messages if m.role == "system"]
    conversation = [m for m in messages if m.role != "system"]

    if len(conversation) <= max_messages and len(system) <= MAX_SYSTEM_MESSAGES:
        return messages

    kept = conversation[-max_messages:] if max_messages > 0 else []
    pruned = conversation[:len(conversation) - len(kept)]

    previous_summaries = [m for m in system if m.summary]
    other_system = [m for m in system if not m.summary]

    if not pruned:
        # Only the system cap is exceeded: drop surplus system messages in place
        survivors = previous_summaries[-1:]
        survivors += other_system[-(MAX_SYSTEM_MESSAGES - len(survivors)):]
        return [m for m in messages if m.role != "system" or any(m is s for s in survivors)]

    summary = summarize_messages(previous_summaries + pruned)
    summary_message = ConversationMessage(
        role="system",
        content=f"{SUMMARY_PREFIX}{summary}",
        timestamp=pruned[-1].timestamp,
        summary=summary,
    )
    return [summary_message] + other_system[-(MAX_SYSTEM_MESSAGES - 1):] + kept
