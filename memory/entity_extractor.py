"""Entity extraction from heterogeneous tool result payloads.

Tool outputs are not schema-guaranteed: a result may be a JSON document, a
JSON document wrapped in prose, or free text. Extraction is an ordered list of
strategies, each returning an EntityUpdate or None; the first hit wins and
nothing here ever raises on bad input.
"""

import json
import logging
import re
from typing import Any, Callable, List, Optional
from pydantic import BaseModel

logger = logging.getLogger(__name__)

MAX_RESULT_IDS = 5

_CUSTOMER_ID_PATTERN = re.compile(r"\b(?:customer\s+)?id\s*[:\-]?\s*(\d+)", re.IGNORECASE)
_NAME_SENTENCE_PATTERN = re.compile(r"[:\-]\s*([A-Za-z0-9 .,&'-]+?)\.(?:\s|$)")
_NAME_TRAILING_PATTERN = re.compile(r"[:\-]\s*([A-Za-z0-9 .,&'-]+)$")


class EntityUpdate(BaseModel):
    """Entities found in one tool result."""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None

    def is_empty(self) -> bool:
        return not any([self.customer_id, self.customer_name, self.product_id, self.product_name])


def find_json_fragment(text: str) -> Optional[str]:
    """
    Locate the first balanced JSON object or array embedded in text.

    String literals are respected so braces inside quoted values do not
    unbalance the scan.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_payload(text: str) -> Optional[Any]:
    """Parse text as JSON, falling back to the first embedded JSON fragment."""
    if not text:
        return None
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        pass

    fragment = find_json_fragment(text)
    if fragment is None:
        return None
    try:
        return json.loads(fragment)
    except json.JSONDecodeError:
        return None


def _unwrap(payload: Any) -> Any:
    """Tool APIs wrap data in a 'result' key; arrays resolve to their last item."""
    if isinstance(payload, dict) and "result" in payload:
        payload = payload["result"]
    if isinstance(payload, list):
        return payload[-1] if payload else None
    return payload


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _first_present(item: dict, *keys: str) -> Any:
    """Value of the first key that is present and not null."""
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _domain(tool_name: str) -> Optional[str]:
    lowered = tool_name.lower()
    if "customer" in lowered:
        return "customer"
    if "product" in lowered:
        return "product"
    return None


def extract_from_json(tool_name: str, text: str) -> Optional[EntityUpdate]:
    """Strategy 1: structured payload, possibly wrapped in prose."""
    domain = _domain(tool_name)
    if domain is None:
        return None

    item = _unwrap(parse_payload(text))
    if not isinstance(item, dict):
        return None

    if domain == "customer":
        update = EntityUpdate(
            customer_id=_as_str(_first_present(item, "id", "customer_id")),
            customer_name=_as_str(_first_present(item, "name", "customer_name")),
        )
    else:
        update = EntityUpdate(
            product_id=_as_str(_first_present(item, "id", "product_id")),
            product_name=_as_str(_first_present(item, "name", "product_name")),
        )
    return None if update.is_empty() else update


def extract_from_text(tool_name: str, text: str) -> Optional[EntityUpdate]:
    """Strategy 2: free-text customer mentions such as 'Customer ID: 600005804'."""
    if _domain(tool_name) != "customer" or "customer" not in text.lower():
        return None

    update = EntityUpdate()
    match = _NAME_SENTENCE_PATTERN.search(text) or _NAME_TRAILING_PATTERN.search(text)
    if match:
        name = match.group(1).strip()
        if name and not name.isdigit():
            update.customer_name = name
    id_match = _CUSTOMER_ID_PATTERN.search(text)
    if id_match:
        update.customer_id = id_match.group(1)
    return None if update.is_empty() else update


EXTRACTION_STRATEGIES: List[Callable[[str, str], Optional[EntityUpdate]]] = [
    extract_from_json,
    extract_from_text,
]


def extract_entities(tool_name: str, text: str) -> Optional[EntityUpdate]:
    """Run the extraction strategies in order and return the first hit."""
    if not text:
        return None
    for strategy in EXTRACTION_STRATEGIES:
        try:
            update = strategy(tool_name, text)
        except Exception as e:
            logger.warning(f"Entity extraction strategy {strategy.__name__} failed: {e}")
            continue
        if update is not None:
            return update
    return None


def _result_noun(tool_name: str) -> str:
    lowered = tool_name.lower()
    for noun in ("customer", "product", "invoice", "estimate", "task"):
        if noun in lowered:
            return noun
    return "result"


def summarize_tool_result(tool_name: str, text: str) -> str:
    """One-line digest such as 'Found 3 customer(s)' or 'Found: Jane Doe'."""
    if not text:
        return ""

    payload = parse_payload(text)
    if payload is None:
        return "Result processed"

    data = payload.get("result", payload) if isinstance(payload, dict) else payload
    if isinstance(data, list):
        return f"Found {len(data)} {_result_noun(tool_name)}(s)"
    if isinstance(data, dict):
        key = data.get("name") or data.get("customer_name") or data.get("product_name")
        return f"Found: {key}" if key else "Found 1 result"
    return "Result processed"


def extract_result_ids(text: str) -> List[str]:
    """Up to MAX_RESULT_IDS identifiers from a result payload."""
    payload = parse_payload(text)
    if payload is None:
        return []

    data = payload.get("result", payload) if isinstance(payload, dict) else payload
    ids = []
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict) and item.get("id") is not None:
                ids.append(str(item["id"]))
    elif isinstance(data, dict) and data.get("id") is not None:
        ids.append(str(data["id"]))
    return ids[:MAX_RESULT_IDS]
