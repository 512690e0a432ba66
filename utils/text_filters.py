"""Text filters applied to assistant output before it is stored."""

import re

INTERNAL_ID_FIELDS = [
    "id", "customer_id", "product_id", "invoice_id", "estimate_id", "user_id",
    "quickbook_customer_id", "handshake_key", "assign_employee_user_id",
]

_INTERNAL_ID_PATTERN = re.compile(
    r"\b(" + "|".join(INTERNAL_ID_FIELDS) + r")\b\s*[:=]\s*['\"\w-]+,?",
    re.IGNORECASE,
)


def filter_internal_ids(text: str) -> str:
    """
    Remove 'field: value' / 'field=value' mentions of internal identifiers.

    Args:
        text: Assistant text

    Returns:
        Text without internal identifiers or the blank lines they leave behind
    """
    text = _INTERNAL_ID_PATTERN.sub("", text)
    text = re.sub(r"\n\s*\n", "\n", text)
    text = re.sub(r"\{\s*,", "{", text)
    text = re.sub(r",\s*\}", "}", text)
    return text
