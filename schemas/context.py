"""Query classification and conversation context schemas."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class QueryType(str, Enum):
    """Classification of a user query, cheapest first."""
    GREETING = "greeting"
    SIMPLE = "simple"
    BUSINESS = "business"
    COMPLEX = "complex"


class UserIntent(str, Enum):
    """Coarse intent inferred from the most recent queries."""
    PRODUCT_INQUIRY = "product_inquiry"
    CUSTOMER_MANAGEMENT = "customer_management"
    BILLING_INQUIRY = "billing_inquiry"
    ESTIMATION = "estimation"
    GENERAL_INQUIRY = "general_inquiry"
    UNKNOWN = "unknown"


class ToolContext(BaseModel):
    """Context block handed to the model for business and complex queries."""
    recent_queries: list[str] = Field(default_factory=list)
    user_intent: UserIntent = UserIntent.UNKNOWN
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None

    def to_prompt(self) -> str:
        """Render as the 'Current conversation context' prompt section."""
        lines = [
            "Current conversation context:",
            f"- User intent: {self.user_intent.value}",
            f"- Recent queries: {', '.join(self.recent_queries[-2:])}",
        ]
        if self.customer_name:
            suffix = f" (ID: {self.customer_id})" if self.customer_id else ""
            lines.append(f"- Active customer: {self.customer_name}{suffix}")
        if self.product_name:
            suffix = f" (ID: {self.product_id})" if self.product_id else ""
            lines.append(f"- Active product: {self.product_name}{suffix}")
        return "\n".join(lines)
