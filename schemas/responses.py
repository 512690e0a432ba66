"""Router output schemas."""

from pydantic import BaseModel, Field
from .context import QueryType
from .tools import ToolDefinition


class RouterOutput(BaseModel):
    """Output from the query router: everything a model dispatch needs."""
    query_type: QueryType
    system_prompt: str
    tools: list[ToolDefinition] = Field(default_factory=list)
    max_tokens: int

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]
