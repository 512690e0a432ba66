"""Tool call and tool output schemas."""

import json
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field


VERBATIM_MARKER = "[DISPLAY_VERBATIM]"


class ToolDefinition(BaseModel):
    """A tool offered to the model."""
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_anthropic(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class ToolCall(BaseModel):
    """Tool call requested by the model during one streamed turn."""
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    input_json: str = ""  # Accumulator for partial input fragments


class TextContent(BaseModel):
    """Text content block of a tool result."""
    type: Literal["text"] = "text"
    text: str


class ToolCallResult(BaseModel):
    """Result returned by the tool executor."""
    content: List[TextContent] = Field(default_factory=list)
    is_error: bool = Field(False, alias="isError")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_text(cls, text: str, is_error: bool = False) -> "ToolCallResult":
        return cls(content=[TextContent(text=text)], is_error=is_error)

    @classmethod
    def from_error(cls, error: Union[Exception, str]) -> "ToolCallResult":
        """Synthetic error-content result for a failed tool call."""
        return cls.from_text(f"Error: {error}", is_error=True)

    @property
    def text(self) -> str:
        """Text of the first content block, or an empty string."""
        return self.content[0].text if self.content else ""

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ToolUsage(BaseModel):
    """A tool invocation as reported in the completion event."""
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    cached: bool = False


class PlainText(BaseModel):
    """Tool output that is neither JSON nor marked for verbatim display."""
    kind: Literal["plain"] = "plain"
    text: str


class VerbatimText(BaseModel):
    """Tool output that must reach the user unchanged, bypassing the model."""
    kind: Literal["verbatim"] = "verbatim"
    text: str


class StructuredResult(BaseModel):
    """Tool output whose text is a JSON document."""
    kind: Literal["structured"] = "structured"
    text: str
    data: Any = None


ToolOutput = Union[PlainText, VerbatimText, StructuredResult]


def classify_tool_output(result: ToolCallResult) -> Optional[ToolOutput]:
    """
    Classify the first text block of a tool result.

    Returns None for results without any text content.
    """
    if not result.content:
        return None

    text = result.text
    if VERBATIM_MARKER in text:
        marker = VERBATIM_MARKER + " " if VERBATIM_MARKER + " " in text else VERBATIM_MARKER
        return VerbatimText(text=text.replace(marker, "", 1))

    stripped = text.strip()
    if stripped.startswith("{") or stripped.startswith("["):
        try:
            return StructuredResult(text=text, data=json.loads(stripped))
        except json.JSONDecodeError:
            pass

    return PlainText(text=text)
