"""Conversation and tool-calling data models (provider-agnostic)."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"  # Ignore any additional fields from the provider


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    class Config:
        extra = "ignore"


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    class Config:
        extra = "ignore"


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class Message(BaseModel):
    """A role-tagged message exchanged with the model."""

    role: Literal["user", "assistant"]
    content: list[ContentBlock]

    @classmethod
    def user_text(cls, text: str) -> "Message":
        """Build a user message carrying a single text block."""
        return cls(role="user", content=[TextBlock(text=text)])

    def tool_uses(self) -> list[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    def tool_results(self) -> list[ToolResultBlock]:
        return [block for block in self.content if isinstance(block, ToolResultBlock)]


class ToolDescriptor(BaseModel):
    """A backend tool as advertised in its catalog."""

    name: str
    description: str = ""
    input_schema: dict[str, Any]

    class Config:
        frozen = True


class TurnMode(StrEnum):
    """Whether a turn consults and updates the persistent conversation."""

    STATELESS = "stateless"
    STATEFUL = "stateful"


@dataclass
class PendingToolCall:
    """A tool invocation requested by the model, consumed within the turn."""

    id: str
    requested_name: str
    requested_args: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_block(cls, block: ToolUseBlock) -> "PendingToolCall":
        return cls(id=block.id, requested_name=block.name, requested_args=dict(block.input))


@dataclass
class ModelResponse:
    """Structured response from a model invocation."""

    content: list[ContentBlock]
    stop_reason: str | None = None
    model: str | None = None

    def text_blocks(self) -> list[TextBlock]:
        return [block for block in self.content if isinstance(block, TextBlock)]


@dataclass
class DecodedResult:
    """A tool result normalized for display and transport."""

    display_text: str
    structured: Any | None = None
