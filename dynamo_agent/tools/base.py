"""Base types for tools served over MCP."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

ToolHandler = Callable[[Any], dict[str, Any]]


class ToolInput(BaseModel):
    """Base input schema; fields are exposed in camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


@dataclass
class ToolDefinition:
    """A tool exposed by the tool server."""

    name: str
    description: str
    input_schema_class: type[ToolInput]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema(by_alias=True)

    def parse_input(self, raw_input: dict[str, Any] | None) -> ToolInput:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input or {})
