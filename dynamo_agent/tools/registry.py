"""Registry of backend tools and the sanitized-name translation."""

import re
from collections.abc import Iterable
from typing import Any

from dynamo_agent.models.llm import ToolDescriptor
from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_tool_name(name: str) -> str:
    """Replace every character outside [A-Za-z0-9_-] with an underscore."""
    return _UNSAFE_CHARS.sub("_", name)


class ToolRegistry:
    """Catalog of backend tools with a sanitized -> original name mapping."""

    def __init__(self, tools: Iterable[ToolDescriptor] | None = None):
        self._tools: tuple[ToolDescriptor, ...] = ()
        self._original_names: dict[str, str] = {}
        if tools is not None:
            self.register(tools)

    def register(self, tools: Iterable[ToolDescriptor]) -> None:
        """Replace the catalog and rebuild the name mapping.

        When two names sanitize to the same value the later one wins.
        """
        catalog = tuple(tools)
        mapping: dict[str, str] = {}
        for tool in catalog:
            safe_name = sanitize_tool_name(tool.name)
            previous = mapping.get(safe_name)
            if previous is not None and previous != tool.name:
                logger.warning(f"Tool name collision: {previous!r} and {tool.name!r} both sanitize to {safe_name!r}")
            mapping[safe_name] = tool.name

        self._tools, self._original_names = catalog, mapping
        logger.info(f"Registered {len(catalog)} tools")

    def resolve(self, safe_name: str) -> str:
        """Map a sanitized name back to the backend-callable name.

        Unknown names are returned unchanged.
        """
        return self._original_names.get(safe_name, safe_name)

    @property
    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        return self._tools

    def tools_for_model(self) -> list[dict[str, Any]]:
        """Build the tool catalog attached to model invocations."""
        return [
            {
                "name": sanitize_tool_name(tool.name),
                "description": tool.description or "",
                "input_schema": tool.input_schema,
            }
            for tool in self._tools
        ]

    def __len__(self) -> int:
        return len(self._tools)
