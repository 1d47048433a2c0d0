"""Tool catalog handling: name translation, result decoding and query optimization."""

from dynamo_agent.tools.decoder import decode_tool_result
from dynamo_agent.tools.optimizer import QueryOptimizer
from dynamo_agent.tools.registry import ToolRegistry, sanitize_tool_name

__all__ = ["QueryOptimizer", "ToolRegistry", "decode_tool_result", "sanitize_tool_name"]
