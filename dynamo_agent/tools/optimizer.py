"""Rewriting of point queries that lack a partition-key condition into scans."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from dynamo_agent.tools.registry import sanitize_tool_name

QUERY_TOOL = "dynamodb:query_table"
SCAN_TOOL = "dynamodb:scan_table"

# Arguments carried from a query over to the equivalent scan.
CARRIED_ARGS = ("tableName", "expressionAttributeNames", "expressionAttributeValues", "limit")

FALLBACK_MESSAGES = (
    "Query condition missed key schema element",
    "Invalid KeyConditionExpression",
    "Syntax error",
)


class KeyConditionClassifier(Protocol):
    """Decides whether a key-condition expression should become a scan filter."""

    def needs_rewrite(self, key_condition: str) -> bool: ...


@dataclass(frozen=True)
class SortKeyWithoutPartitionKey:
    """Textual heuristic: the sort key is mentioned but the partition key is not.

    This is a substring check, not an expression parse.
    """

    sort_key_marker: str = "Age"
    partition_key_markers: Sequence[str] = ("Name", "#name")

    def needs_rewrite(self, key_condition: str) -> bool:
        if self.sort_key_marker not in key_condition:
            return False
        return not any(marker in key_condition for marker in self.partition_key_markers)


@dataclass
class OptimizedCall:
    """A tool call after optimization."""

    tool_name: str
    args: dict[str, Any]
    rewritten: bool = False


class QueryOptimizer:
    """Inspects outgoing point queries and rewrites them into filtered scans."""

    def __init__(
        self,
        classifier: KeyConditionClassifier | None = None,
        query_tool: str = QUERY_TOOL,
        scan_tool: str = SCAN_TOOL,
    ):
        self.classifier = classifier or SortKeyWithoutPartitionKey()
        self.query_tool = query_tool
        self.scan_tool = scan_tool

    def is_query(self, tool_name: str) -> bool:
        """Check for the point-query tool in either original or sanitized form."""
        return sanitize_tool_name(tool_name) == sanitize_tool_name(self.query_tool)

    def scan_name_for(self, tool_name: str) -> str:
        """Name the scan tool in the same form as the given query tool name."""
        return self.scan_tool if tool_name == self.query_tool else sanitize_tool_name(self.scan_tool)

    def optimize(self, tool_name: str, args: dict[str, Any]) -> OptimizedCall:
        """Rewrite a query without a partition-key condition into a scan.

        Calls to any other tool are returned untouched.
        """
        if not self.is_query(tool_name):
            return OptimizedCall(tool_name=tool_name, args=args)

        key_condition = args.get("keyConditionExpression") or ""
        if not isinstance(key_condition, str) or not self.classifier.needs_rewrite(key_condition):
            return OptimizedCall(tool_name=tool_name, args=args)

        scan_args = {key: args[key] for key in CARRIED_ARGS if key in args}
        scan_args["filterExpression"] = key_condition
        return OptimizedCall(tool_name=self.scan_name_for(tool_name), args=scan_args, rewritten=True)

    @staticmethod
    def is_fallback_error(error_type: str | None, message: str | None) -> bool:
        """Check whether a failed query should be retried once as a scan."""
        if error_type not in (None, "ValidationException"):
            return False
        if not isinstance(message, str):
            return False
        return any(marker in message for marker in FALLBACK_MESSAGES)

    @staticmethod
    def fallback_args(args: dict[str, Any]) -> dict[str, Any]:
        """Build scan arguments from a failed query's arguments."""
        scan_args = {key: args[key] for key in (*CARRIED_ARGS, "indexName") if args.get(key) is not None}
        if args.get("keyConditionExpression"):
            scan_args["filterExpression"] = args["keyConditionExpression"]
        return scan_args
