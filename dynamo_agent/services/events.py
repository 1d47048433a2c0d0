"""Turn events emitted by the orchestrator."""

from typing import Any

from dynamo_agent.models.llm import DecodedResult
from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)


class TurnObserver:
    """Receives turn events. All hooks are no-ops; subclasses override what they need."""

    def tool_invoked(self, tool_name: str, args: dict[str, Any]) -> None:
        pass

    def tool_succeeded(self, tool_name: str, result: DecodedResult) -> None:
        pass

    def tool_failed(self, tool_name: str, reason: str) -> None:
        pass

    def rewrite_applied(self, from_tool: str, to_tool: str, args: dict[str, Any]) -> None:
        pass

    def fallback_applied(self, from_tool: str, to_tool: str, reason: str) -> None:
        pass

    def model_failed(self, reason: str, follow_up: bool) -> None:
        pass


class LoggingTurnObserver(TurnObserver):
    """Writes turn events to the application log."""

    def tool_invoked(self, tool_name: str, args: dict[str, Any]) -> None:
        logger.info(f"Executing tool {tool_name} with args: {args}")

    def tool_succeeded(self, tool_name: str, result: DecodedResult) -> None:
        logger.debug(f"Tool {tool_name} succeeded: {result.display_text[:100]}...")

    def tool_failed(self, tool_name: str, reason: str) -> None:
        logger.error(f"Tool {tool_name} failed: {reason}")

    def rewrite_applied(self, from_tool: str, to_tool: str, args: dict[str, Any]) -> None:
        logger.info(f"Rewrote {from_tool} to {to_tool}: {args}")

    def fallback_applied(self, from_tool: str, to_tool: str, reason: str) -> None:
        logger.warning(f"{from_tool} failed, falling back to {to_tool}: {reason}")

    def model_failed(self, reason: str, follow_up: bool) -> None:
        stage = "follow-up" if follow_up else "initial"
        logger.error(f"Model invocation ({stage}) failed: {reason}")
