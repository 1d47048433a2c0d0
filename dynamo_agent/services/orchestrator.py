"""Turn orchestration: model invocation, tool execution and follow-up."""

from dataclasses import dataclass
from typing import Any, Protocol

from dynamo_agent.models.llm import (
    ContentBlock,
    DecodedResult,
    Message,
    ModelResponse,
    PendingToolCall,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    TurnMode,
)
from dynamo_agent.services.conversation import Conversation, check_follows
from dynamo_agent.services.events import LoggingTurnObserver, TurnObserver
from dynamo_agent.tools.decoder import decode_tool_result, render_json
from dynamo_agent.tools.optimizer import QueryOptimizer
from dynamo_agent.tools.registry import ToolRegistry, sanitize_tool_name

# Stored as the final assistant message when the follow-up produced no text.
NO_RESPONSE_TEXT = "(no response)"


class ModelInvoker(Protocol):
    async def create_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        follow_up: bool = False,
    ) -> ModelResponse: ...


class ToolExecutor(Protocol):
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...


@dataclass
class ToolOutcome:
    """What one executed tool-use block contributes to the turn."""

    text: str
    tool_use: ToolUseBlock
    tool_result: ToolResultBlock


def build_follow_up_exchange(
    user_message: Message,
    assistant_content: list[ContentBlock],
    tool_results: list[ToolResultBlock],
) -> list[Message]:
    """Build the user / assistant / user exchange answering the model's tool uses."""
    exchange = [
        user_message,
        Message(role="assistant", content=assistant_content),
        Message(role="user", content=list(tool_results)),
    ]
    previous = None
    for message in exchange:
        check_follows(previous, message)
        previous = message
    return exchange


class TurnOrchestrator:
    """Drives one user turn end to end.

    An instance owns its persistent conversation; turns on the same instance must be
    serialized by the caller.
    """

    def __init__(
        self,
        model_client: ModelInvoker,
        backend: ToolExecutor,
        registry: ToolRegistry,
        optimizer: QueryOptimizer | None = None,
        observer: TurnObserver | None = None,
        conversation: Conversation | None = None,
    ):
        self.model_client = model_client
        self.backend = backend
        self.registry = registry
        self.optimizer = optimizer or QueryOptimizer()
        self.observer = observer or LoggingTurnObserver()
        self.conversation = conversation if conversation is not None else Conversation()

    def reset(self) -> None:
        """Clear the persistent conversation."""
        self.conversation.clear()

    async def run_turn(self, user_text: str, mode: TurnMode = TurnMode.STATELESS) -> str:
        """Run one turn and return its text.

        Args:
            user_text: The caller's message
            mode: Stateful turns submit and extend the persistent conversation;
                stateless turns never touch it

        Returns:
            Model text, tool results and inline tool errors joined by newlines, or an
            ``Error:`` string when the first model invocation fails
        """
        user_message = Message.user_text(user_text)
        history = self.conversation.messages() if mode is TurnMode.STATEFUL else []
        tools = self.registry.tools_for_model()

        try:
            response = await self.model_client.create_message([*history, user_message], tools=tools)
        except Exception as e:
            self.observer.model_failed(str(e), follow_up=False)
            return f"Error: {e}"

        output: list[str] = []
        assistant_content: list[ContentBlock] = []
        tool_results: list[ToolResultBlock] = []

        for block in response.content:
            if isinstance(block, TextBlock):
                output.append(block.text)
                assistant_content.append(block)
            elif isinstance(block, ToolUseBlock):
                outcome = await self._execute(PendingToolCall.from_block(block))
                if outcome.text:
                    output.append(outcome.text)
                assistant_content.append(outcome.tool_use)
                tool_results.append(outcome.tool_result)

        if not tool_results:
            if mode is TurnMode.STATEFUL:
                reply = assistant_content or [TextBlock(text=NO_RESPONSE_TEXT)]
                self.conversation.extend([user_message, Message(role="assistant", content=reply)])
            return "\n".join(output)

        exchange = build_follow_up_exchange(user_message, assistant_content, tool_results)
        follow_up_text = await self._follow_up([*history, *exchange], tools)
        output.extend(follow_up_text)

        if mode is TurnMode.STATEFUL:
            final_text = "\n".join(follow_up_text) or NO_RESPONSE_TEXT
            self.conversation.extend([*exchange, Message(role="assistant", content=[TextBlock(text=final_text)])])

        return "\n".join(output)

    async def _follow_up(self, messages: list[Message], tools: list[dict[str, Any]]) -> list[str]:
        """Send tool results back to the model and collect its text."""
        try:
            response = await self.model_client.create_message(messages, tools=tools, follow_up=True)
        except Exception as e:
            self.observer.model_failed(str(e), follow_up=True)
            return []

        return [block.text for block in response.text_blocks()]

    async def _execute(self, call: PendingToolCall) -> ToolOutcome:
        """Optimize, translate and execute one requested tool call."""
        optimized = self.optimizer.optimize(call.requested_name, call.requested_args)
        if optimized.rewritten:
            self.observer.rewrite_applied(call.requested_name, optimized.tool_name, optimized.args)

        safe_name = sanitize_tool_name(optimized.tool_name)
        backend_name = self.registry.resolve(safe_name)
        tool_use = ToolUseBlock(id=call.id, name=safe_name, input=optimized.args)

        self.observer.tool_invoked(backend_name, optimized.args)
        try:
            decoded = await self._call(backend_name, optimized.args)
        except Exception as e:
            error_text = f"❌ Tool {safe_name} failed: {e}"
            self.observer.tool_failed(safe_name, str(e))
            return ToolOutcome(
                text=error_text,
                tool_use=tool_use,
                tool_result=ToolResultBlock(tool_use_id=call.id, content=error_text, is_error=True),
            )

        self.observer.tool_succeeded(safe_name, decoded)
        return ToolOutcome(
            text=decoded.display_text,
            tool_use=tool_use,
            tool_result=ToolResultBlock(tool_use_id=call.id, content=decoded.display_text),
        )

    async def _call(self, backend_name: str, args: dict[str, Any]) -> DecodedResult:
        """Call the backend, retrying a rejected point query once as a scan."""
        is_query = self.optimizer.is_query(backend_name)

        try:
            result = await self.backend.call_tool(backend_name, args)
        except Exception as e:
            if is_query and self.optimizer.is_fallback_error(None, str(e)):
                return await self._scan_fallback(backend_name, args, str(e))
            raise

        decoded = decode_tool_result(result)
        structured = decoded.structured
        if (
            is_query
            and isinstance(structured, dict)
            and structured.get("success") is False
            and self.optimizer.is_fallback_error(structured.get("errorType"), structured.get("message"))
        ):
            return await self._scan_fallback(backend_name, args, structured["message"])

        return decoded

    async def _scan_fallback(self, query_name: str, args: dict[str, Any], reason: str) -> DecodedResult:
        scan_name = self.registry.resolve(sanitize_tool_name(self.optimizer.scan_tool))
        scan_args = self.optimizer.fallback_args(args)
        self.observer.fallback_applied(query_name, scan_name, reason)

        try:
            decoded = decode_tool_result(await self.backend.call_tool(scan_name, scan_args))
        except Exception as e:
            failure = str(e)
        else:
            structured = decoded.structured
            if not isinstance(structured, dict):
                return DecodedResult(display_text=f"Query converted to scan: {decoded.display_text}")
            if structured.get("success") is not False:
                annotated = {**structured, "message": f"Query converted to scan: {structured.get('message', '')}"}
                return DecodedResult(display_text=render_json(annotated), structured=annotated)
            failure = structured.get("message", "unknown error")

        combined = {
            "success": False,
            "message": f"Query failed and scan fallback also failed: {failure}",
            "items": [],
        }
        return DecodedResult(display_text=render_json(combined), structured=combined)
