"""Tests for turn orchestration."""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from dynamo_agent.models.llm import ModelResponse, TextBlock, ToolDescriptor, ToolUseBlock, TurnMode
from dynamo_agent.services.events import TurnObserver
from dynamo_agent.services.orchestrator import NO_RESPONSE_TEXT, TurnOrchestrator
from dynamo_agent.tools.decoder import render_json
from dynamo_agent.tools.registry import ToolRegistry

TABLES_RESULT = {
    "success": True,
    "message": "Tables listed successfully",
    "tables": ["T1", "T2"],
    "tableCount": 2,
}


def text_response(*texts: str) -> ModelResponse:
    return ModelResponse(content=[TextBlock(text=text) for text in texts], stop_reason="end_turn")


def tool_response(name: str, args: dict, tool_id: str = "toolu_1", text: str | None = None) -> ModelResponse:
    content = [TextBlock(text=text)] if text else []
    content.append(ToolUseBlock(id=tool_id, name=name, input=args))
    return ModelResponse(content=content, stop_reason="tool_use")


def backend_result(payload) -> dict:
    return {"content": [{"type": "text", "text": json.dumps(payload)}]}


@pytest.fixture
def registry():
    schema = {"type": "object", "properties": {}}
    return ToolRegistry(
        [
            ToolDescriptor(name="dynamodb:list_tables", description="Lists tables", input_schema=schema),
            ToolDescriptor(name="dynamodb:query_table", description="Queries a table", input_schema=schema),
            ToolDescriptor(name="dynamodb:scan_table", description="Scans a table", input_schema=schema),
        ]
    )


@pytest.fixture
def model_client():
    client = Mock()
    client.create_message = AsyncMock()
    return client


@pytest.fixture
def backend():
    backend = Mock()
    backend.call_tool = AsyncMock()
    return backend


@pytest.fixture
def observer():
    return Mock(spec=TurnObserver)


@pytest.fixture
def orchestrator(model_client, backend, registry, observer):
    return TurnOrchestrator(model_client=model_client, backend=backend, registry=registry, observer=observer)


def submitted_messages(model_client, call_index: int):
    return model_client.create_message.await_args_list[call_index].args[0]


class TestRunTurnWithTools:
    """Tests for turns where the model requests tools."""

    @pytest.mark.asyncio
    async def test_list_tables_end_to_end(self, orchestrator, model_client, backend):
        """Test that tool output and follow-up text both reach the turn result."""
        model_client.create_message.side_effect = [
            tool_response("dynamodb_list_tables", {}, text="Let me check."),
            text_response("You have two tables: T1 and T2."),
        ]
        backend.call_tool.return_value = backend_result(TABLES_RESULT)

        result = await orchestrator.run_turn("list all tables")

        backend.call_tool.assert_awaited_once_with("dynamodb:list_tables", {})
        assert result == "\n".join(["Let me check.", render_json(TABLES_RESULT), "You have two tables: T1 and T2."])

    @pytest.mark.asyncio
    async def test_follow_up_exchange_alternates(self, orchestrator, model_client, backend):
        """Test that the follow-up carries user, assistant, user with matching tool ids."""
        model_client.create_message.side_effect = [
            tool_response("dynamodb_list_tables", {}, tool_id="toolu_abc"),
            text_response("Done."),
        ]
        backend.call_tool.return_value = backend_result(TABLES_RESULT)

        await orchestrator.run_turn("list all tables")

        follow_up = model_client.create_message.await_args_list[1]
        messages = follow_up.args[0]
        assert follow_up.kwargs["follow_up"] is True
        assert [m.role for m in messages] == ["user", "assistant", "user"]
        assert messages[1].tool_uses()[0].id == "toolu_abc"
        assert messages[1].tool_uses()[0].name == "dynamodb_list_tables"
        assert messages[2].tool_results()[0].tool_use_id == "toolu_abc"
        assert messages[2].tool_results()[0].content == render_json(TABLES_RESULT)

    @pytest.mark.asyncio
    async def test_tools_attached_with_sanitized_names(self, orchestrator, model_client):
        """Test that every model call carries the sanitized catalog."""
        model_client.create_message.side_effect = [text_response("Hello")]

        await orchestrator.run_turn("hi")

        tools = model_client.create_message.await_args_list[0].kwargs["tools"]
        assert [tool["name"] for tool in tools] == [
            "dynamodb_list_tables",
            "dynamodb_query_table",
            "dynamodb_scan_table",
        ]

    @pytest.mark.asyncio
    async def test_tool_failure_is_contained(self, orchestrator, model_client, backend, observer):
        """Test that a failing tool yields inline error text and an error tool result."""
        model_client.create_message.side_effect = [
            tool_response("dynamodb_list_tables", {}, text="Looking now."),
            text_response("Sorry, that failed."),
        ]
        backend.call_tool.side_effect = RuntimeError("connection reset")

        result = await orchestrator.run_turn("list all tables")

        assert "Looking now." in result
        assert "❌ Tool dynamodb_list_tables failed: connection reset" in result
        tool_result = submitted_messages(model_client, 1)[2].tool_results()[0]
        assert tool_result.is_error
        observer.tool_failed.assert_called_once_with("dynamodb_list_tables", "connection reset")

    @pytest.mark.asyncio
    async def test_multiple_tool_uses_run_in_order(self, orchestrator, model_client, backend):
        """Test that each tool use runs independently and every id is answered."""
        scan_args = {"tableName": "Users"}
        model_client.create_message.side_effect = [
            ModelResponse(
                content=[
                    TextBlock(text="First the tables."),
                    ToolUseBlock(id="t1", name="dynamodb_list_tables", input={}),
                    TextBlock(text="Then the users."),
                    ToolUseBlock(id="t2", name="dynamodb_scan_table", input=scan_args),
                ],
                stop_reason="tool_use",
            ),
            text_response("Only the scan worked."),
        ]
        scan_result = {"success": True, "message": "Scan executed successfully on table Users", "items": []}
        backend.call_tool.side_effect = [RuntimeError("timeout"), backend_result(scan_result)]

        result = await orchestrator.run_turn("tables and users", TurnMode.STATEFUL)

        assert [call.args for call in backend.call_tool.await_args_list] == [
            ("dynamodb:list_tables", {}),
            ("dynamodb:scan_table", scan_args),
        ]
        error_text = "❌ Tool dynamodb_list_tables failed: timeout"
        assert result == "\n".join(
            ["First the tables.", error_text, "Then the users.", render_json(scan_result), "Only the scan worked."]
        )
        tool_results = submitted_messages(model_client, 1)[2].tool_results()
        assert [block.tool_use_id for block in tool_results] == ["t1", "t2"]
        assert tool_results[0].is_error
        assert not tool_results[1].is_error
        assert len(orchestrator.conversation) == 4

    @pytest.mark.asyncio
    async def test_query_without_partition_key_becomes_scan(self, orchestrator, model_client, backend, observer):
        """Test that the rewrite is applied before the backend call."""
        args = {"tableName": "Users", "keyConditionExpression": "Age > :a", "expressionAttributeValues": {":a": 30}}
        model_client.create_message.side_effect = [
            tool_response("dynamodb_query_table", args),
            text_response("Found one."),
        ]
        backend.call_tool.return_value = backend_result({"success": True, "message": "Scan ok", "items": []})

        await orchestrator.run_turn("users older than 30")

        backend.call_tool.assert_awaited_once_with(
            "dynamodb:scan_table",
            {"tableName": "Users", "expressionAttributeValues": {":a": 30}, "filterExpression": "Age > :a"},
        )
        observer.rewrite_applied.assert_called_once()
        assert submitted_messages(model_client, 1)[1].tool_uses()[0].name == "dynamodb_scan_table"

    @pytest.mark.asyncio
    async def test_validation_failure_falls_back_to_scan(self, orchestrator, model_client, backend, observer):
        """Test that a rejected query is retried once as a scan."""
        args = {"tableName": "Users", "keyConditionExpression": "Email = :e", "expressionAttributeValues": {":e": "x"}}
        model_client.create_message.side_effect = [
            tool_response("dynamodb_query_table", args),
            text_response("Here you go."),
        ]
        backend.call_tool.side_effect = [
            backend_result(
                {
                    "success": False,
                    "message": "Failed to query table: Query condition missed key schema element: Name",
                    "items": [],
                    "errorType": "ValidationException",
                }
            ),
            backend_result({"success": True, "message": "Scan executed successfully on table Users", "items": []}),
        ]

        result = await orchestrator.run_turn("find by email")

        scan_call = backend.call_tool.await_args_list[1]
        assert scan_call.args == (
            "dynamodb:scan_table",
            {"tableName": "Users", "expressionAttributeValues": {":e": "x"}, "filterExpression": "Email = :e"},
        )
        assert "Query converted to scan: Scan executed successfully on table Users" in result
        observer.fallback_applied.assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_fallback_reports_both(self, orchestrator, model_client, backend):
        """Test that a failing scan fallback produces the combined failure result."""
        args = {"tableName": "Users", "keyConditionExpression": "Email = :e"}
        model_client.create_message.side_effect = [
            tool_response("dynamodb_query_table", args),
            text_response("Could not do it."),
        ]
        backend.call_tool.side_effect = [
            RuntimeError("ValidationException: Invalid KeyConditionExpression"),
            RuntimeError("table gone"),
        ]

        result = await orchestrator.run_turn("find by email")

        assert "Query failed and scan fallback also failed: table gone" in result
        assert backend.call_tool.await_count == 2

    @pytest.mark.asyncio
    async def test_other_query_failures_not_retried(self, orchestrator, model_client, backend):
        """Test that failures without a validation marker are reported as is."""
        model_client.create_message.side_effect = [
            tool_response("dynamodb_query_table", {"tableName": "Users", "keyConditionExpression": "Name = :n"}),
            text_response("No table."),
        ]
        failure = {
            "success": False,
            "message": "Failed to query table: Requested resource not found",
            "items": [],
            "errorType": "ResourceNotFoundException",
        }
        backend.call_tool.return_value = backend_result(failure)

        result = await orchestrator.run_turn("find Ann")

        assert backend.call_tool.await_count == 1
        assert render_json(failure) in result


class TestRunTurnModes:
    """Tests for stateful and stateless turns."""

    @pytest.mark.asyncio
    async def test_stateless_turns_leave_history_untouched(self, orchestrator, model_client, backend):
        """Test that stateless turns never read or write the conversation."""
        model_client.create_message.side_effect = [
            text_response("one"),
            tool_response("dynamodb_list_tables", {}),
            text_response("two"),
        ]
        backend.call_tool.return_value = backend_result(TABLES_RESULT)

        await orchestrator.run_turn("first", TurnMode.STATELESS)
        await orchestrator.run_turn("second", TurnMode.STATELESS)

        assert len(orchestrator.conversation) == 0
        assert len(submitted_messages(model_client, 1)) == 1

    @pytest.mark.asyncio
    async def test_stateful_turns_carry_history(self, orchestrator, model_client, backend):
        """Test that the second stateful turn submits everything the first appended."""
        model_client.create_message.side_effect = [
            tool_response("dynamodb_list_tables", {}, text="Checking."),
            text_response("Two tables."),
            text_response("T1 is the first."),
        ]
        backend.call_tool.return_value = backend_result(TABLES_RESULT)

        await orchestrator.run_turn("list all tables", TurnMode.STATEFUL)
        first_turn = orchestrator.conversation.messages()
        await orchestrator.run_turn("which is first?", TurnMode.STATEFUL)

        assert [m.role for m in first_turn] == ["user", "assistant", "user", "assistant"]
        submitted = submitted_messages(model_client, 2)
        assert submitted[:4] == first_turn
        assert submitted[4].content == [TextBlock(text="which is first?")]
        assert len(orchestrator.conversation) == 6

    @pytest.mark.asyncio
    async def test_reset_clears_history(self, orchestrator, model_client):
        """Test that reset empties the conversation."""
        model_client.create_message.side_effect = [text_response("hi")]

        await orchestrator.run_turn("hello", TurnMode.STATEFUL)
        orchestrator.reset()

        assert len(orchestrator.conversation) == 0


class TestModelFailures:
    """Tests for model invocation failures."""

    @pytest.mark.asyncio
    async def test_initial_failure_returns_error_text(self, orchestrator, model_client, backend, observer):
        """Test that a failed first call returns an error string and leaves no history."""
        model_client.create_message.side_effect = RuntimeError("ThrottlingException")

        result = await orchestrator.run_turn("hello", TurnMode.STATEFUL)

        assert result == "Error: ThrottlingException"
        assert len(orchestrator.conversation) == 0
        backend.call_tool.assert_not_awaited()
        observer.model_failed.assert_called_once_with("ThrottlingException", follow_up=False)

    @pytest.mark.asyncio
    async def test_follow_up_failure_keeps_tool_output(self, orchestrator, model_client, backend):
        """Test that a failed follow-up still returns the tool output and stores a placeholder."""
        model_client.create_message.side_effect = [
            tool_response("dynamodb_list_tables", {}),
            RuntimeError("model unavailable"),
        ]
        backend.call_tool.return_value = backend_result(TABLES_RESULT)

        result = await orchestrator.run_turn("list all tables", TurnMode.STATEFUL)

        assert result == render_json(TABLES_RESULT)
        history = orchestrator.conversation.messages()
        assert [m.role for m in history] == ["user", "assistant", "user", "assistant"]
        assert history[-1].content == [TextBlock(text=NO_RESPONSE_TEXT)]
