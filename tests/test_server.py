"""Tests for the DynamoDB tool server and the backend launch configuration."""

import json
import sys
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from dynamo_agent.clients.mcp import DEFAULT_SERVER_MODULE, BackendConfig, BackendNotConnectedError, ToolBackend
from dynamo_agent.server import create_server, execute_tool, render_result
from dynamo_agent.tools.dynamodb import create_dynamodb_tools


@pytest.fixture
def service():
    service = Mock()
    service.list_tables.return_value = {"success": True, "message": "Tables listed successfully", "tables": []}
    return service


@pytest.fixture
def tools(service):
    return {tool.name: tool for tool in create_dynamodb_tools(service)}


class TestExecuteTool:
    """Tests for tool dispatch inside the server."""

    @pytest.mark.asyncio
    async def test_dispatches_to_handler(self, tools, service):
        """Test that validated input reaches the service method."""
        result = await execute_tool(tools, "dynamodb:list_tables", {"limit": 5})

        assert result["success"] is True
        params = service.list_tables.call_args.args[0]
        assert params.limit == 5

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools):
        """Test that unknown tools list the available ones."""
        result = await execute_tool(tools, "dynamodb:drop_everything", {})

        assert result["success"] is False
        assert result["message"] == "Unknown tool: dynamodb:drop_everything"
        assert "dynamodb:list_tables" in result["availableTools"]

    @pytest.mark.asyncio
    async def test_invalid_arguments_reported(self, tools, service):
        """Test that validation failures come back as an error result."""
        result = await execute_tool(tools, "dynamodb:get_item", {"tableName": "Users"})

        assert result["success"] is False
        assert result["errorType"] == "ValidationError"
        assert result["tool"] == "dynamodb:get_item"
        assert result["arguments"] == {"tableName": "Users"}
        service.get_item.assert_not_called()

    def test_render_result_handles_decimals(self):
        """Test that DynamoDB numbers render as JSON numbers."""
        rendered = render_result({"success": True, "items": [{"Age": Decimal("31")}]})

        assert json.loads(rendered) == {"success": True, "items": [{"Age": 31}]}

    def test_create_server(self, service):
        """Test that the server is named after the tool catalog."""
        server = create_server(service)

        assert server.name == "dynamodb-mcp-server"


class TestBackendConfig:
    """Tests for how the tool server process is launched."""

    def test_default_runs_bundled_server(self):
        """Test that without a script the bundled server module is started."""
        params = BackendConfig(server_script=None).server_parameters()

        assert params.command == sys.executable
        assert params.args == ["-m", DEFAULT_SERVER_MODULE]

    def test_python_script(self):
        """Test that .py scripts run with the current interpreter."""
        params = BackendConfig(server_script="server.py").server_parameters()

        assert params.command == sys.executable
        assert params.args == ["server.py"]

    def test_node_script(self):
        """Test that .js scripts run with node."""
        params = BackendConfig(server_script="mcp_server.js").server_parameters()

        assert params.command == "node"
        assert params.args == ["mcp_server.js"]

    def test_with_script_keeps_environment_default(self):
        """Test that a missing script argument leaves MCP_SERVER_SCRIPT in effect."""
        with patch.dict("os.environ", {"MCP_SERVER_SCRIPT": "/opt/mcp/server.js"}):
            assert BackendConfig.with_script(None).server_script == "/opt/mcp/server.js"
            assert BackendConfig.with_script("local.py").server_script == "local.py"

    def test_unsupported_script(self):
        """Test that other script types are refused."""
        with pytest.raises(ValueError, match=".js or .py"):
            BackendConfig(server_script="server.sh").server_parameters()

    @pytest.mark.asyncio
    async def test_call_before_connect_raises(self):
        """Test that tool calls require a connection."""
        backend = ToolBackend(BackendConfig(server_script=None))

        assert not backend.connected
        with pytest.raises(BackendNotConnectedError):
            await backend.call_tool("dynamodb:list_tables", {})
