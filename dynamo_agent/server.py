"""DynamoDB MCP tool server (stdio transport).

Run with ``python -m dynamo_agent.server``. Logs go to stderr because stdout
carries the MCP protocol.
"""

import asyncio
import json
import os
import sys
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from dynamo_agent import __version__
from dynamo_agent.services.dynamodb import DynamoDBService, json_default
from dynamo_agent.tools.base import ToolDefinition
from dynamo_agent.tools.dynamodb import create_dynamodb_tools
from dynamo_agent.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

SERVER_NAME = "dynamodb-mcp-server"


def render_result(result: dict[str, Any]) -> str:
    return json.dumps(result, indent=2, default=json_default)


async def execute_tool(tools: dict[str, ToolDefinition], name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
    """Validate arguments and run one tool, converting any failure into a result dict."""
    tool = tools.get(name)
    if tool is None:
        return {"success": False, "message": f"Unknown tool: {name}", "availableTools": list(tools)}

    try:
        params = tool.parse_input(arguments)
        return await asyncio.to_thread(tool.handler, params)
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return {
            "success": False,
            "message": f"Unexpected error occurred while executing {name}: {e}",
            "errorType": type(e).__name__,
            "tool": name,
            "arguments": arguments,
        }


def create_server(service: DynamoDBService | None = None) -> Server:
    """Build the MCP server exposing the DynamoDB tool catalog."""
    catalog = create_dynamodb_tools(service or DynamoDBService())
    tools = {tool.name: tool for tool in catalog}
    server = Server(SERVER_NAME, version=__version__)
    logger.info(f"Available tools: {len(catalog)}: {list(tools)}")

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [
            types.Tool(name=tool.name, description=tool.description, inputSchema=tool.get_json_schema())
            for tool in catalog
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        logger.info(f"{name} called with: {arguments}")
        result = await execute_tool(tools, name, arguments)
        logger.info(f"{name} -> success={result.get('success')}: {result.get('message')}")
        return [types.TextContent(type="text", text=render_result(result))]

    return server


async def run_server(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    setup_logging(stream=sys.stderr)
    server = create_server()

    logger.info("=" * 50)
    logger.info(f"DynamoDB MCP Server v{__version__}")
    logger.info(f"AWS Region: {os.getenv('AWS_REGION') or 'not set'}")
    logger.info("=" * 50)

    try:
        asyncio.run(run_server(server))
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")


if __name__ == "__main__":
    main()
