"""MCP stdio client for the tool-execution backend."""

import asyncio
import os
import sys
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import CallToolResult

from dynamo_agent.models.llm import ToolDescriptor
from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SERVER_MODULE = "dynamo_agent.server"


class BackendNotConnectedError(RuntimeError):
    """Raised when the backend is used before a connection is established."""


@dataclass
class BackendConfig:
    """How to launch the tool server.

    ``server_script`` may be a ``.py`` or ``.js`` file; without one the bundled
    DynamoDB server module is started with the current interpreter.
    """

    server_script: str | None = field(default_factory=lambda: os.getenv("MCP_SERVER_SCRIPT") or None)
    init_timeout: float = 30.0

    @classmethod
    def with_script(cls, server_script: str | None) -> "BackendConfig":
        """Override the launch script only when one is given; otherwise keep MCP_SERVER_SCRIPT."""
        return cls(server_script=server_script) if server_script else cls()

    def server_parameters(self) -> StdioServerParameters:
        # Pass the full environment so AWS credentials reach the server process.
        env = dict(os.environ)

        if not self.server_script:
            return StdioServerParameters(command=sys.executable, args=["-m", DEFAULT_SERVER_MODULE], env=env)

        if self.server_script.endswith(".py"):
            command = sys.executable
        elif self.server_script.endswith(".js"):
            command = "node"
        else:
            raise ValueError("Server script must be a .js or .py file")

        return StdioServerParameters(command=command, args=[self.server_script], env=env)


class ToolBackend:
    """Connection to an MCP server exposing the tool catalog."""

    def __init__(self, config: BackendConfig | None = None):
        self.config = config or BackendConfig()
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> list[ToolDescriptor]:
        """Start the server, open a session and fetch the tool catalog.

        Raises:
            Exception: Any failure to launch or initialize the server; this is fatal
                for the caller.
        """
        params = self.config.server_parameters()
        logger.info(f"Connecting to tool server: {params.command} {' '.join(params.args)}")

        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await asyncio.wait_for(session.initialize(), timeout=self.config.init_timeout)
        except BaseException:
            await stack.aclose()
            raise

        self._stack, self._session = stack, session

        tools = await self.list_tools()
        logger.info(f"Connected to tool server with {len(tools)} tools: {[tool.name for tool in tools]}")
        return tools

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise BackendNotConnectedError("Tool backend is not connected")
        return self._session

    async def list_tools(self) -> list[ToolDescriptor]:
        result = await self._require_session().list_tools()
        return [
            ToolDescriptor(name=tool.name, description=tool.description or "", input_schema=tool.inputSchema)
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        """Execute a tool by its original (backend) name."""
        return await self._require_session().call_tool(name, arguments)

    async def close(self) -> None:
        if self._stack is None:
            return
        try:
            await self._stack.aclose()
            logger.info("Tool server connection closed")
        finally:
            self._stack, self._session = None, None
