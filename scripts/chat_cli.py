#!/usr/bin/env python3
"""Interactive DynamoDB chat with persistent conversation history.

Usage:
    python scripts/chat_cli.py [server_script] [inference_profile_id]
"""

import asyncio
import json
import sys
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

from dynamo_agent.clients.bedrock import ModelConfig
from dynamo_agent.clients.mcp import BackendConfig
from dynamo_agent.models.llm import DecodedResult, TurnMode
from dynamo_agent.services.events import TurnObserver
from dynamo_agent.services.runtime import AgentRuntime
from dynamo_agent.utils.logging import LogConfig, setup_logging

DEFAULT_INFERENCE_PROFILE = "us.anthropic.claude-opus-4-1-20250805-v1:0"


class ConsoleTurnObserver(TurnObserver):
    """Renders tool activity on the console as it happens."""

    def __init__(self, console: Console):
        self.console = console

    def tool_invoked(self, tool_name: str, args: dict[str, Any]) -> None:
        self.console.print(f"\n[bold]🔧 Executing:[/bold] {tool_name}")
        self.console.print(f"[dim]📝 Args: {json.dumps(args, indent=2)}[/dim]")

    def rewrite_applied(self, from_tool: str, to_tool: str, args: dict[str, Any]) -> None:
        self.console.print("[yellow]🔄 Optimizing: Converting query to scan (missing partition key condition)[/yellow]")

    def fallback_applied(self, from_tool: str, to_tool: str, reason: str) -> None:
        self.console.print(f"[yellow]🔄 Query failed, falling back to scan: {reason}[/yellow]")

    def tool_failed(self, tool_name: str, reason: str) -> None:
        self.console.print(f"[red]❌ Tool {tool_name} failed: {reason}[/red]")

    def model_failed(self, reason: str, follow_up: bool) -> None:
        self.console.print(f"[red]❌ Error invoking Bedrock model: {reason}[/red]")

    def tool_succeeded(self, tool_name: str, result: DecodedResult) -> None:
        parsed = result.structured
        if not isinstance(parsed, dict):
            return

        if not parsed.get("success"):
            self.console.print(f"[red]❌ {parsed.get('message')}[/red]")
            if parsed.get("errorType"):
                self.console.print(f"[red]🔍 Error Type: {parsed['errorType']}[/red]")
            return

        self.console.print(f"[green]✅ {parsed.get('message')}[/green]")
        items = parsed.get("items")
        if isinstance(items, list):
            self.console.print(f"📊 Found {len(items)} items:")
            if items:
                self.console.print_json(data=items)
        if parsed.get("item"):
            self.console.print("📄 Item:")
            self.console.print_json(data=parsed["item"])
        if parsed.get("tables") is not None:
            self.console.print(f"📋 Tables ({parsed.get('tableCount')}): {parsed['tables']}")


class ChatCLI:
    """Interactive chat interface over a stateful orchestrator."""

    def __init__(self, runtime: AgentRuntime):
        self.runtime = runtime
        self.console = Console()
        self.orchestrator = runtime.new_orchestrator(ConsoleTurnObserver(self.console))

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]🚀 DynamoDB Agent with Bedrock[/bold blue]\n"
                "📝 Type your queries about DynamoDB\n"
                "Commands: tools, clear, quit",
                border_style="blue",
            )
        )

        while True:
            message = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]💬 Query[/bold cyan]")
            command = message.strip().lower()

            if command == "quit":
                self.console.print("[yellow]👋 Goodbye![/yellow]")
                break
            if command == "clear":
                self.orchestrator.reset()
                self.console.print("[yellow]🧹 Conversation history cleared![/yellow]")
                continue
            if command == "tools":
                self._show_tools()
                continue
            if not command:
                continue

            response = await self.orchestrator.run_turn(message, TurnMode.STATEFUL)
            self.console.print(
                Panel(
                    Markdown(response or "(no response)"),
                    title="[bold green]🤖 Assistant[/bold green]",
                    border_style="green",
                    padding=(1, 2),
                )
            )

    def _show_tools(self) -> None:
        lines = [
            f"📌 [bold]{tool.name}[/bold]\n   {tool.description}" for tool in self.runtime.registry.descriptors
        ]
        self.console.print(Panel("\n".join(lines), title="[cyan]🛠️  Available tools[/cyan]", border_style="cyan"))


async def run(server_script: str | None, inference_profile_id: str | None) -> None:
    runtime = AgentRuntime(
        model_config=ModelConfig(inference_profile_id=inference_profile_id),
        backend_config=BackendConfig.with_script(server_script),
    )
    try:
        await runtime.start()
        await ChatCLI(runtime).start()
    finally:
        await runtime.stop()


def main() -> None:
    """Main entry point for the chat CLI."""
    setup_logging(LogConfig(level="WARNING"))

    server_script = sys.argv[1] if len(sys.argv) > 1 else None
    inference_profile_id = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_INFERENCE_PROFILE

    console = Console()
    console.print(f"🧠 Using inference profile: {inference_profile_id}")
    try:
        asyncio.run(run(server_script, inference_profile_id))
    except KeyboardInterrupt:
        console.print("\n[yellow]🛑 Received interrupt, shutting down...[/yellow]")
    except Exception as e:
        console.print(f"[red]❌ Fatal error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
