"""
Main CLI application entry point.

This module contains the Typer application and command handlers for
chat-connector.
"""

from datetime import datetime, timezone
from typing import Optional
import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from chat_connector import VERSION
from chat_connector.config.settings import ConnectorSettings, get_settings
from chat_connector.core.client.chat_completion import ChatCompletionService, create_chat_completion_service
from chat_connector.core.client.contents import ChatHistory
from chat_connector.core.client.errors import ConnectorError, classify_error, create_user_friendly_message
from chat_connector.core.client.execution_settings import ExecutionSettings
from chat_connector.core.function_calling.tool_call_behavior import ToolCallBehavior
from chat_connector.tools.registry import FunctionRegistry

# Create the main Typer application
app = typer.Typer(
    name="chat-connector",
    help="chat-connector - chat completion with automatic function calling",
    add_completion=False,
    rich_markup_mode="rich",
)

# Rich console for output
console = Console()
logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        console.print(f"[bold blue]chat-connector[/bold blue] version [green]{VERSION}[/green]")
        raise typer.Exit()


def setup_logging(settings: ConnectorSettings) -> None:
    """Route log records through rich."""
    level = "DEBUG" if settings.debug else settings.log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=settings.debug)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """
    chat-connector - chat completion with automatic function calling.

    Talks to any OpenAI-compatible chat-completion endpoint.
    """
    pass


@app.command("chat")
def chat_command(
    message: Optional[str] = typer.Argument(None, help="Message to send; omit for an interactive session"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to use"),
    system: Optional[str] = typer.Option(None, "--system", "-s", help="System prompt"),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Enable/disable streaming responses"),
    functions: bool = typer.Option(True, "--functions/--no-functions", help="Let the model call built-in functions"),
) -> None:
    """Start a chat session or send a single message."""
    settings = get_settings()
    setup_logging(settings)
    if model:
        settings = settings.model_copy(update={"model_id": model})

    try:
        service = create_chat_completion_service(settings)
    except ConnectorError as e:
        console.print(f"[red]Error:[/red] {create_user_friendly_message(e)}")
        raise typer.Exit(1)

    execution_settings = ExecutionSettings(
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
        chat_system_prompt=system,
        tool_call_behavior=(
            ToolCallBehavior.auto_invoke_functions() if functions else ToolCallBehavior.disabled()
        ),
    )
    registry = builtin_registry() if functions else None

    asyncio.run(_async_chat_command(service, message, execution_settings, registry, stream))


async def _async_chat_command(
    service: ChatCompletionService,
    message: Optional[str],
    settings: ExecutionSettings,
    registry: Optional[FunctionRegistry],
    stream: bool,
) -> None:
    """Async implementation of chat command."""
    history = ChatHistory()
    try:
        if message:
            await _send_message(service, history, message, settings, registry, stream)
        else:
            await _interactive_chat(service, history, settings, registry, stream)
    finally:
        await service.transport.aclose()


async def _send_message(
    service: ChatCompletionService,
    history: ChatHistory,
    message: str,
    settings: ExecutionSettings,
    registry: Optional[FunctionRegistry],
    stream: bool,
) -> None:
    """Send one user message and print the reply."""
    history.add_user_message(message)

    try:
        if stream:
            console.print("[blue]AI:[/blue] ", end="")
            reply = ""
            async for chunk in service.get_streaming_chat_message_contents(history, settings, registry):
                if chunk.content:
                    console.print(chunk.content, end="")
                    reply += chunk.content
            console.print()
            if reply:
                history.add_assistant_message(reply)
        else:
            with console.status("[dim]Thinking...[/dim]"):
                response = await service.get_chat_message_content(history, settings, registry)
            if response is None:
                console.print("[dim]No response[/dim]")
                return
            console.print(f"[blue]AI:[/blue] {response.content or ''}")
            history.add_message(response)
            if response.usage:
                console.print(f"[dim]({response.usage.total_tokens} tokens)[/dim]")
    except Exception as e:
        error = classify_error(e)
        logger.debug(f"Chat request failed: {error!r}")
        console.print(f"\n[red]Error:[/red] {create_user_friendly_message(error)}")


async def _interactive_chat(
    service: ChatCompletionService,
    history: ChatHistory,
    settings: ExecutionSettings,
    registry: Optional[FunctionRegistry],
    stream: bool,
) -> None:
    """Start an interactive chat session."""
    console.print("[bold green]chat-connector[/bold green] - Interactive Chat")
    console.print(f"[dim]Model: {service.model_id}[/dim]")
    console.print(f"[dim]Streaming: {'enabled' if stream else 'disabled'}[/dim]")
    console.print("[dim]Type 'exit', 'quit', or press Ctrl+C to exit[/dim]")
    console.print("[dim]Type '/help' for commands[/dim]\n")

    while True:
        try:
            user_input = typer.prompt("You")
        except (KeyboardInterrupt, EOFError, typer.Abort):
            console.print("\n[dim]Goodbye![/dim]")
            break

        command = user_input.lower().strip()
        if command in ["exit", "quit", "q"]:
            console.print("[dim]Goodbye![/dim]")
            break
        elif command == "/help":
            _show_chat_help()
        elif command == "/stats":
            _show_chat_stats(service)
        elif command == "/clear":
            history = ChatHistory()
            console.print("[dim]History cleared[/dim]")
        elif command == "/stream":
            stream = not stream
            console.print(f"[dim]Streaming {'enabled' if stream else 'disabled'}[/dim]")
        elif command:
            await _send_message(service, history, user_input, settings, registry, stream)


def _show_chat_help() -> None:
    """Show help for chat commands."""
    help_text = """[bold]Chat Commands:[/bold]

[cyan]/help[/cyan]     - Show this help message
[cyan]/stats[/cyan]    - Show exchange statistics
[cyan]/clear[/cyan]    - Clear conversation history
[cyan]/stream[/cyan]   - Toggle streaming mode
[cyan]exit[/cyan]      - Exit the chat session

[dim]Press Ctrl+C or type 'exit' to quit[/dim]"""

    console.print(Panel(help_text, title="Help", border_style="blue"))


def _show_chat_stats(service: ChatCompletionService) -> None:
    stats = service.orchestrator.get_statistics()
    table = Table(title="Exchange Statistics", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Exchanges", str(stats["total_exchanges"]))
    table.add_row("Round Trips", str(stats["total_round_trips"]))
    table.add_row("Function Calls", str(stats["total_function_calls"]))
    table.add_row("Functions Invoked", str(stats["invoked_function_calls"]))
    table.add_row("Success Rate", f"{stats['success_rate']:.0%}")
    console.print(table)


@app.command("config")
def config_command() -> None:
    """Show the effective configuration."""
    try:
        settings = get_settings()
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Current Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for key, value in settings.to_dict().items():
        table.add_row(key, "Not set" if value is None else str(value))
    console.print(table)


def builtin_registry() -> FunctionRegistry:
    """Functions offered to the model from the CLI."""
    registry = FunctionRegistry()
    registry.add_plugin("time", [current_utc_time])
    return registry


def current_utc_time() -> str:
    """Get the current date and time in UTC as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def run() -> None:
    """Entry point for the CLI application."""
    app()


if __name__ == "__main__":
    run()
