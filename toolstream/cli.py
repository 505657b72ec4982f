"""
toolstream Command-Line Interface
Main entry point for user interaction.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from toolstream import __version__
from toolstream.config import load_agent_settings, set_project_root
from toolstream.core.channel import StreamEvent
from toolstream.core.config import config
from toolstream.core.conversation import ToolUseConversation, build_registry
from toolstream.core.events import EventBus
from toolstream.core.partial_json import parse_partial_json
from toolstream.core.permissions import PermissionManager
from toolstream.core.renderer import ConsoleRenderer
from toolstream.core.stream import StreamProcessor
from toolstream.core.truncation import get_result_limit, truncate_tool_result
from toolstream.llm.llm_factory import create_llm_client

app = typer.Typer(
    name="toolstream",
    help="toolstream - streaming tool-use runtime for coding agents",
    add_completion=False
)

console = Console(soft_wrap=True)

_LOG_FORMAT = "<level>{level: <8}</level> | <cyan>{name}</cyan> - <level>{message}</level>"

_state = {"verbose": False}


def _read_input(value: str) -> str:
    """Literal text, '-' for stdin, or '@path' for a file."""
    if value == "-":
        return sys.stdin.read()
    if value.startswith("@"):
        return Path(value[1:]).read_text(encoding="utf-8")
    return value


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging")
):
    """Stream model turns and dispatch their tool calls."""
    _state["verbose"] = verbose
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING", format=_LOG_FORMAT)


@app.command()
def run(
    prompt: str = typer.Argument(..., help="What the agent should do"),
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Directory the tools operate in"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to use"),
    mock: bool = typer.Option(False, "--mock", help="Use the scripted offline client"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Auto-approve tools that normally ask"),
    show_reasoning: bool = typer.Option(True, "--reasoning/--no-reasoning", help="Show reasoning text"),
):
    """
    Run a tool-using conversation in a workspace.

    Examples:
        toolstream run "Summarize the README" -w ./project
        toolstream run "List the files" --mock
    """
    config.setup_logging(console_level="DEBUG" if _state["verbose"] else None)
    workspace = workspace.resolve()
    set_project_root(workspace)
    settings = load_agent_settings()
    if yes:
        settings.auto_approve = True

    try:
        client = create_llm_client(config, model=model, mock=mock or None)
    except ValueError as e:
        console.print(f"[red]Failed to create LLM client: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    bus = EventBus()
    renderer = ConsoleRenderer(console, show_reasoning=show_reasoning).attach(bus)
    conversation = ToolUseConversation(
        client=client,
        registry=build_registry(workspace, settings.disabled_tools),
        workspace=workspace,
        settings=settings,
        approver=PermissionManager(workspace, console, auto_approve=settings.auto_approve),
        bus=bus,
    )

    try:
        result = conversation.run(prompt)
    except KeyboardInterrupt:
        conversation.cancel()
        console.print("\n\n[yellow]Cancelled by user[/yellow]")
        raise typer.Exit(130)
    finally:
        renderer.detach()

    console.print()
    console.print(
        f"[dim]{result.turns} turn(s), {len(result.tool_outcomes)} tool call(s), "
        f"{result.total_tokens} tokens[/dim]"
    )
    if not result.success:
        console.print(f"[red]✗[/red] {escape(result.error or '')}")
        raise typer.Exit(1)


@app.command()
def replay(
    events_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSONL file, one stream event per line"),
    as_json: bool = typer.Option(False, "--json", help="Print the finalized turn as JSON"),
):
    """Feed recorded stream events through the processor and show the finalized turn."""
    events = []
    for line_no, line in enumerate(events_file.read_text(encoding="utf-8").splitlines(), 1):
        if not line.strip():
            continue
        try:
            events.append(StreamEvent.from_dict(json.loads(line)))
        except ValueError as e:
            console.print(f"[red]Line {line_no}: {escape(str(e))}[/red]")
            raise typer.Exit(1)

    bus = EventBus()
    renderer = None if as_json else ConsoleRenderer(console).attach(bus)
    result = StreamProcessor(bus=bus).feed(events)
    if renderer is not None:
        renderer.detach()

    if as_json:
        typer.echo(json.dumps({
            "text": result.text,
            "reasoning": result.reasoning,
            "tool_calls": [tc.to_dict() for tc in result.tool_calls],
            "usage": vars(result.usage) if result.usage else None,
            "error": result.error,
        }, indent=2))
    else:
        table = Table(title="Tool calls", show_header=True)
        table.add_column("Id", style="cyan")
        table.add_column("Name")
        table.add_column("Arguments", style="dim")
        for tc in result.tool_calls:
            table.add_row(tc.id, tc.name, json.dumps(tc.arguments))
        console.print(table)
        if result.error:
            console.print(f"[red]Error:[/red] {escape(result.error)}")

    if result.is_total_failure:
        raise typer.Exit(1)


@app.command()
def repair(
    text: str = typer.Argument(..., help="Partial JSON, '-' for stdin or '@file'"),
):
    """Recover a value from truncated or malformed JSON."""
    value = parse_partial_json(_read_input(text))
    if value is None:
        typer.echo("Unrepairable input", err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps(value, ensure_ascii=False))


@app.command()
def truncate(
    text: str = typer.Argument(..., help="Tool output, '-' for stdin or '@file'"),
    tool: str = typer.Option("run_command", "--tool", "-t", help="Tool that produced the output"),
    max_length: Optional[int] = typer.Option(None, "--max-length", "-n", help="Override the tool's limit"),
):
    """Bound a tool result the way it is bounded before reaching the model."""
    content = _read_input(text)
    bounded = truncate_tool_result(content, tool, max_length)
    typer.echo(bounded, nl=False)
    if len(bounded) < len(content):
        typer.echo(
            f"\n[{len(content)} -> {len(bounded)} chars, limit {get_result_limit(tool, max_length)}]",
            err=True,
        )


@app.command()
def tools(
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Project whose config applies"),
):
    """List the built-in tools and their policy."""
    workspace = workspace.resolve()
    set_project_root(workspace)
    settings = load_agent_settings()
    registry = build_registry(workspace, settings.disabled_tools)

    table = Table(title="Tools", show_header=True)
    table.add_column("Tool", style="cyan")
    table.add_column("Category")
    table.add_column("Approval")
    table.add_column("Parallel")
    table.add_column("Enabled")
    for tool in registry.get_all(include_disabled=True):
        table.add_row(
            tool.name,
            tool.category.value,
            tool.approval_type.value,
            "✓" if tool.parallel else "✗",
            "✓" if tool.enabled else "✗",
        )
    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(Panel.fit(f"[bold cyan]toolstream[/bold cyan] v{__version__}", border_style="cyan"))


def main():
    app()


if __name__ == "__main__":
    main()
