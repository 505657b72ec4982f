"""
Terminal renderer for lifecycle signals.
"""

from typing import Any, Callable, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from toolstream.core.events import AgentEvent, EventBus, event_bus

# Display names for the built-in tools
OPERATION_NAMES = {
    "read_file": "Read",
    "list_directory": "List",
    "search_files": "Search",
    "write_file": "Write",
    "edit_file": "Edit",
    "create_directory": "Create Directory",
    "delete_path": "Delete",
    "run_command": "Bash",
}

_SUMMARY_KEYS = ("path", "command", "pattern")


def format_argument_summary(arguments: Dict[str, Any], width: int = 60) -> str:
    for key in _SUMMARY_KEYS:
        if arguments.get(key):
            value = str(arguments[key]).replace("\n", " ")
            return value if len(value) <= width else value[:width - 3] + "..."
    return ""


class ConsoleRenderer:
    """Prints streamed text, reasoning and tool activity."""

    def __init__(self, console: Optional[Console] = None, show_reasoning: bool = True, preview_lines: int = 3):
        self.console = console or Console()
        self.show_reasoning = show_reasoning
        self.preview_lines = preview_lines
        self._unsubscribers: List[Callable[[], None]] = []
        self._at_line_start = True

    def attach(self, bus: Optional[EventBus] = None) -> "ConsoleRenderer":
        bus = bus or event_bus
        self._unsubscribers.append(bus.subscribe(self.handle))
        return self

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def handle(self, event: AgentEvent) -> None:
        handler = getattr(self, "_on_" + event.type.replace(":", "_"), None)
        if handler is not None:
            handler(event)

    def _write(self, text: str, style: Optional[str] = None) -> None:
        self.console.print(Text(text, style=style or ""), end="")
        self._at_line_start = text.endswith("\n")

    def _newline(self) -> None:
        if not self._at_line_start:
            self.console.print()
            self._at_line_start = True

    def _on_stream_text(self, event: AgentEvent) -> None:
        self._write(event.get("text", ""))

    def _on_stream_reasoning(self, event: AgentEvent) -> None:
        if not self.show_reasoning:
            return
        phase = event.get("phase")
        if phase == "start":
            self._newline()
            self._write("Thinking: ", style="dim italic")
        elif phase == "delta":
            self._write(event.get("text", ""), style="dim italic")
        elif phase == "end":
            self._newline()

    def _on_turn_done(self, event: AgentEvent) -> None:
        self._newline()

    def _on_turn_error(self, event: AgentEvent) -> None:
        self._newline()
        self.console.print(f"[red]✗[/red] {escape(str(event.get('error')))}", highlight=False)

    def _on_tool_running(self, event: AgentEvent) -> None:
        self._newline()
        name = event.get("name", "")
        operation = OPERATION_NAMES.get(name, name)
        summary = format_argument_summary(event.get("args") or {})
        line = Text.assemble(("⏺ ", "green"), (operation, "bold"), f"({summary})" if summary else "")
        self.console.print(line)

    def _on_tool_completed(self, event: AgentEvent) -> None:
        lines = str(event.get("result", "")).splitlines() or [""]
        shown = lines[:self.preview_lines]
        for i, line in enumerate(shown):
            prefix = "  ⎿ " if i == 0 else "    "
            self.console.print(Text.assemble((prefix, "green"), (line, "dim")))
        if len(lines) > len(shown):
            self.console.print(Text(f"    … +{len(lines) - len(shown)} lines", style="dim"))

    def _on_tool_error(self, event: AgentEvent) -> None:
        self.console.print(Text.assemble(("  ⎿ ", "red"), (str(event.get("error", "")), "dim")))

    def _on_tool_pending(self, event: AgentEvent) -> None:
        self._newline()

    def _on_tool_rejected(self, event: AgentEvent) -> None:
        self.console.print(Text.assemble(("  ⎿ ", "yellow"), ("Rejected", "dim")))
