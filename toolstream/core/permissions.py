"""
Permission management for tool calls that need confirmation.

Conservative by default, with allowlist overrides:
- Tools whose approval type is "none" never prompt
- "ask" tools prompt unless allowed for the session, allowlisted in the
  project config, matched by a pattern such as "run_command(git:*)", or
  auto-approve is on
- "always-ask" tools prompt every time
- A denylist blocks tools outright

Preferences persist in <project>/.toolstream/permissions.json.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from toolstream.core.types import ApprovalType, ToolCall

PERMISSIONS_DIR = ".toolstream"
PERMISSIONS_FILE = "permissions.json"


@dataclass
class PermissionConfig:
    """
    Attributes:
        always_allowed: Tool names or patterns that never prompt for "ask" tools
        allowed_this_session: Tools approved for the current session only
        denied: Tools that are explicitly denied
    """
    always_allowed: Set[str] = field(default_factory=set)
    allowed_this_session: Set[str] = field(default_factory=set)
    denied: Set[str] = field(default_factory=set)


class PermissionManager:
    """Approver for the tool runner, prompting on the terminal."""

    def __init__(self, project_root: Path, console: Optional[Console] = None, auto_approve: bool = False):
        """
        Initialize permission manager.

        Args:
            project_root: Root directory of the project
            console: Rich console for user interaction
            auto_approve: Approve "ask" tools without prompting
        """
        self.root = Path(project_root)
        self.console = console or Console()
        self.auto_approve = auto_approve
        self.config = self._load_config()

    @property
    def config_path(self) -> Path:
        return self.root / PERMISSIONS_DIR / PERMISSIONS_FILE

    def _load_config(self) -> PermissionConfig:
        """Load the permission file, falling back to an empty config."""
        if self.config_path.exists():
            try:
                data = json.loads(self.config_path.read_text())
                return PermissionConfig(
                    always_allowed=set(data.get("always_allowed", [])),
                    denied=set(data.get("denied", [])),
                )
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load permission config: {e}, using defaults")
        return PermissionConfig()

    def save_config(self) -> None:
        """Persist always_allowed and denied. Session approvals are never saved."""
        data = {
            "always_allowed": sorted(self.config.always_allowed),
            "denied": sorted(self.config.denied),
        }
        try:
            self.config_path.parent.mkdir(exist_ok=True, parents=True)
            self.config_path.write_text(json.dumps(data, indent=2))
            logger.debug(f"Saved permission config to {self.config_path}")
        except OSError as e:
            logger.error(f"Failed to save permission config: {e}")

    def __call__(self, tool_call: ToolCall, approval_type: ApprovalType) -> bool:
        return self.approve(tool_call, approval_type)

    def approve(self, tool_call: ToolCall, approval_type: ApprovalType) -> bool:
        """
        Decide whether a tool call may run.

        Decision flow:
        1. Denied list -> deny
        2. Approval type "none" -> allow
        3. "always-ask" -> prompt (y/n)
        4. Auto-approve, session allowlist, persistent allowlist or pattern -> allow
        5. Prompt (y/a/A/n/N)
        """
        tool_name = tool_call.name
        parameters = tool_call.clean_arguments()

        if tool_name in self.config.denied:
            logger.info(f"Tool '{tool_name}' is denied in config")
            return False

        if approval_type == ApprovalType.NONE:
            return True

        if approval_type == ApprovalType.ALWAYS_ASK:
            return self._ask_user(tool_name, parameters, remember=False)

        if self.auto_approve:
            return True
        if tool_name in self.config.allowed_this_session:
            return True
        if self._matches_allowlist(tool_name, parameters):
            return True

        return self._ask_user(tool_name, parameters, remember=True)

    def _matches_allowlist(self, tool_name: str, parameters: Dict[str, Any]) -> bool:
        """
        Pattern examples:
        - "write_file" allows all write_file calls
        - "run_command(git:*)" allows commands starting with "git"
        - "run_command(npm test)" allows exactly that command
        """
        for pattern in self.config.always_allowed:
            if pattern == tool_name:
                return True

            if "(" not in pattern or not pattern.endswith(")"):
                continue
            pattern_tool, argument_pattern = pattern[:-1].split("(", 1)
            if pattern_tool != tool_name:
                continue
            if argument_pattern in ("*", ":*"):
                return True

            command = str(parameters.get("command", ""))
            if argument_pattern.endswith(":*"):
                prefix = argument_pattern[:-2]
                if command == prefix or command.startswith(prefix + " "):
                    return True
            elif argument_pattern.endswith("*"):
                if command.startswith(argument_pattern[:-1]):
                    return True
            elif command == argument_pattern:
                return True

        return False

    def _ask_user(self, tool_name: str, parameters: Dict[str, Any], remember: bool) -> bool:
        """
        Options when remember is set:
          y: Allow once, a: Allow for this session, A: Always allow (saved),
          n: Deny once, N: Never allow (saved)
        Otherwise only y/n.
        """
        self.console.print(f"\n[yellow]Permission required:[/yellow] [bold]{tool_name}[/bold]")

        relevant_params = self._get_relevant_params(tool_name, parameters)
        if relevant_params:
            self.console.print("[dim]Parameters:[/dim]")
            for key, value in relevant_params.items():
                value_str = str(value)
                if len(value_str) > 60:
                    value_str = value_str[:57] + "..."
                self.console.print(f"  [dim]{key}:[/dim] {escape(value_str)}")

        choices = ["y", "a", "A", "n", "N"] if remember else ["y", "n"]
        try:
            choice = Prompt.ask("Choice", choices=choices, default="n", console=self.console)
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n[yellow]Permission prompt interrupted[/yellow]\n")
            return False

        if choice == "y":
            return True

        if choice == "a":
            self.config.allowed_this_session.add(tool_name)
            self.console.print("[green]✓[/green] Approved for this session\n")
            return True

        if choice == "A":
            self.config.always_allowed.add(tool_name)
            self.save_config()
            self.console.print(f"[green]✓[/green] {tool_name} added to allowlist (permanent)\n")
            return True

        if choice == "N":
            self.config.denied.add(tool_name)
            self.save_config()
            self.console.print(f"[red]✗[/red] {tool_name} added to denylist (permanent)\n")
            return False

        self.console.print("[yellow]Permission denied once[/yellow]\n")
        return False

    @staticmethod
    def _get_relevant_params(tool_name: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        relevant_keys = {
            "write_file": ["path"],
            "edit_file": ["path"],
            "delete_path": ["path", "recursive"],
            "run_command": ["command", "cwd"],
            "create_directory": ["path"],
        }
        keys = relevant_keys.get(tool_name, list(parameters.keys())[:3])
        return {k: parameters.get(k) for k in keys if k in parameters}

    def add_safe_patterns(self, patterns: List[str]) -> None:
        """Add allowlist patterns, e.g. ["run_command(git:*)"], and save."""
        self.config.always_allowed.update(patterns)
        self.save_config()
        logger.info(f"Added {len(patterns)} patterns to allowlist")

    def reset_session_permissions(self) -> None:
        self.config.allowed_this_session.clear()
        logger.debug("Reset session permissions")
