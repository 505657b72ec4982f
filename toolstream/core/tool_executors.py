"""
Tool Executors
Executes the actual operations for each built-in tool.

Every executor takes validated arguments plus a ToolExecutionContext and
returns a ToolExecutionResult. Invalid paths raise ValueError; the registry
turns any exception into an "Execution error" result.
"""

import re
import shutil
import subprocess
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from toolstream.core.types import ToolExecutionContext, ToolExecutionResult, ToolExecutorFn

MAX_SEARCH_MATCHES = 50
DEFAULT_COMMAND_TIMEOUT = 30


class ToolExecutors:
    """Built-in tools operating inside one workspace directory."""

    def __init__(self, workspace: Union[str, Path]):
        """
        Initialize tool executors.

        Args:
            workspace: Root directory every path argument is resolved against
        """
        self.workspace = Path(workspace).resolve()
        self.workspace.mkdir(parents=True, exist_ok=True)

    def _root(self, context: Optional[ToolExecutionContext]) -> Path:
        if context is not None and context.workspace_path is not None:
            return Path(context.workspace_path).resolve()
        return self.workspace

    def resolve_path(
        self,
        path_value: Union[str, Path, None],
        context: Optional[ToolExecutionContext] = None
    ) -> Path:
        """
        Resolve a path relative to the workspace while preventing escape.

        Raises:
            ValueError: If the path points outside the workspace
        """
        root = self._root(context)
        if path_value in (None, "", "."):
            return root

        raw_path = Path(path_value)
        if raw_path.is_absolute():
            try:
                raw_path = raw_path.relative_to(root)
            except ValueError:
                raise ValueError("Absolute paths must be inside the workspace")

        target_path = (root / raw_path).resolve()
        try:
            target_path.relative_to(root)
        except ValueError:
            raise ValueError("Path escapes the workspace")

        return target_path

    def _relative(self, path: Path, context: Optional[ToolExecutionContext]) -> str:
        try:
            return str(path.relative_to(self._root(context))) or "."
        except ValueError:
            return str(path)

    # ------------------------------------------------------------------
    # Read tools
    # ------------------------------------------------------------------
    def read_file(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        """Read a file, optionally a 1-indexed inclusive line range."""
        file_path = self.resolve_path(args["path"], context)
        if not file_path.is_file():
            return ToolExecutionResult.fail(f"File not found: {args['path']}")

        lines = file_path.read_text(encoding="utf-8", errors="replace").splitlines()
        total_lines = len(lines)

        start_line = args.get("start_line")
        end_line = args.get("end_line")
        if start_line is None and end_line is None:
            return ToolExecutionResult.ok("\n".join(lines), total_lines=total_lines)

        start = max(1, start_line or 1)
        end = min(total_lines, end_line or total_lines)
        if start > end:
            return ToolExecutionResult.fail(
                f"Invalid line range {start}-{end} ({args['path']} has {total_lines} lines)"
            )

        selected = lines[start - 1:end]
        numbered = "\n".join(f"{start + i}: {line}" for i, line in enumerate(selected))
        return ToolExecutionResult.ok(numbered, total_lines=total_lines, start_line=start, end_line=end)

    def list_directory(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        """List the entries of a directory, directories first."""
        directory = args.get("path", ".")
        dir_path = self.resolve_path(directory, context)
        if not dir_path.is_dir():
            return ToolExecutionResult.fail(f"Directory not found: {directory}")

        entries = []
        for item in sorted(dir_path.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower())):
            if item.name.startswith("."):
                continue
            rel_path = self._relative(item, context)
            entries.append(f"{rel_path}/" if item.is_dir() else rel_path)

        if not entries:
            return ToolExecutionResult.ok(f"{directory} is empty", count=0)
        return ToolExecutionResult.ok("\n".join(entries), count=len(entries))

    def search_files(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        """Search file contents for a literal string or a regex."""
        pattern = args["pattern"]
        search_dir = self.resolve_path(args.get("path", "."), context)
        file_pattern = args.get("file_pattern")

        if args.get("is_regex"):
            try:
                regex = re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                return ToolExecutionResult.fail(f"Invalid regex: {e}")
        else:
            regex = re.compile(re.escape(pattern), re.IGNORECASE)

        candidates = [search_dir] if search_dir.is_file() else sorted(search_dir.rglob("*"))
        matches = []
        for file_path in candidates:
            if not file_path.is_file() or file_path.name.startswith("."):
                continue
            if file_pattern and not fnmatch(file_path.name, file_pattern):
                continue
            try:
                content = file_path.read_text(encoding="utf-8", errors="ignore")
            except OSError as e:
                logger.debug(f"Skipping unreadable file {file_path}: {e}")
                continue
            for i, line in enumerate(content.splitlines(), 1):
                if regex.search(line):
                    matches.append(f"{self._relative(file_path, context)}:{i}:{line.strip()}")
                    if len(matches) >= MAX_SEARCH_MATCHES:
                        break
            if len(matches) >= MAX_SEARCH_MATCHES:
                break

        if not matches:
            return ToolExecutionResult.ok(f"No matches found for '{pattern}'", count=0)
        return ToolExecutionResult.ok("\n".join(matches), count=len(matches))

    # ------------------------------------------------------------------
    # Write tools
    # ------------------------------------------------------------------
    def write_file(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        file_path = self.resolve_path(args["path"], context)
        if file_path.is_dir():
            return ToolExecutionResult.fail(f"{args['path']} is a directory")

        is_overwrite = file_path.exists()
        file_path.parent.mkdir(parents=True, exist_ok=True)
        content = args["content"]
        file_path.write_text(content, encoding="utf-8")

        line_count = len(content.splitlines())
        action = "Overwrote" if is_overwrite else "Created"
        return ToolExecutionResult.ok(
            f"{action} {args['path']} ({line_count} lines)", line_count=line_count, is_overwrite=is_overwrite
        )

    def edit_file(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        """Replace exact text in a file."""
        file_path = self.resolve_path(args["path"], context)
        if not file_path.is_file():
            return ToolExecutionResult.fail(
                f"File not found: {args['path']}. Use write_file to create a new file instead."
            )

        old_content = args["old_content"]
        new_content = args["new_content"]
        if old_content == new_content:
            return ToolExecutionResult.fail("No changes needed - content already matches")

        content = file_path.read_text(encoding="utf-8")
        occurrences = content.count(old_content)
        if occurrences == 0:
            return ToolExecutionResult.fail(f"Content not found in {args['path']}")

        replace_all = bool(args.get("replace_all"))
        if occurrences > 1 and not replace_all:
            return ToolExecutionResult.fail(
                f"Content appears {occurrences} times in {args['path']}; "
                "add surrounding context or set replace_all"
            )

        updated = content.replace(old_content, new_content, -1 if replace_all else 1)
        file_path.write_text(updated, encoding="utf-8")
        replaced = occurrences if replace_all else 1
        return ToolExecutionResult.ok(
            f"Updated {args['path']} ({replaced} replacement{'s' if replaced != 1 else ''})",
            replacements=replaced,
        )

    def create_directory(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        dir_path = self.resolve_path(args["path"], context)
        if dir_path.is_file():
            return ToolExecutionResult.fail(f"{args['path']} exists and is a file")
        dir_path.mkdir(parents=True, exist_ok=True)
        return ToolExecutionResult.ok(f"Created directory: {args['path']}")

    def delete_path(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        target_path = self.resolve_path(args["path"], context)
        if target_path == self._root(context):
            return ToolExecutionResult.fail("Refusing to delete the workspace root")
        if not target_path.exists():
            return ToolExecutionResult.fail(f"Path not found: {args['path']}")

        if target_path.is_dir():
            if any(target_path.iterdir()) and not args.get("recursive"):
                return ToolExecutionResult.fail(
                    f"Directory {args['path']} is not empty; set recursive to delete it"
                )
            shutil.rmtree(target_path)
        else:
            target_path.unlink()

        logger.debug(f"Deleted {target_path}")
        return ToolExecutionResult.ok(f"Deleted {args['path']}")

    # ------------------------------------------------------------------
    # Terminal
    # ------------------------------------------------------------------
    def run_command(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        """Execute a shell command in the workspace."""
        command = args["command"]
        working_dir = self.resolve_path(args.get("cwd", "."), context)
        timeout = args.get("timeout") or DEFAULT_COMMAND_TIMEOUT

        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=working_dir,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired:
            return ToolExecutionResult.fail(f"Command timed out ({timeout}s limit)", command=command)

        stdout = result.stdout.strip()
        stderr = result.stderr.strip()
        output = "\n".join(part for part in (stdout, stderr) if part)

        if result.returncode == 0:
            return ToolExecutionResult.ok(output or "(no output)", command=command, return_code=0)
        return ToolExecutionResult.fail(
            f"Command failed with exit code {result.returncode}" + (f"\n{output}" if output else ""),
            command=command,
            return_code=result.returncode,
        )


def build_executors(workspace: Union[str, Path] = ".") -> Dict[str, ToolExecutorFn]:
    """Name -> executor mapping for ToolRegistry.register_all."""
    executors = ToolExecutors(workspace)
    return {
        "read_file": executors.read_file,
        "list_directory": executors.list_directory,
        "search_files": executors.search_files,
        "write_file": executors.write_file,
        "edit_file": executors.edit_file,
        "create_directory": executors.create_directory,
        "delete_path": executors.delete_path,
        "run_command": executors.run_command,
    }
