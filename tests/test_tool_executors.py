"""
Tests for the built-in tool executors: file reading, listing, search,
edits, deletion and shell commands.
"""

import sys
import tempfile
from pathlib import Path

import pytest

from toolstream.core.registry import ToolRegistry
from toolstream.core.tool_executors import ToolExecutors, build_executors
from toolstream.core.types import ToolExecutionContext


@pytest.fixture
def temp_project():
    """Create a temporary project directory with sample files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)

        (root / "main.py").write_text("""import os
from utils import helper_function

def main():
    print("Hello, World!")
    result = helper_function(42)
    return result
""")

        (root / "utils.py").write_text("""def helper_function(x):
    return x * 2

def another_function():
    pass
""")

        (root / "src").mkdir()
        (root / "src" / "api.py").write_text("""def index():
    return "Hello from API"

def get_users():
    return []
""")
        (root / ".hidden").write_text("secret")

        yield root


@pytest.fixture
def executors(temp_project):
    return ToolExecutors(temp_project)


@pytest.fixture
def context():
    return ToolExecutionContext()


class TestPathResolution:

    def test_relative_path(self, executors, temp_project):
        assert executors.resolve_path("src/api.py") == (temp_project / "src" / "api.py").resolve()

    def test_dot_is_workspace(self, executors):
        assert executors.resolve_path(".") == executors.workspace

    def test_escape_rejected(self, executors):
        with pytest.raises(ValueError, match="escapes"):
            executors.resolve_path("../outside.txt")

    def test_absolute_outside_rejected(self, executors):
        with pytest.raises(ValueError, match="inside the workspace"):
            executors.resolve_path("/etc/passwd")

    def test_absolute_inside_allowed(self, executors, temp_project):
        target = temp_project.resolve() / "main.py"
        assert executors.resolve_path(str(target)) == target

    def test_context_overrides_root(self, executors, temp_project):
        context = ToolExecutionContext(workspace_path=temp_project / "src")
        assert executors.resolve_path("api.py", context) == (temp_project / "src" / "api.py").resolve()


class TestReadFile:

    def test_full_file(self, executors, context):
        result = executors.read_file({"path": "utils.py"}, context)
        assert result.success
        assert result.result.startswith("def helper_function(x):")

    def test_line_range(self, executors, context):
        result = executors.read_file({"path": "main.py", "start_line": 4, "end_line": 5}, context)
        assert result.result == '4: def main():\n5:     print("Hello, World!")'

    def test_range_clamped(self, executors, context):
        result = executors.read_file({"path": "utils.py", "start_line": 4, "end_line": 999}, context)
        assert result.success
        assert result.meta["end_line"] == 5

    def test_invalid_range(self, executors, context):
        result = executors.read_file({"path": "utils.py", "start_line": 50}, context)
        assert not result.success
        assert "Invalid line range" in result.error

    def test_missing_file(self, executors, context):
        result = executors.read_file({"path": "nope.py"}, context)
        assert result.error == "File not found: nope.py"


class TestListDirectory:

    def test_directories_first_hidden_skipped(self, executors, context):
        result = executors.list_directory({"path": "."}, context)
        assert result.result.splitlines() == ["src/", "main.py", "utils.py"]

    def test_subdirectory(self, executors, context):
        result = executors.list_directory({"path": "src"}, context)
        assert result.result == "src/api.py"

    def test_empty_directory(self, executors, context, temp_project):
        (temp_project / "empty").mkdir()
        result = executors.list_directory({"path": "empty"}, context)
        assert result.result == "empty is empty"

    def test_missing_directory(self, executors, context):
        assert not executors.list_directory({"path": "ghost"}, context).success


class TestSearchFiles:

    def test_literal_search(self, executors, context):
        result = executors.search_files({"path": ".", "pattern": "helper_function"}, context)
        lines = result.result.splitlines()
        assert "main.py:2:from utils import helper_function" in lines
        assert "utils.py:1:def helper_function(x):" in lines
        assert result.meta["count"] == 3

    def test_literal_pattern_not_treated_as_regex(self, executors, context):
        result = executors.search_files({"path": ".", "pattern": "x * 2"}, context)
        assert result.result == "utils.py:2:return x * 2"

    def test_regex_search(self, executors, context):
        result = executors.search_files({"path": ".", "pattern": r"def \w+_users", "is_regex": True}, context)
        assert result.result == "src/api.py:4:def get_users():"

    def test_case_insensitive(self, executors, context):
        result = executors.search_files({"path": "src", "pattern": "HELLO FROM"}, context)
        assert result.meta["count"] == 1

    def test_file_pattern(self, executors, context):
        result = executors.search_files({"path": ".", "pattern": "def", "file_pattern": "api.py"}, context)
        assert all(line.startswith("src/api.py:") for line in result.result.splitlines())

    def test_hidden_files_skipped(self, executors, context):
        result = executors.search_files({"path": ".", "pattern": "secret"}, context)
        assert result.result == "No matches found for 'secret'"

    def test_invalid_regex(self, executors, context):
        result = executors.search_files({"path": ".", "pattern": "(unclosed", "is_regex": True}, context)
        assert not result.success
        assert result.error.startswith("Invalid regex")

    def test_match_cap(self, executors, context, temp_project):
        (temp_project / "many.txt").write_text("needle\n" * 200)
        result = executors.search_files({"path": ".", "pattern": "needle"}, context)
        assert result.meta["count"] == 50


class TestWriteAndEdit:

    def test_create_then_overwrite(self, executors, context, temp_project):
        created = executors.write_file({"path": "new/notes.md", "content": "a\nb\n"}, context)
        assert created.result == "Created new/notes.md (2 lines)"
        assert (temp_project / "new" / "notes.md").read_text() == "a\nb\n"

        overwritten = executors.write_file({"path": "new/notes.md", "content": "c"}, context)
        assert overwritten.result == "Overwrote new/notes.md (1 lines)"

    def test_write_onto_directory(self, executors, context):
        assert not executors.write_file({"path": "src", "content": "x"}, context).success

    def test_single_replacement(self, executors, context, temp_project):
        result = executors.edit_file(
            {"path": "utils.py", "old_content": "x * 2", "new_content": "x * 3"}, context
        )
        assert result.result == "Updated utils.py (1 replacement)"
        assert "x * 3" in (temp_project / "utils.py").read_text()

    def test_ambiguous_match_refused(self, executors, context, temp_project):
        (temp_project / "dup.txt").write_text("a\na\n")
        result = executors.edit_file({"path": "dup.txt", "old_content": "a", "new_content": "b"}, context)
        assert not result.success
        assert "appears 2 times" in result.error

    def test_replace_all(self, executors, context, temp_project):
        (temp_project / "dup.txt").write_text("a\na\n")
        result = executors.edit_file(
            {"path": "dup.txt", "old_content": "a", "new_content": "b", "replace_all": True}, context
        )
        assert result.result == "Updated dup.txt (2 replacements)"
        assert (temp_project / "dup.txt").read_text() == "b\nb\n"

    def test_missing_content(self, executors, context):
        result = executors.edit_file({"path": "utils.py", "old_content": "zzz", "new_content": "y"}, context)
        assert result.error == "Content not found in utils.py"

    def test_no_op_edit(self, executors, context):
        result = executors.edit_file({"path": "utils.py", "old_content": "x", "new_content": "x"}, context)
        assert result.error == "No changes needed - content already matches"

    def test_edit_missing_file(self, executors, context):
        result = executors.edit_file({"path": "ghost.py", "old_content": "a", "new_content": "b"}, context)
        assert result.error.startswith("File not found: ghost.py")


class TestDirectoriesAndDeletion:

    def test_create_directory(self, executors, context, temp_project):
        assert executors.create_directory({"path": "a/b/c"}, context).success
        assert (temp_project / "a" / "b" / "c").is_dir()

    def test_delete_file(self, executors, context, temp_project):
        assert executors.delete_path({"path": "main.py"}, context).result == "Deleted main.py"
        assert not (temp_project / "main.py").exists()

    def test_non_empty_directory_needs_recursive(self, executors, context, temp_project):
        assert not executors.delete_path({"path": "src"}, context).success
        assert executors.delete_path({"path": "src", "recursive": True}, context).success
        assert not (temp_project / "src").exists()

    def test_root_refused(self, executors, context):
        result = executors.delete_path({"path": "."}, context)
        assert result.error == "Refusing to delete the workspace root"

    def test_missing_path(self, executors, context):
        assert executors.delete_path({"path": "ghost"}, context).error == "Path not found: ghost"


class TestRunCommand:

    def test_success(self, executors, context):
        result = executors.run_command({"command": f'"{sys.executable}" -c "print(42)"'}, context)
        assert result.success
        assert result.result == "42"

    def test_runs_in_workspace(self, executors, context):
        result = executors.run_command(
            {"command": f'"{sys.executable}" -c "import os; print(sorted(os.listdir()))"', "cwd": "src"}, context
        )
        assert "api.py" in result.result

    def test_failure_reports_exit_code(self, executors, context):
        result = executors.run_command({"command": f'"{sys.executable}" -c "import sys; sys.exit(3)"'}, context)
        assert not result.success
        assert result.error.startswith("Command failed with exit code 3")
        assert result.meta["return_code"] == 3

    def test_empty_output(self, executors, context):
        result = executors.run_command({"command": f'"{sys.executable}" -c "pass"'}, context)
        assert result.result == "(no output)"


class TestRegistryIntegration:

    def test_build_executors_registers_everything(self, temp_project):
        registry = ToolRegistry()
        registry.register_all(build_executors(temp_project))
        assert len(registry.get_all()) == 8

        result = registry.execute("read_file", {"path": "../escape.txt"})
        assert not result.success
        assert result.error == "Execution error: Path escapes the workspace"
