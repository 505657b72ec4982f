"""
Tool Definitions for LLM Function Calling
Defines the tools the model can call and their static per-tool policy.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from toolstream.core.types import ApprovalType, ToolCategory

# Tool definitions in OpenAI function calling format
GENERATION_TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "read_file",
            "description": "Read file contents with an optional line range. You can read several files in parallel.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "File path (relative to the workspace root)"
                    },
                    "start_line": {
                        "type": "integer",
                        "minimum": 1,
                        "description": "Starting line (1-indexed)"
                    },
                    "end_line": {
                        "type": "integer",
                        "minimum": 1,
                        "description": "Ending line (inclusive)"
                    }
                },
                "required": ["path"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "list_directory",
            "description": "List files and folders in a directory.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Directory path (defaults to the workspace root)"
                    }
                },
                "required": []
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "search_files",
            "description": "Search for a text pattern in files. Returns matching lines as path:line: text.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Directory to search"
                    },
                    "pattern": {
                        "type": "string",
                        "minLength": 1,
                        "description": "Search pattern"
                    },
                    "is_regex": {
                        "type": "boolean",
                        "description": "Treat pattern as a regular expression"
                    },
                    "file_pattern": {
                        "type": "string",
                        "description": "File filter (e.g. \"*.py\")"
                    }
                },
                "required": ["path", "pattern"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "write_file",
            "description": "Create a new file or overwrite an existing one. Prefer edit_file for modifications.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path where the file should be written"
                    },
                    "content": {
                        "type": "string",
                        "description": "Complete content of the file"
                    }
                },
                "required": ["path", "content"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "edit_file",
            "description": "Edit a file by replacing exact content. Read the file first; old_content must match exactly including whitespace.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the file to edit"
                    },
                    "old_content": {
                        "type": "string",
                        "minLength": 1,
                        "description": "The exact content to replace"
                    },
                    "new_content": {
                        "type": "string",
                        "description": "The replacement content"
                    },
                    "replace_all": {
                        "type": "boolean",
                        "description": "Replace every occurrence instead of the first"
                    }
                },
                "required": ["path", "old_content", "new_content"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "create_directory",
            "description": "Create a directory (and any missing parents).",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path of the directory to create"
                    }
                },
                "required": ["path"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "delete_path",
            "description": "Delete a file or directory.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the file or directory to delete"
                    },
                    "recursive": {
                        "type": "boolean",
                        "description": "Set true to delete non-empty directories"
                    }
                },
                "required": ["path"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "run_command",
            "description": "Execute a shell command (git, npm, python, pytest, etc). For file operations use the file tools instead.",
            "parameters": {
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "minLength": 1,
                        "description": "The shell command to execute"
                    },
                    "cwd": {
                        "type": "string",
                        "description": "Directory to run the command in (defaults to the workspace root)"
                    },
                    "timeout": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": 600,
                        "description": "Timeout in seconds (default 30)"
                    }
                },
                "required": ["command"]
            }
        }
    },
]


@dataclass(frozen=True)
class ToolConfig:
    """Static policy for one tool."""
    category: ToolCategory = ToolCategory.READ
    approval_type: ApprovalType = ApprovalType.NONE
    parallel: bool = False


TOOL_CONFIGS: Dict[str, ToolConfig] = {
    "read_file": ToolConfig(ToolCategory.READ, ApprovalType.NONE, parallel=True),
    "list_directory": ToolConfig(ToolCategory.READ, ApprovalType.NONE, parallel=True),
    "search_files": ToolConfig(ToolCategory.SEARCH, ApprovalType.NONE, parallel=True),
    "write_file": ToolConfig(ToolCategory.WRITE, ApprovalType.ASK),
    "edit_file": ToolConfig(ToolCategory.WRITE, ApprovalType.ASK),
    "create_directory": ToolConfig(ToolCategory.WRITE, ApprovalType.NONE),
    "delete_path": ToolConfig(ToolCategory.WRITE, ApprovalType.ALWAYS_ASK),
    "run_command": ToolConfig(ToolCategory.TERMINAL, ApprovalType.ASK),
}

# Tools that modify a single file named by their "path" argument
FILE_EDIT_TOOLS: set = {"write_file", "edit_file", "delete_path"}


def get_tool_by_name(name: str) -> Optional[Dict[str, Any]]:
    """Get tool definition by function name."""
    for tool in GENERATION_TOOLS:
        if tool["function"]["name"] == name:
            return tool
    return None


def get_tool_schema(name: str) -> Optional[Dict[str, Any]]:
    """Get the JSON schema of a tool's parameters."""
    tool = get_tool_by_name(name)
    return tool["function"]["parameters"] if tool else None


def get_tool_config(name: str) -> Optional[ToolConfig]:
    return TOOL_CONFIGS.get(name)


def get_tool_category(name: str) -> ToolCategory:
    """Category of a tool, read-only for anything unconfigured."""
    config = TOOL_CONFIGS.get(name)
    return config.category if config else ToolCategory.READ


def is_file_edit_tool(name: str) -> bool:
    return name in FILE_EDIT_TOOLS