"""
Tool result bounding.

Caps tool output before it goes back into the conversation, keeping the part
of the output most likely to matter for each kind of tool.
"""

from typing import Dict, Optional, Tuple

from toolstream.core.tool_definitions import get_tool_category
from toolstream.core.types import ToolCategory

DEFAULT_RESULT_LIMIT = 12000

RESULT_LIMITS: Dict[str, int] = {
    "read_file": 20000,
    "search_files": 10000,
    "list_directory": 8000,
    "run_command": 15000,
}

# (head, tail) share of the available space
RETENTION_RATIOS: Dict[ToolCategory, Tuple[float, float]] = {
    # Most relevant matches come first
    ToolCategory.SEARCH: (0.9, 0.05),
    # Errors and exit status come last
    ToolCategory.TERMINAL: (0.2, 0.75),
}
DEFAULT_RETENTION: Tuple[float, float] = (0.7, 0.25)

TRUNCATION_MARKER = "\n\n... [truncated: {omitted} chars omitted] ...\n\n"


def get_result_limit(tool_name: str, max_length: Optional[int] = None) -> int:
    """Effective output limit for a tool. Non-positive overrides are ignored."""
    if max_length is not None and max_length > 0:
        return max_length
    return RESULT_LIMITS.get(tool_name, DEFAULT_RESULT_LIMIT)


def truncate_tool_result(
    result: str,
    tool_name: str,
    max_length: Optional[int] = None,
    category: Optional[ToolCategory] = None
) -> str:
    """
    Bound a tool result to its limit, splicing out the middle.

    Args:
        result: Raw tool output
        tool_name: Name of the tool that produced it
        max_length: Explicit positive limit, overrides the per-tool table
        category: Explicit category, overrides the tool's configured one

    Returns:
        The result unchanged when it fits, otherwise head + marker + tail,
        never longer than the limit
    """
    if not result:
        return ""

    limit = get_result_limit(tool_name, max_length)
    if len(result) <= limit:
        return result

    # The marker's length depends on the omitted count, which is at most len(result).
    budget = limit - len(TRUNCATION_MARKER.format(omitted=len(result)))
    if budget <= 0:
        return result[:limit]

    head_ratio, tail_ratio = RETENTION_RATIOS.get(category or get_tool_category(tool_name), DEFAULT_RETENTION)
    head_size = int(budget * head_ratio)
    tail_size = int(budget * tail_ratio)

    head = result[:head_size]
    tail = result[len(result) - tail_size:] if tail_size else ""
    omitted = len(result) - head_size - tail_size

    return head + TRUNCATION_MARKER.format(omitted=omitted) + tail
