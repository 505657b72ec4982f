"""
XML tool-call parser.

Some models emit tool calls as markup inside ordinary text instead of using
the function-calling protocol:

    <tool_call>
      <function=read_file>
        <parameter=path>src/app.py</parameter>
      </function>
    </tool_call>

Ids are derived from the position of the function tag, so scanning a text
and then scanning a longer text that starts with it yields the same ids for
the calls both contain.
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from toolstream.core.partial_json import parse_partial_json

FUNCTION_TAG_REGEX = re.compile(
    r"<function[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>([\s\S]*?)</function>", re.IGNORECASE
)
FUNCTION_START_REGEX = re.compile(r"<function[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>", re.IGNORECASE)
PARAMETER_REGEX = re.compile(
    r"<parameter[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>([\s\S]*?)</parameter>", re.IGNORECASE
)
PARAMETER_PARTIAL_REGEX = re.compile(
    r"<parameter[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>([\s\S]*?)(?:</parameter>|$)", re.IGNORECASE
)
TOOL_CALL_BLOCK_REGEX = re.compile(r"<tool_call>([\s\S]*?)</tool_call>", re.IGNORECASE)


def parse_xml_tool_calls(content: str) -> List[Dict[str, Any]]:
    """
    Find complete tool calls in text.

    Both ``<tool_call>``-wrapped and standalone ``<function>`` blocks are
    recognised, in order of appearance.

    Returns:
        List of {"id", "name", "arguments"} dicts
    """
    if not content or "<function" not in content.lower():
        return []

    found: List[Tuple[int, Dict[str, Any]]] = []
    for match in FUNCTION_TAG_REGEX.finditer(content):
        name = match.group(1)
        found.append((match.start(), {
            "id": f"xml-{name}-{match.start()}",
            "name": name,
            "arguments": _parse_parameters(match.group(2)),
        }))

    if found:
        logger.debug(f"Parsed {len(found)} XML tool call(s)")
    return [call for _, call in sorted(found, key=lambda item: item[0])]


def _parse_parameters(params_content: str) -> Dict[str, Any]:
    args: Dict[str, Any] = {}
    for match in PARAMETER_REGEX.finditer(params_content):
        value: Any = match.group(2).strip()
        try:
            value = json.loads(value)
        except ValueError:
            pass
        args[match.group(1)] = value
    return args


def detect_streaming_xml_tool_call(content: str) -> Optional[Dict[str, Any]]:
    """
    Inspect the last function block in a growing text, closed or not.

    Returns:
        {"id", "name", "arguments", "is_closed"} or None when no function tag is present
    """
    last = None
    for match in FUNCTION_START_REGEX.finditer(content):
        last = match
    if last is None:
        return None

    remaining = content[last.end():]
    is_closed = "</function>" in remaining.lower()

    args: Dict[str, Any] = {}
    for match in PARAMETER_PARTIAL_REGEX.finditer(remaining):
        value: Any = match.group(2).strip()
        if value.startswith(("{", "[")):
            parsed = parse_partial_json(value)
            if parsed:
                value = parsed
        args[match.group(1)] = value

    return {
        "id": f"xml-{last.group(1)}-{last.start()}",
        "name": last.group(1),
        "arguments": {**args, "_streaming": not is_closed},
        "is_closed": is_closed,
    }


def remove_xml_tool_calls(content: str) -> str:
    """Strip tool-call markup from text."""
    cleaned = TOOL_CALL_BLOCK_REGEX.sub("", content)
    cleaned = FUNCTION_TAG_REGEX.sub("", cleaned)
    return cleaned.strip()
