"""
Partial JSON Repair
Best-effort recovery of tool arguments from truncated or malformed model output.

Streaming providers deliver tool arguments in fragments, so at any point the
buffer may stop mid-string or with brackets still open. Recovery runs in order
of decreasing confidence:

1. Strict parse.
2. Bracket-stack repair: close the open string and every open bracket.
3. Field extraction: pull well-known argument fields out with regexes.

Nothing here raises; unrecoverable input yields None.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

# Common tool argument names tried by the field-extraction fallback.
# Matching is by exact field name only.
KNOWN_FIELDS: Tuple[str, ...] = (
    "path",
    "content",
    "command",
    "query",
    "pattern",
    "search_replace_blocks",
    "start_line",
    "end_line",
    "line",
    "column",
    "paths",
    "url",
    "question",
    "old_content",
    "new_content",
    "cwd",
)

_BARE_LITERAL = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null")


def parse_partial_json(text: str, known_fields: Optional[Iterable[str]] = None) -> Optional[Any]:
    """
    Parse a possibly incomplete JSON document.

    Args:
        text: Raw (possibly truncated) JSON text
        known_fields: Field names for the extraction fallback (defaults to KNOWN_FIELDS)

    Returns:
        The parsed value, a mapping of recovered fields, or None
    """
    if not isinstance(text, str) or not text.strip():
        return None

    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        pass

    repaired = repair_json(text)
    if repaired is not None:
        try:
            return json.loads(repaired)
        except (ValueError, RecursionError):
            pass

    fields = extract_known_fields(text, known_fields or KNOWN_FIELDS)
    return fields or None


def parse_partial_args(text: str) -> Dict[str, Any]:
    """Like parse_partial_json, but always returns a dict (empty when nothing usable)."""
    if not text or len(text) < 2:
        return {}
    parsed = parse_partial_json(text)
    if isinstance(parsed, dict) and parsed:
        return parsed
    return {}


def repair_json(text: str) -> Optional[str]:
    """
    Complete a truncated JSON document by closing its open string and brackets.

    Leading garbage before the first ``{`` or ``[`` is dropped.

    Returns:
        The completed text, or None when there is no object/array start
    """
    processed = text.strip()

    if not processed.startswith(("{", "[")):
        starts = [i for i in (processed.find("{"), processed.find("[")) if i != -1]
        if not starts:
            return None
        processed = processed[min(starts):]

    stack: List[str] = []
    in_string = False
    escaped = False

    for char in processed:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char in "{[":
            stack.append(char)
        elif char == "}" and stack and stack[-1] == "{":
            stack.pop()
        elif char == "]" and stack and stack[-1] == "[":
            stack.pop()

    result = processed
    if in_string:
        # A dangling backslash would escape the closing quote.
        if escaped:
            result += "\\"
        result += '"'

    while stack:
        result += "}" if stack.pop() == "{" else "]"

    return result


def extract_known_fields(text: str, fields: Iterable[str] = KNOWN_FIELDS) -> Dict[str, Any]:
    """
    Extract individual fields from badly damaged JSON.

    Each field is looked up as ``"name": "string"`` or ``"name": literal``
    where literal is a number, true, false or null. Fields that cannot be
    extracted are skipped.
    """
    result: Dict[str, Any] = {}

    for name in fields:
        pattern = re.compile(
            r'"' + re.escape(name) + r'"\s*:\s*(?:"((?:[^"\\]|\\.)*)"|(' + _BARE_LITERAL.pattern + r'))'
        )
        match = pattern.search(text)
        if not match:
            continue

        if match.group(1) is not None:
            result[name] = _unescape(match.group(1))
        else:
            try:
                result[name] = json.loads(match.group(2))
            except ValueError:
                continue

    return result


def _unescape(raw: str) -> str:
    """Decode a JSON string body, falling back to the common escapes."""
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw.replace("\\n", "\n").replace('\\"', '"').replace("\\\\", "\\")
