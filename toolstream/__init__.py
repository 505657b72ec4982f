"""
toolstream - streaming tool-use runtime for coding agents

Rebuilds model turns from chunked streams (text, reasoning, tool-call
fragments), repairs partial tool arguments, and dispatches tool calls through
a validated, permissioned registry with bounded results.
"""

__version__ = "0.3.0"

from toolstream.core.channel import StreamChannel, StreamEvent
from toolstream.core.partial_json import parse_partial_json
from toolstream.core.registry import ToolRegistry, tool_registry
from toolstream.core.stream import StreamProcessor
from toolstream.core.tool_runner import ToolRunner
from toolstream.core.truncation import truncate_tool_result

__all__ = [
    "StreamChannel",
    "StreamEvent",
    "StreamProcessor",
    "ToolRegistry",
    "ToolRunner",
    "parse_partial_json",
    "tool_registry",
    "truncate_tool_result",
]
