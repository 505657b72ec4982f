"""
Core modules: stream ingestion, tool registry, execution and result bounding.
"""

from toolstream.core.registry import RegisteredTool, ToolRegistry
from toolstream.core.stream import StreamProcessor, StreamSession
from toolstream.core.tool_runner import ToolRunner
from toolstream.core.types import ApprovalType, ToolCall, ToolCallStatus, ToolCategory, TurnResult

__all__ = [
    "ApprovalType",
    "RegisteredTool",
    "StreamProcessor",
    "StreamSession",
    "ToolCall",
    "ToolCallStatus",
    "ToolCategory",
    "ToolRegistry",
    "ToolRunner",
    "TurnResult",
]
