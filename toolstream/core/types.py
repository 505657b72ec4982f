"""
Core data types shared by the stream processor, the tool registry and the runner.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger


class ToolCallStatus(str, Enum):
    """Lifecycle of a single tool call."""
    PENDING = "pending"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REJECTED = "rejected"


# Higher rank = later in the lifecycle. Terminal states share the top rank.
_STATUS_RANK = {
    ToolCallStatus.PENDING: 0,
    ToolCallStatus.EXECUTING: 1,
    ToolCallStatus.SUCCEEDED: 2,
    ToolCallStatus.FAILED: 2,
    ToolCallStatus.REJECTED: 2,
}


class ApprovalType(str, Enum):
    """Whether a tool invocation needs confirmation before it runs."""
    NONE = "none"
    ASK = "ask"
    ALWAYS_ASK = "always-ask"


class ToolCategory(str, Enum):
    """Tool classification used for output bounding and default permissions."""
    READ = "read"
    WRITE = "write"
    SEARCH = "search"
    TERMINAL = "terminal"


def generate_tool_call_id(prefix: str = "tool") -> str:
    """Generate a tool call id for calls that arrive without one."""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


@dataclass
class ToolCall:
    """
    A tool invocation requested by the model.

    Arguments may carry private markers (keys starting with ``_``, e.g.
    ``_streaming``) while the call is still being assembled.
    """
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.PENDING

    @property
    def is_streaming(self) -> bool:
        return bool(self.arguments.get("_streaming"))

    @property
    def is_finished(self) -> bool:
        return _STATUS_RANK[self.status] == 2

    def advance(self, status: ToolCallStatus) -> bool:
        """
        Move to a new status. Regressions and changes out of a terminal
        state are refused.

        Returns:
            True if the status changed
        """
        if self.is_finished or _STATUS_RANK[status] <= _STATUS_RANK[self.status]:
            logger.debug(f"Ignored status change {self.status.value} -> {status.value} for {self.id}")
            return False
        self.status = status
        return True

    def clean_arguments(self) -> Dict[str, Any]:
        """Arguments without private markers, ready for execution."""
        return {k: v for k, v in self.arguments.items() if not k.startswith("_")}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "arguments": dict(self.arguments),
            "status": self.status.value,
        }


@dataclass
class TokenUsage:
    """Token accounting for one turn."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_value(cls, value: Any) -> Optional["TokenUsage"]:
        """
        Build from a TokenUsage, an SDK usage object, or a mapping using
        either snake_case or camelCase keys.
        """
        if value is None:
            return None
        if isinstance(value, TokenUsage):
            return value
        if not isinstance(value, dict):
            value = {
                "prompt_tokens": getattr(value, "prompt_tokens", 0),
                "completion_tokens": getattr(value, "completion_tokens", 0),
                "total_tokens": getattr(value, "total_tokens", 0),
            }

        prompt = value.get("prompt_tokens", value.get("promptTokens", 0)) or 0
        completion = value.get("completion_tokens", value.get("completionTokens", 0)) or 0
        total = value.get("total_tokens", value.get("totalTokens")) or (prompt + completion)
        return cls(prompt_tokens=int(prompt), completion_tokens=int(completion), total_tokens=int(total))


@dataclass
class ToolExecutionContext:
    """Ambient information handed to every executor."""
    workspace_path: Optional[Path] = None
    assistant_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolExecutionResult:
    """Outcome of a registry execution. Failures are values, never exceptions."""
    success: bool
    result: str = ""
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, result: str = "", **meta: Any) -> "ToolExecutionResult":
        return cls(success=True, result=result, meta=meta)

    @classmethod
    def fail(cls, error: str, **meta: Any) -> "ToolExecutionResult":
        return cls(success=False, error=error, meta=meta)


ToolExecutorFn = Callable[[Dict[str, Any], ToolExecutionContext], ToolExecutionResult]


@dataclass
class ValidationResult:
    """Tagged outcome of argument validation: ``ok(data)`` or ``fail(error)``."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Dict[str, Any]) -> "ValidationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(success=False, error=error)


@dataclass
class TurnResult:
    """Finalized output of one model turn."""
    text: str
    tool_calls: List[ToolCall]
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None
    reasoning: str = ""

    @property
    def has_content(self) -> bool:
        return bool(self.text or self.reasoning or self.tool_calls)

    @property
    def is_partial(self) -> bool:
        """An error occurred but some content arrived before it."""
        return self.error is not None and self.has_content

    @property
    def is_total_failure(self) -> bool:
        """An error occurred before anything usable arrived."""
        return self.error is not None and not self.has_content
