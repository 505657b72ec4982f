"""
Multi-turn conversation with tool use.
Keeps calling the model until a turn asks for no tools.
"""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from toolstream.config import AgentSettings
from toolstream.core.channel import StreamChannel, StreamEvent
from toolstream.core.events import EventBus, event_bus
from toolstream.core.registry import ToolRegistry
from toolstream.core.stream import StreamProcessor
from toolstream.core.tool_executors import build_executors
from toolstream.core.tool_runner import Approver, ToolOutcome, ToolRunner
from toolstream.core.types import TokenUsage, ToolExecutionContext, TurnResult

DEFAULT_SYSTEM_MESSAGE = (
    "You are a coding assistant working inside the user's workspace. "
    "Use the provided tools to inspect and change files and to run commands. "
    "Paths are relative to the workspace root. When the task is done, reply "
    "with a short summary and no tool calls."
)


def build_registry(workspace: Path, disabled_tools: Iterable[str] = ()) -> ToolRegistry:
    """Registry with every built-in tool bound to ``workspace``."""
    registry = ToolRegistry()
    registry.register_all(build_executors(workspace))
    for name in disabled_tools:
        if not registry.set_enabled(name, False):
            logger.warning(f"Cannot disable unknown tool '{name}'")
    return registry


@dataclass
class ConversationResult:
    success: bool
    final_text: str = ""
    stop_reason: str = "completed"
    error: Optional[str] = None
    turns: int = 0
    tool_outcomes: List[ToolOutcome] = field(default_factory=list)
    usage: List[TokenUsage] = field(default_factory=list)
    messages: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return sum(u.total_tokens for u in self.usage)


class ToolUseConversation:
    """
    Manage multi-turn conversation with tool use.

    Stops when a turn has no tool calls, on a stream error, when the user
    rejects a tool call, on cancellation or after ``max_iterations`` turns.
    """

    def __init__(
        self,
        client,
        registry: ToolRegistry,
        workspace: Path,
        settings: Optional[AgentSettings] = None,
        approver: Optional[Approver] = None,
        bus: Optional[EventBus] = None,
        system_message: str = DEFAULT_SYSTEM_MESSAGE
    ):
        """
        Args:
            client: Streaming LLM client (BaseLLMClient)
            registry: Tools offered to the model
            workspace: Directory the tools operate in
            settings: Agent runtime settings
            approver: Confirms tool calls that need approval
            bus: Lifecycle signal bus shared by processor and runner
            system_message: System prompt
        """
        self.client = client
        self.registry = registry
        self.workspace = Path(workspace)
        self.settings = settings or AgentSettings()
        self.bus = bus or event_bus
        self.system_message = system_message
        self.cancel_event = threading.Event()
        self.runner = ToolRunner(
            registry=registry,
            approver=approver,
            bus=self.bus,
            max_parallel_tools=self.settings.max_parallel_tools,
            auto_approve=self.settings.auto_approve,
            max_result_chars=self.settings.max_tool_result_chars,
        )

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(self, user_message: str, chat_history: Optional[List[Dict[str, Any]]] = None) -> ConversationResult:
        """
        Run conversation with tool use until completion.

        Args:
            user_message: User's request
            chat_history: Optional previous messages for context

        Returns:
            ConversationResult with the final text and everything the tools produced
        """
        messages: List[Dict[str, Any]] = [{"role": "system", "content": self.system_message}]
        if chat_history:
            messages.extend({"role": m["role"], "content": m["content"]} for m in chat_history)
        messages.append({"role": "user", "content": user_message})

        outcome = ConversationResult(success=False, messages=messages)
        context = ToolExecutionContext(workspace_path=self.workspace)

        for turn in range(self.settings.max_iterations):
            if self.cancel_event.is_set():
                return self._stop(outcome, "cancelled", "Cancelled by user")

            outcome.turns = turn + 1
            context.assistant_id = f"assistant-{turn + 1}"
            result = self.stream_turn(messages, context.assistant_id)
            if result.usage:
                outcome.usage.append(result.usage)

            if result.is_total_failure:
                return self._stop(outcome, "error", result.error)

            messages.append(self._assistant_message(result))
            outcome.final_text = result.text

            if result.error:
                # Tool calls from a broken stream may carry truncated arguments
                return self._stop(outcome, "error", result.error)

            if not result.tool_calls:
                outcome.success = True
                return self._stop(outcome, "completed")

            run = self.runner.run(result.tool_calls, context, self.cancel_event)
            outcome.tool_outcomes.extend(run.outcomes)
            messages.extend(run.to_messages())

            if run.cancelled:
                return self._stop(outcome, "cancelled", "Cancelled by user")
            if run.user_rejected:
                return self._stop(outcome, "rejected", "Tool call rejected by user")

        return self._stop(outcome, "max_iterations", f"Stopped after {self.settings.max_iterations} turns")

    def stream_turn(self, messages: List[Dict[str, Any]], assistant_id: Optional[str] = None) -> TurnResult:
        """Stream one model turn and wait for it, bounded by the stream timeout."""
        channel = StreamChannel()
        processor = StreamProcessor(channel, bus=self.bus, assistant_id=assistant_id)
        stop_producer = threading.Event()

        def produce():
            try:
                self.client.stream_turn(messages, self.registry.get_definitions(), channel, stop_producer)
            except Exception as e:
                logger.exception("LLM client failed")
                channel.send(StreamEvent.error_event(str(e)))
                channel.send(StreamEvent.completion())

        producer = threading.Thread(target=produce, name=f"stream-{assistant_id}", daemon=True)
        producer.start()
        try:
            result = processor.wait(self.settings.stream_timeout)
        finally:
            stop_producer.set()
        producer.join(timeout=1.0)
        return result

    @staticmethod
    def _assistant_message(result: TurnResult) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": "assistant", "content": result.text or None}
        if result.tool_calls:
            message["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.clean_arguments())},
                }
                for tc in result.tool_calls
            ]
        return message

    @staticmethod
    def _stop(outcome: ConversationResult, reason: str, error: Optional[str] = None) -> ConversationResult:
        outcome.stop_reason = reason
        outcome.error = error
        if error:
            logger.info(f"Conversation stopped ({reason}): {error}")
        return outcome
