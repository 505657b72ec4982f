"""
Tool Runner
Dispatches the tool calls of a finished turn against the registry.

Calls that need no approval run first, consecutive parallel-safe ones
concurrently. Calls that need approval run afterwards one at a time, so a
rejected or failed edit can cancel the edits that build on it.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

from toolstream.core.events import EventBus, event_bus
from toolstream.core.registry import ToolRegistry, tool_registry
from toolstream.core.tool_definitions import is_file_edit_tool
from toolstream.core.truncation import truncate_tool_result
from toolstream.core.types import ApprovalType, ToolCall, ToolCallStatus, ToolExecutionContext

Approver = Callable[[ToolCall, ApprovalType], bool]

REJECTED_MESSAGE = "Rejected by user"
SKIPPED_MESSAGE = "Skipped: dependency not met"


@dataclass
class ToolOutcome:
    """What one tool call produced, ready to go back into the conversation."""
    tool_call: ToolCall
    content: str
    success: bool
    rejected: bool = False
    skipped: bool = False
    duration: float = 0.0

    def to_message(self) -> Dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.tool_call.id,
            "content": self.content,
        }


@dataclass
class RunOutcome:
    outcomes: List[ToolOutcome] = field(default_factory=list)
    user_rejected: bool = False
    cancelled: bool = False

    @property
    def all_succeeded(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    def to_messages(self) -> List[Dict[str, Any]]:
        return [outcome.to_message() for outcome in self.outcomes]


class ToolRunner:
    """
    Runs tool calls with approval, dependency checks and bounded output.

    Each tool call id is executed at most once per runner.
    """

    def __init__(
        self,
        registry: Optional[ToolRegistry] = None,
        approver: Optional[Approver] = None,
        bus: Optional[EventBus] = None,
        max_parallel_tools: int = 8,
        auto_approve: bool = False,
        max_result_chars: Optional[int] = None
    ):
        """
        Args:
            registry: Registry to execute against (process-wide one by default)
            approver: Called for calls that need confirmation; without one
                such calls are rejected
            bus: Where tool signals go
            max_parallel_tools: Upper bound on concurrently running tools
            auto_approve: Skip confirmation for "ask" tools ("always-ask" still asks)
            max_result_chars: Override for every tool's output limit
        """
        self.registry = registry or tool_registry
        self.approver = approver
        self.bus = bus or event_bus
        self.max_parallel_tools = max(1, max_parallel_tools)
        self.auto_approve = auto_approve
        self.max_result_chars = max_result_chars

        self._seen: Set[str] = set()
        self._seen_lock = threading.Lock()

    def needs_approval(self, tool_call: ToolCall) -> bool:
        approval_type = self.registry.get_approval_type(tool_call.name)
        if approval_type == ApprovalType.ALWAYS_ASK:
            return True
        return approval_type == ApprovalType.ASK and not self.auto_approve

    def run(
        self,
        tool_calls: List[ToolCall],
        context: Optional[ToolExecutionContext] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> RunOutcome:
        """
        Execute tool calls.

        Args:
            tool_calls: Finalized calls from a TurnResult
            context: Passed to every executor
            cancel_event: When set, no further calls are started

        Returns:
            RunOutcome with one ToolOutcome per executed, rejected or skipped
            call, in input order
        """
        context = context or ToolExecutionContext()
        run = RunOutcome()

        fresh = self._claim(tool_calls)
        auto_calls = [tc for tc in fresh if not self.needs_approval(tc)]
        approval_calls = [tc for tc in fresh if self.needs_approval(tc)]

        by_id: Dict[str, ToolOutcome] = {}
        # path -> outcome of the last edit of that path
        last_edits: Dict[str, ToolOutcome] = {}

        for batch in self._group_into_batches(auto_calls):
            if self._cancelled(cancel_event, run):
                break
            if len(batch) > 1:
                for outcome in self._execute_parallel_batch(batch, context):
                    by_id[outcome.tool_call.id] = outcome
            else:
                outcome = self._run_sequential(batch[0], context, last_edits, ask=False)
                by_id[outcome.tool_call.id] = outcome

        for tool_call in approval_calls:
            if self._cancelled(cancel_event, run):
                break
            outcome = self._run_sequential(tool_call, context, last_edits, ask=True)
            by_id[outcome.tool_call.id] = outcome
            if outcome.rejected:
                run.user_rejected = True

        run.outcomes = [by_id[tc.id] for tc in fresh if tc.id in by_id]
        return run

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def _claim(self, tool_calls: List[ToolCall]) -> List[ToolCall]:
        fresh = []
        with self._seen_lock:
            for tool_call in tool_calls:
                if tool_call.id in self._seen:
                    logger.warning(f"Tool call {tool_call.id} already handled, skipping")
                    continue
                if tool_call.status != ToolCallStatus.PENDING:
                    logger.debug(f"Tool call {tool_call.id} is {tool_call.status.value}, skipping")
                    continue
                self._seen.add(tool_call.id)
                fresh.append(tool_call)
        return fresh

    def _group_into_batches(self, tool_calls: List[ToolCall]) -> List[List[ToolCall]]:
        """
        Consecutive parallel-safe calls are grouped together. Sequential
        calls form their own single-item batch.
        """
        batches = []
        current_parallel_batch: List[ToolCall] = []

        for tool_call in tool_calls:
            if self.registry.is_parallel_safe(tool_call.name) and self.max_parallel_tools > 1:
                current_parallel_batch.append(tool_call)
            else:
                if current_parallel_batch:
                    batches.append(current_parallel_batch)
                    current_parallel_batch = []
                batches.append([tool_call])

        if current_parallel_batch:
            batches.append(current_parallel_batch)

        return batches

    def _execute_parallel_batch(
        self,
        tool_calls: List[ToolCall],
        context: ToolExecutionContext
    ) -> List[ToolOutcome]:
        results_by_index: Dict[int, ToolOutcome] = {}

        with ThreadPoolExecutor(max_workers=min(len(tool_calls), self.max_parallel_tools)) as executor:
            future_to_index = {
                executor.submit(self._execute, tool_call, context): i
                for i, tool_call in enumerate(tool_calls)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results_by_index[index] = future.result()
                except Exception as exc:
                    tool_call = tool_calls[index]
                    logger.error(f"Parallel execution of {tool_call.name} failed: {exc}")
                    tool_call.advance(ToolCallStatus.FAILED)
                    results_by_index[index] = ToolOutcome(
                        tool_call, f"Error: Parallel execution failed: {exc}", success=False
                    )

        return [results_by_index[i] for i in range(len(tool_calls))]

    def _run_sequential(
        self,
        tool_call: ToolCall,
        context: ToolExecutionContext,
        last_edits: Dict[str, ToolOutcome],
        ask: bool
    ) -> ToolOutcome:
        edited_path = self._edited_path(tool_call)
        if edited_path is not None:
            previous = last_edits.get(edited_path)
            if previous is not None and not previous.success:
                outcome = self._skip(tool_call)
                last_edits[edited_path] = outcome
                return outcome

        if ask and not self._approve(tool_call):
            outcome = self._reject(tool_call)
        else:
            outcome = self._execute(tool_call, context)

        if edited_path is not None:
            last_edits[edited_path] = outcome
        return outcome

    @staticmethod
    def _edited_path(tool_call: ToolCall) -> Optional[str]:
        if not is_file_edit_tool(tool_call.name):
            return None
        path = tool_call.arguments.get("path")
        return str(path) if path else None

    @staticmethod
    def _cancelled(cancel_event: Optional[threading.Event], run: RunOutcome) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            if not run.cancelled:
                logger.info("Tool execution cancelled")
            run.cancelled = True
        return run.cancelled

    # ------------------------------------------------------------------
    # Single call
    # ------------------------------------------------------------------
    def _approve(self, tool_call: ToolCall) -> bool:
        approval_type = self.registry.get_approval_type(tool_call.name)
        self.bus.emit("tool:pending", id=tool_call.id, name=tool_call.name,
                      args=tool_call.clean_arguments(), approval_type=approval_type.value)
        if self.approver is None:
            logger.warning(f"No approver configured, rejecting {tool_call.name}")
            return False
        try:
            return bool(self.approver(tool_call, approval_type))
        except Exception as exc:
            logger.error(f"Approval of {tool_call.name} failed: {exc}")
            return False

    def _reject(self, tool_call: ToolCall) -> ToolOutcome:
        tool_call.advance(ToolCallStatus.REJECTED)
        self.bus.emit("tool:rejected", id=tool_call.id, name=tool_call.name)
        logger.info(f"Tool call {tool_call.name} ({tool_call.id}) rejected")
        return ToolOutcome(tool_call, REJECTED_MESSAGE, success=False, rejected=True)

    def _skip(self, tool_call: ToolCall) -> ToolOutcome:
        tool_call.advance(ToolCallStatus.FAILED)
        self.bus.emit("tool:error", id=tool_call.id, name=tool_call.name, error=SKIPPED_MESSAGE)
        logger.info(f"Skipped {tool_call.name} ({tool_call.id}): an earlier edit of the same path did not apply")
        return ToolOutcome(tool_call, SKIPPED_MESSAGE, success=False, skipped=True)

    def _execute(self, tool_call: ToolCall, context: ToolExecutionContext) -> ToolOutcome:
        tool_call.advance(ToolCallStatus.EXECUTING)
        arguments = tool_call.clean_arguments()
        self.bus.emit("tool:running", id=tool_call.id, name=tool_call.name, args=arguments)

        started = time.time()
        result = self.registry.execute(tool_call.name, arguments, context)
        duration = time.time() - started

        if result.success:
            tool_call.advance(ToolCallStatus.SUCCEEDED)
            content = result.result or "Success"
        else:
            tool_call.advance(ToolCallStatus.FAILED)
            content = f"Error: {result.error}"

        content = truncate_tool_result(
            content,
            tool_call.name,
            self.max_result_chars,
            category=self.registry.get_category(tool_call.name),
        )

        if result.success:
            self.bus.emit("tool:completed", id=tool_call.id, name=tool_call.name,
                          result=content, duration=duration)
        else:
            self.bus.emit("tool:error", id=tool_call.id, name=tool_call.name,
                          error=result.error, duration=duration)
        logger.debug(f"{tool_call.name} finished in {duration:.2f}s (success={result.success})")

        return ToolOutcome(tool_call, content, success=result.success, duration=duration)
