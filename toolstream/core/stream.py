"""
Stream Processor
Rebuilds one model turn from a stream of chunk events.

The processor owns a StreamSession for exactly one turn. Events arrive from a
StreamChannel (or are handed over directly with ``handle``/``feed``) and are
processed strictly one at a time; lifecycle signals are published on an
EventBus for renderers. The turn ends with a completion event, a timeout in
``wait`` or ``cancel``.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from loguru import logger

from toolstream.core.channel import EventKind, StreamChannel, StreamEvent
from toolstream.core.events import EventBus, event_bus
from toolstream.core.partial_json import parse_partial_json
from toolstream.core.types import (
    TokenUsage,
    ToolCall,
    ToolCallStatus,
    TurnResult,
    generate_tool_call_id,
)
from toolstream.core.xml_tool_parser import parse_xml_tool_calls

Scanner = Callable[[str], List[Dict[str, Any]]]


@dataclass
class StreamingToolCall:
    """Arguments of a tool call that are still arriving."""
    id: str
    name: str = ""
    args_buffer: str = ""


@dataclass
class StreamSession:
    """Mutable state of one turn."""
    accumulated_text: str = ""
    accumulated_reasoning: str = ""
    reasoning_active: bool = False
    tool_calls: List[ToolCall] = field(default_factory=list)
    streaming_tool_calls: Dict[str, StreamingToolCall] = field(default_factory=dict)
    usage: Optional[TokenUsage] = None
    terminal_error: Optional[str] = None
    _by_id: Dict[str, ToolCall] = field(default_factory=dict, repr=False)

    def find_tool_call(self, tool_id: str) -> Optional[ToolCall]:
        return self._by_id.get(tool_id)

    def add_tool_call(self, tool_call: ToolCall) -> bool:
        """Append a record unless one with the same id exists."""
        if tool_call.id in self._by_id:
            return False
        self._by_id[tool_call.id] = tool_call
        self.tool_calls.append(tool_call)
        return True

    def record_error(self, message: str) -> bool:
        """Keep the first error only."""
        if self.terminal_error is not None:
            return False
        self.terminal_error = message
        return True

    def to_result(self) -> TurnResult:
        return TurnResult(
            text=self.accumulated_text,
            tool_calls=list(self.tool_calls),
            usage=self.usage,
            error=self.terminal_error,
            reasoning=self.accumulated_reasoning,
        )


class StreamProcessor:
    """
    Consume chunk events for one turn and produce a TurnResult.

    Usage:
        channel = StreamChannel()
        processor = StreamProcessor(channel)
        client.stream_turn(messages, tools, channel)
        result = processor.wait()
    """

    def __init__(
        self,
        channel: Optional[StreamChannel] = None,
        bus: Optional[EventBus] = None,
        assistant_id: Optional[str] = None,
        scanner: Scanner = parse_xml_tool_calls
    ):
        """
        Initialize the processor.

        Args:
            channel: Transport to subscribe to (can also be attached later)
            bus: Where lifecycle signals go (process-wide bus by default)
            assistant_id: Id of the assistant message being built, echoed in signals
            scanner: Tag-based tool-call detector run over the accumulated text
        """
        self.session = StreamSession()
        self.bus = bus or event_bus
        self.assistant_id = assistant_id
        self._scanner = scanner

        self._queue: Deque[StreamEvent] = deque()
        self._queue_lock = threading.Lock()
        self._draining = False

        self._subscriptions: Dict[str, Callable[[], None]] = {}
        self._done = threading.Event()
        self._result: Optional[TurnResult] = None
        self._retired = False

        self._handlers = {
            EventKind.TEXT: self._on_text,
            EventKind.REASONING: self._on_reasoning,
            EventKind.TOOL_CALL_START: self._on_tool_call_start,
            EventKind.TOOL_CALL_DELTA: self._on_tool_call_delta,
            EventKind.TOOL_CALL_COMPLETE: self._on_tool_call_complete,
            EventKind.USAGE: self._on_usage,
            EventKind.ERROR: self._on_error,
            EventKind.COMPLETION: self._on_completion,
        }

        if channel is not None:
            self.attach(channel)

        self._emit("turn:start")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def attach(self, channel: StreamChannel) -> None:
        """
        Subscribe to a channel. Subscriptions to a previously attached
        channel are detached first, so a reconnect never double-counts.
        """
        self._subscribe("stream", channel.on_stream)
        self._subscribe("tool_call", channel.on_tool_call)
        self._subscribe("done", channel.on_done)
        self._subscribe("error", channel.on_error)

    def replace_error_handler(self, channel: StreamChannel) -> None:
        """Route errors from ``channel`` only, detaching the previous error handler."""
        self._subscribe("error", channel.on_error)

    def _subscribe(self, route: str, subscribe: Callable[[Callable[[StreamEvent], None]], Callable[[], None]]) -> None:
        previous = self._subscriptions.pop(route, None)
        if previous is not None:
            self._run_cleanup(previous)
        if not self._retired:
            self._subscriptions[route] = subscribe(self.handle)

    def cleanup(self) -> None:
        """Detach every subscription. Each one is released exactly once."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for unsubscribe in subscriptions:
            self._run_cleanup(unsubscribe)

    @staticmethod
    def _run_cleanup(unsubscribe: Callable[[], None]) -> None:
        try:
            unsubscribe()
        except Exception as exc:
            logger.debug(f"Stream cleanup failed: {exc}")

    # ------------------------------------------------------------------
    # Public driving API
    # ------------------------------------------------------------------
    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def result(self) -> Optional[TurnResult]:
        return self._result

    def handle(self, event: StreamEvent) -> None:
        """
        Process one event. Events raised while another is being handled
        (e.g. by a listener feeding back into the processor) are queued and
        run after it.
        """
        with self._queue_lock:
            if self._retired:
                logger.debug(f"Dropped {event.kind.value} event after turn end")
                return
            self._queue.append(event)
            if self._draining:
                return
            self._draining = True

        # _draining is cleared under the same lock that sees the queue empty,
        # so an event queued from another thread is never left behind.
        try:
            while True:
                with self._queue_lock:
                    if self._retired or not self._queue:
                        self._queue.clear()
                        self._draining = False
                        return
                    current = self._queue.popleft()
                self._dispatch(current)
        except BaseException:
            with self._queue_lock:
                self._draining = False
            raise

    def feed(self, events: Iterable[StreamEvent]) -> TurnResult:
        """
        Drive the processor from an iterable. If the iterable ends without a
        completion event the turn is completed anyway.
        """
        for event in events:
            self.handle(event)
            if self.done:
                break
        if not self.done:
            logger.debug("Event stream ended without completion; finalizing turn")
            self.handle(StreamEvent.completion())
        return self._result

    def wait(self, timeout: Optional[float] = None) -> TurnResult:
        """
        Block until the turn completes.

        Args:
            timeout: Seconds to wait; on expiry the turn is finalized with a
                timeout error and whatever content arrived

        Returns:
            The finalized TurnResult
        """
        if not self._done.wait(timeout):
            logger.warning(f"Stream timed out after {timeout}s")
            self.handle(StreamEvent.error_event("Stream timed out"))
            self.handle(StreamEvent.completion())
            self._done.wait()
        return self._result

    def cancel(self) -> None:
        """Abort the turn: detach everything and stop emitting signals."""
        with self._queue_lock:
            if self._retired:
                return
            self._retired = True
            self._queue.clear()

        self.cleanup()
        if not self._done.is_set():
            result = self.session.to_result()
            if result.error is None:
                result.error = "Cancelled"
            self._result = result
            self._done.set()
        logger.debug("Stream processor cancelled")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _dispatch(self, event: StreamEvent) -> None:
        try:
            self._handlers[event.kind](event)
        except Exception:
            logger.exception(f"Failed to handle {event.kind.value} event")

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._retired:
            return
        self.bus.emit(event_type, assistant_id=self.assistant_id, **data)

    def _close_reasoning(self) -> None:
        if self.session.reasoning_active:
            self.session.reasoning_active = False
            self._emit("stream:reasoning", text="", phase="end")

    def _on_text(self, event: StreamEvent) -> None:
        if not event.content:
            return
        self._close_reasoning()

        session = self.session
        session.accumulated_text += event.content
        self._emit("stream:text", text=event.content)

        for detected in self._scanner(session.accumulated_text):
            tool_call = ToolCall(
                id=detected["id"],
                name=detected["name"],
                arguments=dict(detected.get("arguments") or {}),
            )
            if session.add_tool_call(tool_call):
                self._emit("stream:tool_end", id=tool_call.id, name=tool_call.name, args=tool_call.arguments)

    def _on_reasoning(self, event: StreamEvent) -> None:
        if not event.content:
            return
        session = self.session
        if not session.reasoning_active:
            session.reasoning_active = True
            self._emit("stream:reasoning", text="", phase="start")
        session.accumulated_reasoning += event.content
        self._emit("stream:reasoning", text=event.content, phase="delta")

    def _on_tool_call_start(self, event: StreamEvent) -> None:
        tool_id = event.id or generate_tool_call_id()
        name = event.name or ""
        self._close_reasoning()

        session = self.session
        if tool_id in session.streaming_tool_calls or session.find_tool_call(tool_id):
            logger.debug(f"Ignored repeated start for tool call {tool_id}")
            return

        session.streaming_tool_calls[tool_id] = StreamingToolCall(id=tool_id, name=name)
        session.add_tool_call(ToolCall(id=tool_id, name=name, arguments={"_streaming": True}))
        self._emit("stream:tool_start", id=tool_id, name=name)

    def _on_tool_call_delta(self, event: StreamEvent) -> None:
        session = self.session
        streaming = session.streaming_tool_calls.get(event.id) if event.id else None
        if streaming is None:
            logger.debug(f"Ignored delta for unknown tool call {event.id}")
            return

        record = session.find_tool_call(streaming.id)
        if event.arguments_delta:
            streaming.args_buffer += event.arguments_delta
            partial = parse_partial_json(streaming.args_buffer)
            if isinstance(partial, dict) and partial:
                record.arguments = {**partial, "_streaming": True}

        if event.name and event.name != streaming.name:
            streaming.name = event.name
            record.name = event.name

        self._emit("stream:tool_delta", id=streaming.id, name=streaming.name, args=streaming.args_buffer)

    def _on_tool_call_complete(self, event: StreamEvent) -> None:
        session = self.session
        tool_id = event.id or generate_tool_call_id()
        session.streaming_tool_calls.pop(tool_id, None)

        arguments = event.arguments
        if isinstance(arguments, str):
            arguments = parse_partial_json(arguments)
        if not isinstance(arguments, dict):
            arguments = {}

        existing = session.find_tool_call(tool_id)
        if existing is None:
            existing = ToolCall(id=tool_id, name=event.name or "", arguments=arguments)
            session.add_tool_call(existing)
        else:
            existing.name = event.name or existing.name
            existing.arguments = arguments

        self._emit("stream:tool_end", id=tool_id, name=existing.name, args=arguments)

    def _on_usage(self, event: StreamEvent) -> None:
        usage = TokenUsage.from_value(event.usage)
        if usage is not None:
            self.session.usage = usage

    def _on_error(self, event: StreamEvent) -> None:
        message = event.error or "Unknown error"
        if self.session.record_error(message):
            logger.warning(f"Stream error: {message}")
        else:
            logger.debug(f"Additional stream error ignored: {message}")

    def _on_completion(self, event: StreamEvent) -> None:
        self._on_usage(event)
        self._close_reasoning()

        session = self.session
        for tool_id, streaming in list(session.streaming_tool_calls.items()):
            record = session.find_tool_call(tool_id)
            arguments = parse_partial_json(streaming.args_buffer)
            record.arguments = arguments if isinstance(arguments, dict) else {}
            if streaming.name:
                record.name = streaming.name
            if not record.name:
                logger.warning(f"Tool call {tool_id} finished without a name")
            self._emit("stream:tool_end", id=tool_id, name=record.name, args=record.arguments)
        session.streaming_tool_calls.clear()

        result = session.to_result()
        if result.error:
            self._emit("turn:error", error=result.error, result=result)
        else:
            self._emit("turn:done", result=result)

        pending = sum(1 for tc in result.tool_calls if tc.status == ToolCallStatus.PENDING)
        logger.debug(
            f"Turn complete: {len(result.text)} chars, {len(result.tool_calls)} tool call(s) ({pending} pending)"
        )
        self._resolve(result)

    def _resolve(self, result: TurnResult) -> None:
        with self._queue_lock:
            self._retired = True
        self._result = result
        self.cleanup()
        self._done.set()
