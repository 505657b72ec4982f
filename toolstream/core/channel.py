"""
Chunk transport between a model client and the stream processor.

Clients ``send`` StreamEvents; the processor subscribes per channel. Events
are routed to four subscriber lists the way provider transports usually split
them: incremental stream data, complete tool calls, errors, and completion.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger


class EventKind(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL_START = "tool-call-start"
    TOOL_CALL_DELTA = "tool-call-delta"
    TOOL_CALL_COMPLETE = "tool-call-complete"
    USAGE = "usage"
    ERROR = "error"
    COMPLETION = "completion"


@dataclass
class StreamEvent:
    """One chunk event delivered by a transport."""
    kind: EventKind
    content: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[Dict[str, Any]] = None
    arguments_delta: Optional[str] = None
    usage: Any = None
    error: Optional[str] = None

    @classmethod
    def text(cls, content: str) -> "StreamEvent":
        return cls(EventKind.TEXT, content=content)

    @classmethod
    def reasoning(cls, content: str) -> "StreamEvent":
        return cls(EventKind.REASONING, content=content)

    @classmethod
    def tool_call_start(cls, id: Optional[str] = None, name: str = "") -> "StreamEvent":
        return cls(EventKind.TOOL_CALL_START, id=id, name=name)

    @classmethod
    def tool_call_delta(cls, id: str, arguments_delta: str = "", name: Optional[str] = None) -> "StreamEvent":
        return cls(EventKind.TOOL_CALL_DELTA, id=id, arguments_delta=arguments_delta, name=name)

    @classmethod
    def tool_call_complete(cls, id: str, name: str, arguments: Optional[Dict[str, Any]] = None) -> "StreamEvent":
        return cls(EventKind.TOOL_CALL_COMPLETE, id=id, name=name, arguments=arguments)

    @classmethod
    def usage_event(cls, usage: Any) -> "StreamEvent":
        return cls(EventKind.USAGE, usage=usage)

    @classmethod
    def error_event(cls, message: str) -> "StreamEvent":
        return cls(EventKind.ERROR, error=message)

    @classmethod
    def completion(cls, usage: Any = None) -> "StreamEvent":
        return cls(EventKind.COMPLETION, usage=usage)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamEvent":
        """
        Build from a plain mapping (e.g. one line of a JSONL replay file).

        Accepts ``type`` or ``kind`` for the event kind, underscores or
        dashes in kind names, and ``argumentsDelta``/``message`` aliases.
        """
        raw_kind = str(data.get("kind") or data.get("type") or "").replace("_", "-")
        kind = EventKind(raw_kind)
        error = data.get("error") or data.get("message")
        if isinstance(error, dict):
            error = error.get("message") or "Unknown error"
        return cls(
            kind=kind,
            content=data.get("content"),
            id=data.get("id"),
            name=data.get("name"),
            arguments=data.get("arguments"),
            arguments_delta=data.get("arguments_delta", data.get("argumentsDelta")),
            usage=data.get("usage"),
            error=error,
        )


Handler = Callable[[StreamEvent], None]

_ROUTES = {
    EventKind.TEXT: "stream",
    EventKind.REASONING: "stream",
    EventKind.TOOL_CALL_START: "stream",
    EventKind.TOOL_CALL_DELTA: "stream",
    EventKind.USAGE: "stream",
    EventKind.TOOL_CALL_COMPLETE: "tool_call",
    EventKind.ERROR: "error",
    EventKind.COMPLETION: "done",
}


class StreamChannel:
    """In-process, in-order event source for one or more model turns."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {route: [] for route in set(_ROUTES.values())}
        self._lock = threading.Lock()

    def _subscribe(self, route: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[route].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[route]:
                    self._handlers[route].remove(handler)

        return unsubscribe

    def on_stream(self, handler: Handler) -> Callable[[], None]:
        """Text, reasoning, tool-call start/delta and usage events."""
        return self._subscribe("stream", handler)

    def on_tool_call(self, handler: Handler) -> Callable[[], None]:
        """Complete, non-incremental tool calls."""
        return self._subscribe("tool_call", handler)

    def on_error(self, handler: Handler) -> Callable[[], None]:
        return self._subscribe("error", handler)

    def on_done(self, handler: Handler) -> Callable[[], None]:
        return self._subscribe("done", handler)

    def send(self, event: StreamEvent) -> None:
        """Deliver an event to every handler subscribed to its route."""
        route = _ROUTES[event.kind]
        with self._lock:
            handlers = list(self._handlers[route])
        if not handlers:
            logger.debug(f"No subscriber for {event.kind.value} event")
        for handler in handlers:
            handler(event)

    def listener_count(self) -> int:
        with self._lock:
            return sum(len(handlers) for handlers in self._handlers.values())
