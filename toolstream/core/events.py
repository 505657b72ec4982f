"""
Lifecycle signal bus.

The stream processor and the tool runner publish what they are doing here;
renderers and loggers subscribe. A misbehaving listener is logged and
skipped, it never breaks the publisher.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from loguru import logger


@dataclass
class AgentEvent:
    """A lifecycle signal, e.g. ``stream:reasoning`` with ``{"phase": "start"}``."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


Listener = Callable[[AgentEvent], None]


class EventBus:
    """Synchronous publish/subscribe for lifecycle signals."""

    def __init__(self):
        self._listeners: List[tuple] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener, types: Optional[Iterable[str]] = None) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            listener: Called with every matching AgentEvent
            types: Event types to receive (all when omitted)

        Returns:
            Function that removes the listener
        """
        entry = (listener, set(types) if types else None)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event_type: str, **data: Any) -> None:
        event = AgentEvent(event_type, data)
        with self._lock:
            listeners = list(self._listeners)

        for listener, types in listeners:
            if types is not None and event_type not in types:
                continue
            try:
                listener(event)
            except Exception as exc:
                logger.warning(f"Listener for '{event_type}' failed: {exc}")

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class EventRecorder:
    """Listener that keeps every signal it sees, handy for replays and tests."""

    def __init__(self, types: Optional[Set[str]] = None):
        self.types = types
        self.events: List[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        if self.types is None or event.type in self.types:
            self.events.append(event)

    def of_type(self, event_type: str) -> List[AgentEvent]:
        return [e for e in self.events if e.type == event_type]


# Process-wide bus used when no bus is passed explicitly
event_bus = EventBus()
