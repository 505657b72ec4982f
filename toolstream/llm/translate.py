"""
OpenAI-style chunk translation.

Turns chat-completion stream chunks (SDK objects or plain dicts) into
StreamEvents. Tool-call deltas are keyed by ``index``: the first sighting of
an index starts a call, later ones append argument fragments. Fragments
without an index continue the most recent call unless they carry a new id.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from toolstream.core.channel import StreamEvent
from toolstream.core.partial_json import parse_partial_json
from toolstream.core.types import generate_tool_call_id


def _get(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class ChunkTranslator:
    """Stateful translator for the chunks of one turn."""

    def __init__(self):
        self._ids_by_index: Dict[int, str] = {}
        self._last_index: Optional[int] = None

    def translate(self, chunk: Any) -> List[StreamEvent]:
        events: List[StreamEvent] = []

        usage = _get(chunk, "usage")
        if usage:
            events.append(StreamEvent.usage_event(usage))

        choices = _get(chunk, "choices") or []
        if not choices:
            return events
        choice = choices[0]

        delta = _get(choice, "delta")
        if delta is not None:
            reasoning = _get(delta, "reasoning_content") or _get(delta, "reasoning")
            if reasoning:
                events.append(StreamEvent.reasoning(reasoning))

            content = _get(delta, "content")
            if content:
                events.append(StreamEvent.text(content))

            for tool_call_delta in _get(delta, "tool_calls") or []:
                events.extend(self._accumulate_tool_call(tool_call_delta))

        # Some providers put whole tool calls in the final chunk's message
        message = _get(choice, "message")
        if message is not None and not self._ids_by_index:
            for tool_call in _get(message, "tool_calls") or []:
                events.append(self._complete_tool_call(tool_call))

        return events

    def _resolve_index(self, delta_id: Any) -> int:
        """Index for a fragment sent without one: a known id, else the last call."""
        if delta_id:
            for index, tool_id in self._ids_by_index.items():
                if tool_id == delta_id:
                    return index
        elif self._last_index is not None:
            return self._last_index
        return max(self._ids_by_index, default=-1) + 1

    def _accumulate_tool_call(self, tool_call_delta: Any) -> List[StreamEvent]:
        delta_id = _get(tool_call_delta, "id")
        index = _get(tool_call_delta, "index")
        if index is None:
            index = self._resolve_index(delta_id)
        self._last_index = index

        function = _get(tool_call_delta, "function")
        name = _get(function, "name") or None
        arguments = _get(function, "arguments") or ""

        tool_id = self._ids_by_index.get(index)
        if tool_id is None:
            tool_id = delta_id or generate_tool_call_id()
            self._ids_by_index[index] = tool_id
            events = [StreamEvent.tool_call_start(tool_id, name or "")]
            if arguments:
                events.append(StreamEvent.tool_call_delta(tool_id, arguments))
            return events

        if not arguments and not name:
            return []
        return [StreamEvent.tool_call_delta(tool_id, arguments, name=name)]

    @staticmethod
    def _complete_tool_call(tool_call: Any) -> StreamEvent:
        function = _get(tool_call, "function")
        raw_args = _get(function, "arguments")
        if isinstance(raw_args, dict):
            arguments = raw_args
        else:
            arguments = parse_partial_json(raw_args or "") or {}
            if not isinstance(arguments, dict):
                logger.debug(f"Tool call arguments are not an object: {raw_args!r}")
                arguments = {}
        return StreamEvent.tool_call_complete(
            _get(tool_call, "id") or generate_tool_call_id(),
            _get(function, "name") or "",
            arguments,
        )
