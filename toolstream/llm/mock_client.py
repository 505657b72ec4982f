"""
Mock LLM client used for offline/demo mode.
Streams scripted OpenAI-style chunks so the whole pipeline runs without network access.
"""

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from toolstream.core.channel import StreamChannel, StreamEvent
from toolstream.llm.base_client import BaseLLMClient
from toolstream.llm.translate import ChunkTranslator


@dataclass
class MockFunctionDelta:
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass
class MockToolCallDelta:
    index: int = 0
    id: Optional[str] = None
    type: str = "function"
    function: MockFunctionDelta = field(default_factory=MockFunctionDelta)


@dataclass
class MockDelta:
    """Mock delta for streaming."""
    role: Optional[str] = None
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    tool_calls: Optional[List[MockToolCallDelta]] = None


@dataclass
class MockChoice:
    index: int = 0
    delta: Optional[MockDelta] = None
    finish_reason: Optional[str] = None


@dataclass
class MockStreamChunk:
    """Mock streaming chunk."""
    choices: List[MockChoice] = field(default_factory=list)
    usage: Optional[Dict[str, int]] = None


def text_chunks(content: str) -> List[MockStreamChunk]:
    """Stream text word by word."""
    words = content.split(" ")
    return [
        MockStreamChunk(choices=[MockChoice(delta=MockDelta(content=word + (" " if i < len(words) - 1 else "")))])
        for i, word in enumerate(words)
    ]


def tool_call_chunks(index: int, tool_id: str, name: str, arguments: Dict[str, Any], pieces: int = 3) -> List[MockStreamChunk]:
    """Stream a tool call with its JSON arguments split into fragments."""
    raw = json.dumps(arguments)
    size = max(1, -(-len(raw) // pieces))
    fragments = [raw[i:i + size] for i in range(0, len(raw), size)]

    chunks = [MockStreamChunk(choices=[MockChoice(delta=MockDelta(tool_calls=[
        MockToolCallDelta(index=index, id=tool_id, function=MockFunctionDelta(name=name, arguments=""))
    ]))])]
    for fragment in fragments:
        chunks.append(MockStreamChunk(choices=[MockChoice(delta=MockDelta(tool_calls=[
            MockToolCallDelta(index=index, function=MockFunctionDelta(arguments=fragment))
        ]))]))
    return chunks


def finish_chunk(reason: str, usage: Optional[Dict[str, int]] = None) -> MockStreamChunk:
    return MockStreamChunk(choices=[MockChoice(delta=MockDelta(), finish_reason=reason)], usage=usage)


def default_script() -> List[List[MockStreamChunk]]:
    """Two turns: look at the workspace, then summarize."""
    first = [MockStreamChunk(choices=[MockChoice(delta=MockDelta(reasoning_content="The user wants an overview. "))])]
    first += text_chunks("Let me look at the workspace first.")
    first += tool_call_chunks(0, "call_mock_1", "list_directory", {"path": "."})
    first.append(finish_chunk("tool_calls", {"prompt_tokens": 40, "completion_tokens": 12, "total_tokens": 52}))

    second = text_chunks("I listed the workspace. Everything above is what it currently contains.")
    second.append(finish_chunk("stop", {"prompt_tokens": 80, "completion_tokens": 14, "total_tokens": 94}))
    return [first, second]


class MockLLMClient(BaseLLMClient):
    """Scripted client that replays one chunk list per turn."""

    def __init__(self, script: Optional[List[List[Any]]] = None, model: str = "mock-llm"):
        super().__init__(api_key="mock", model=model, temperature=0.0)
        self.script = script if script is not None else default_script()
        self._call_count = 0
        self.requests: List[Dict[str, Any]] = []

    def stream_turn(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        channel: StreamChannel,
        cancel_event: Optional[threading.Event] = None
    ) -> None:
        self.requests.append({"messages": list(messages), "tools": tools})

        if self._call_count < len(self.script):
            chunks = self.script[self._call_count]
        else:
            chunks = text_chunks("Nothing left to do.") + [finish_chunk("stop")]
        self._call_count += 1
        logger.debug(f"Mock turn {self._call_count}: {len(chunks)} chunks")

        translator = ChunkTranslator()
        for chunk in chunks:
            if cancel_event is not None and cancel_event.is_set():
                break
            for event in translator.translate(chunk):
                channel.send(event)
        channel.send(StreamEvent.completion())

    def is_available(self) -> bool:
        return True
