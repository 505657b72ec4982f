"""
Tests for the model clients: chunk translation, the scripted mock client
and the OpenAI streaming client against a fake SDK.
"""

import threading
from types import SimpleNamespace

import httpx
import openai
import pytest

from toolstream.core.channel import EventKind, StreamChannel
from toolstream.core.config import Config
from toolstream.core.events import EventBus
from toolstream.core.stream import StreamProcessor
from toolstream.llm import MockLLMClient, OpenAIClient, create_llm_client
from toolstream.llm.base_client import AUTH, NETWORK, RATE_LIMIT, UNKNOWN
from toolstream.llm.mock_client import finish_chunk, text_chunks, tool_call_chunks
from toolstream.llm.openai_client import classify_error
from toolstream.llm.translate import ChunkTranslator


def collect(channel):
    events = []
    channel.on_stream(events.append)
    channel.on_tool_call(events.append)
    channel.on_error(events.append)
    channel.on_done(events.append)
    return events


class TestChunkTranslator:

    def test_text_and_reasoning(self):
        chunk = {"choices": [{"delta": {"reasoning_content": "hmm", "content": "Hi"}}]}
        events = ChunkTranslator().translate(chunk)
        assert [(e.kind, e.content) for e in events] == [(EventKind.REASONING, "hmm"), (EventKind.TEXT, "Hi")]

    def test_tool_call_deltas_keyed_by_index(self):
        translator = ChunkTranslator()
        first = translator.translate({"choices": [{"delta": {"tool_calls": [
            {"index": 0, "id": "call_1", "function": {"name": "read_file", "arguments": '{"pa'}},
        ]}}]})
        second = translator.translate({"choices": [{"delta": {"tool_calls": [
            {"index": 0, "function": {"arguments": 'th": "a"}'}},
        ]}}]})

        assert [e.kind for e in first] == [EventKind.TOOL_CALL_START, EventKind.TOOL_CALL_DELTA]
        assert first[0].id == "call_1" and first[0].name == "read_file"
        assert second[0].kind == EventKind.TOOL_CALL_DELTA
        assert second[0].id == "call_1"
        assert second[0].arguments_delta == 'th": "a"}'

    def test_fragments_without_index_continue_current_call(self):
        translator = ChunkTranslator()
        deltas = [
            {"id": "call_1", "function": {"name": "read_file", "arguments": ""}},
            {"function": {"arguments": '{"path": '}},
            {"function": {"arguments": '"x.ts"}'}},
        ]
        events = [e for d in deltas for e in translator.translate({"choices": [{"delta": {"tool_calls": [d]}}]})]
        assert {e.id for e in events} == {"call_1"}

        result = StreamProcessor(bus=EventBus()).feed(events)
        assert len(result.tool_calls) == 1
        assert result.tool_calls[0].name == "read_file"
        assert result.tool_calls[0].arguments == {"path": "x.ts"}

    def test_new_id_without_index_starts_new_call(self):
        translator = ChunkTranslator()
        deltas = [
            {"id": "call_1", "function": {"name": "read_file", "arguments": '{"path": "a"}'}},
            {"id": "call_2", "function": {"name": "list_directory", "arguments": '{"path": "."}'}},
            {"id": "call_1", "function": {"arguments": ""}},
        ]
        events = [e for d in deltas for e in translator.translate({"choices": [{"delta": {"tool_calls": [d]}}]})]
        starts = [(e.id, e.name) for e in events if e.kind == EventKind.TOOL_CALL_START]
        assert starts == [("call_1", "read_file"), ("call_2", "list_directory")]

    def test_empty_delta_ignored(self):
        translator = ChunkTranslator()
        translator.translate({"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c", "function": {"name": "x"}}]}}]})
        assert translator.translate({"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {}}]}}]}) == []

    def test_usage_only_chunk(self):
        events = ChunkTranslator().translate({"choices": [], "usage": {"prompt_tokens": 1}})
        assert [e.kind for e in events] == [EventKind.USAGE]

    def test_whole_tool_call_in_message(self):
        chunk = {"choices": [{"message": {"tool_calls": [
            {"id": "c9", "function": {"name": "list_directory", "arguments": '{"path": "."}'}},
        ]}}]}
        events = ChunkTranslator().translate(chunk)
        assert len(events) == 1
        assert events[0].kind == EventKind.TOOL_CALL_COMPLETE
        assert events[0].arguments == {"path": "."}

    def test_sdk_style_objects(self):
        chunks = text_chunks("two words") + tool_call_chunks(0, "t1", "read_file", {"path": "a"}, pieces=2)
        translator = ChunkTranslator()
        events = [e for chunk in chunks for e in translator.translate(chunk)]
        assert "".join(e.content for e in events if e.kind == EventKind.TEXT) == "two words"
        deltas = "".join(e.arguments_delta for e in events if e.kind == EventKind.TOOL_CALL_DELTA)
        assert deltas == '{"path": "a"}'


class TestMockClient:

    def test_default_script_first_turn(self):
        channel = StreamChannel()
        processor = StreamProcessor(channel, bus=EventBus())
        MockLLMClient().stream_turn([{"role": "user", "content": "hi"}], None, channel)
        result = processor.wait(1)

        assert result.text == "Let me look at the workspace first."
        assert result.reasoning
        assert len(result.tool_calls) == 1
        assert result.tool_calls[0].id == "call_mock_1"
        assert result.tool_calls[0].arguments == {"path": "."}
        assert result.usage.total_tokens == 52

    def test_script_exhausted(self):
        client = MockLLMClient(script=[])
        channel = StreamChannel()
        processor = StreamProcessor(channel, bus=EventBus())
        client.stream_turn([], None, channel)
        assert processor.wait(1).text == "Nothing left to do."
        assert len(client.requests) == 1

    def test_custom_script(self):
        script = [text_chunks("custom reply") + [finish_chunk("stop")]]
        channel = StreamChannel()
        events = collect(channel)
        MockLLMClient(script=script).stream_turn([], None, channel)
        assert events[-1].kind == EventKind.COMPLETION
        assert sum(1 for e in events if e.kind == EventKind.COMPLETION) == 1


class FakeStream:

    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.closed = False

    def __iter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True


def fake_sdk(stream=None, error=None):
    requests = []

    def create(**kwargs):
        requests.append(kwargs)
        if error is not None:
            raise error
        return stream

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, requests


REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


class TestOpenAIClient:

    def test_streams_and_completes(self):
        stream = FakeStream(text_chunks("hello there") + [finish_chunk("stop", {"prompt_tokens": 2, "completion_tokens": 3})])
        sdk, requests = fake_sdk(stream)
        client = OpenAIClient(api_key="k", model="gpt-test", client=sdk)

        channel = StreamChannel()
        processor = StreamProcessor(channel, bus=EventBus())
        client.stream_turn([{"role": "user", "content": "hi"}], [{"type": "function"}], channel)
        result = processor.wait(1)

        assert result.text == "hello there"
        assert result.usage.total_tokens == 5
        assert stream.closed
        assert requests[0]["stream"] is True
        assert requests[0]["tools"] == [{"type": "function"}]
        assert requests[0]["stream_options"] == {"include_usage": True}

    def test_no_tools_no_usage_option(self):
        sdk, requests = fake_sdk(FakeStream([]))
        client = OpenAIClient(api_key="k", client=sdk, include_usage=False)
        client.stream_turn([], [], StreamChannel())
        assert "tools" not in requests[0]
        assert "stream_options" not in requests[0]

    def test_request_error_becomes_error_event(self):
        sdk, _ = fake_sdk(error=openai.APIConnectionError(request=REQUEST))
        channel = StreamChannel()
        events = collect(channel)
        OpenAIClient(api_key="k", client=sdk).stream_turn([], None, channel)

        assert [e.kind for e in events] == [EventKind.ERROR, EventKind.COMPLETION]
        assert events[0].error.startswith("[NETWORK] ")

    def test_midstream_error_keeps_partial_text(self):
        error = openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None)
        stream = FakeStream(text_chunks("partial answer"), error=error)
        sdk, _ = fake_sdk(stream)

        channel = StreamChannel()
        processor = StreamProcessor(channel, bus=EventBus())
        OpenAIClient(api_key="k", client=sdk).stream_turn([], None, channel)
        result = processor.wait(1)

        assert result.text == "partial answer"
        assert result.error.startswith("[RATE_LIMIT] ")
        assert result.is_partial
        assert stream.closed

    def test_cancel_event_stops_reading(self):
        cancel = threading.Event()
        cancel.set()
        sdk, _ = fake_sdk(FakeStream(text_chunks("never delivered")))
        channel = StreamChannel()
        events = collect(channel)
        OpenAIClient(api_key="k", client=sdk).stream_turn([], None, channel, cancel_event=cancel)
        assert [e.kind for e in events] == [EventKind.COMPLETION]


class TestClassifyError:

    def test_codes(self):
        response = httpx.Response(401, request=REQUEST)
        assert classify_error(openai.AuthenticationError("bad key", response=response, body=None)) == AUTH
        assert classify_error(openai.RateLimitError("slow", response=httpx.Response(429, request=REQUEST), body=None)) == RATE_LIMIT
        assert classify_error(openai.APIConnectionError(request=REQUEST)) == NETWORK
        assert classify_error(ValueError("other")) == UNKNOWN


class TestFactory:

    def test_mock_mode(self):
        assert isinstance(create_llm_client(Config(), mock=True), MockLLMClient)

    def test_missing_key(self):
        config = Config()
        config.openai_api_key = None
        with pytest.raises(ValueError, match="No API key"):
            create_llm_client(config, mock=False)
