"""
Tests for tag-based tool call detection.
"""

from toolstream.core.xml_tool_parser import (
    detect_streaming_xml_tool_call,
    parse_xml_tool_calls,
    remove_xml_tool_calls,
)

WRAPPED = """Let me check.
<tool_call>
<function=read_file>
<parameter=path>src/app.py</parameter>
<parameter=start_line>10</parameter>
</function>
</tool_call>"""


class TestParseXmlToolCalls:

    def test_wrapped_call(self):
        calls = parse_xml_tool_calls(WRAPPED)
        assert len(calls) == 1
        assert calls[0]["name"] == "read_file"
        assert calls[0]["arguments"] == {"path": "src/app.py", "start_line": 10}

    def test_standalone_function_blocks_in_order(self):
        text = (
            "<function=list_directory><parameter=path>.</parameter></function>"
            " then "
            "<function=search_files><parameter=path>src</parameter>"
            "<parameter=pattern>TODO</parameter></function>"
        )
        calls = parse_xml_tool_calls(text)
        assert [c["name"] for c in calls] == ["list_directory", "search_files"]
        assert calls[1]["arguments"] == {"path": "src", "pattern": "TODO"}

    def test_json_parameter_values(self):
        text = '<function=write_file><parameter=content>{"a": [1, 2]}</parameter></function>'
        assert parse_xml_tool_calls(text)[0]["arguments"] == {"content": {"a": [1, 2]}}

    def test_ids_stable_when_text_grows(self):
        text = "<function=list_directory><parameter=path>.</parameter></function>"
        first = parse_xml_tool_calls(text)
        second = parse_xml_tool_calls(text + " and some more words")
        assert first[0]["id"] == second[0]["id"]

    def test_incomplete_block_not_reported(self):
        assert parse_xml_tool_calls("<function=read_file><parameter=path>src") == []

    def test_plain_text(self):
        assert parse_xml_tool_calls("no tools here") == []
        assert parse_xml_tool_calls("") == []


class TestDetectStreaming:

    def test_open_block(self):
        detected = detect_streaming_xml_tool_call("<function=write_file><parameter=path>notes.m")
        assert detected["name"] == "write_file"
        assert detected["is_closed"] is False
        assert detected["arguments"]["path"] == "notes.m"
        assert detected["arguments"]["_streaming"] is True

    def test_closed_block(self):
        detected = detect_streaming_xml_tool_call(WRAPPED)
        assert detected["is_closed"] is True
        assert detected["arguments"]["_streaming"] is False

    def test_partial_json_parameter(self):
        detected = detect_streaming_xml_tool_call('<function=x><parameter=data>{"a": "b')
        assert detected["arguments"]["data"] == {"a": "b"}

    def test_no_function(self):
        assert detect_streaming_xml_tool_call("just words") is None


class TestRemove:

    def test_markup_removed(self):
        assert remove_xml_tool_calls(WRAPPED) == "Let me check."
