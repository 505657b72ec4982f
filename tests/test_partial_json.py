"""
Tests for partial JSON repair.
"""

import pytest

from toolstream.core.partial_json import (
    KNOWN_FIELDS,
    extract_known_fields,
    parse_partial_args,
    parse_partial_json,
    repair_json,
)


class TestStrictParse:
    """Valid JSON comes back unchanged."""

    @pytest.mark.parametrize("text,expected", [
        ('{"path": "a.txt"}', {"path": "a.txt"}),
        ('[1, 2, 3]', [1, 2, 3]),
        ('{"nested": {"list": [true, null]}}', {"nested": {"list": [True, None]}}),
    ])
    def test_valid_documents(self, text, expected):
        assert parse_partial_json(text) == expected

    def test_empty_and_whitespace(self):
        assert parse_partial_json("") is None
        assert parse_partial_json("   \n") is None

    def test_non_string_input(self):
        assert parse_partial_json(None) is None


class TestBracketRepair:
    """Truncated documents are closed."""

    def test_unterminated_string(self):
        assert parse_partial_json('{"path": "a.t') == {"path": "a.t"}

    def test_open_array_inside_object(self):
        assert parse_partial_json('{"a": 1, "b": [1, 2') == {"a": 1, "b": [1, 2]}

    def test_nested_objects_closed_in_order(self):
        assert parse_partial_json('{"a": {"b": {"c": "d"') == {"a": {"b": {"c": "d"}}}

    def test_brackets_inside_strings_ignored(self):
        assert parse_partial_json('{"content": "if (x) { return [1"') == {"content": "if (x) { return [1"}

    def test_escaped_quote_inside_string(self):
        assert parse_partial_json('{"content": "say \\"hi') == {"content": 'say "hi'}

    def test_trailing_backslash(self):
        result = parse_partial_json('{"content": "C:\\')
        assert result == {"content": "C:\\"}

    def test_leading_garbage_discarded(self):
        assert parse_partial_json('Sure, here you go: {"path": "x"}') == {"path": "x"}

    def test_repair_json_without_structure(self):
        assert repair_json("no structure here") is None

    def test_repair_json_closes_stack(self):
        assert repair_json('[{"a": [') == '[{"a": []}]'


class TestFieldExtraction:
    """Badly damaged input falls back to well-known fields."""

    def test_trailing_comma_falls_back(self):
        assert parse_partial_json('{"path": "a.txt", ') == {"path": "a.txt"}

    def test_truncated_literal_skipped(self):
        result = parse_partial_json('{"path": "src/x.py", "start_line": 10, "recursive": tr')
        assert result == {"path": "src/x.py", "start_line": 10}

    def test_unescapes_common_sequences(self):
        result = extract_known_fields('"content": "line1\\nline2 \\"q\\" \\\\ end"')
        assert result == {"content": 'line1\nline2 "q" \\ end'}

    def test_bare_literals(self):
        result = extract_known_fields('"start_line": 5, "end_line": -1.5e2, "line": null')
        assert result == {"start_line": 5, "end_line": -150.0, "line": None}

    def test_exact_field_name_only(self):
        assert extract_known_fields('"filepath": "a.txt"') == {}

    def test_unknown_fields_ignored(self):
        assert parse_partial_json('"mystery": "value" oops') is None

    def test_custom_known_fields(self):
        result = parse_partial_json('{"target": "x", ', known_fields=["target"])
        assert result == {"target": "x"}

    def test_default_field_list(self):
        for name in ("path", "content", "command", "query", "pattern", "search_replace_blocks",
                     "start_line", "end_line", "line", "column", "paths", "url", "question"):
            assert name in KNOWN_FIELDS

    def test_garbage_returns_none(self):
        assert parse_partial_json("@@@ not json at all") is None


class TestProperties:

    @pytest.mark.parametrize("text", [
        '{"path": "a.t',
        '{"a": [1, {"b": "c',
        '{"path": "a.txt", ',
        'garbage',
        '{"content": "x\\',
    ])
    def test_idempotent_and_pure(self, text):
        original = str(text)
        first = parse_partial_json(text)
        second = parse_partial_json(text)
        assert first == second
        assert text == original

    def test_deeply_nested_input_does_not_raise(self):
        text = "[" * 5000
        parse_partial_json(text)


class TestParsePartialArgs:

    def test_returns_mapping(self):
        assert parse_partial_args('{"path": "a') == {"path": "a"}

    def test_non_mapping_becomes_empty(self):
        assert parse_partial_args("[1, 2]") == {}
        assert parse_partial_args("{") == {}
        assert parse_partial_args("") == {}


class TestTruncatedDocuments:
    """Every prefix of a valid document repairs to something consistent or None."""

    DOCUMENT = '{"path": "src/app.py", "start_line": 12, "content": "def f():\\n    return {\\"a\\": [1, 2]}\\n", "paths": ["a", "b"]}'

    def test_every_prefix(self):
        for offset in range(len(self.DOCUMENT) + 1):
            prefix = self.DOCUMENT[:offset]
            result = parse_partial_json(prefix)
            if result is None:
                continue
            assert isinstance(result, dict)
            if '"path": "src/app.py",' in prefix:
                assert result["path"] == "src/app.py"
            if '"start_line": 12,' in prefix:
                assert result["start_line"] == 12

    def test_full_document(self):
        result = parse_partial_json(self.DOCUMENT)
        assert result["paths"] == ["a", "b"]
        assert result["content"] == 'def f():\n    return {"a": [1, 2]}\n'
