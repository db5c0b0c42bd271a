"""Tests for the response parser."""

from mcpeval.parser import ParsedObject, ParseFailure, line_column, parse_response


class TestParseResponse:
    def test_direct_object(self):
        result = parse_response('  {"tool": "get_columns", "parameters": {}}  ')
        assert isinstance(result, ParsedObject)
        assert result.source == "direct"
        assert result.value["tool"] == "get_columns"

    def test_fenced_block_inside_prose(self):
        text = 'Let me look at the columns first.\n```json\n{"done": true}\n```\nHope that helps.'
        result = parse_response(text)
        assert isinstance(result, ParsedObject)
        assert result.source == "fenced"
        assert result.value == {"done": True}

    def test_fence_without_language_tag(self):
        result = parse_response('```\n{"complete": true}\n```')
        assert isinstance(result, ParsedObject)
        assert result.value["complete"] is True

    def test_first_fenced_block_wins(self):
        text = '```json\n{"a": 1}\n```\nor maybe\n```json\n{"a": 2}\n```'
        assert parse_response(text).value == {"a": 1}

    def test_plain_prose(self):
        result = parse_response("I think we should look at latency by service.")
        assert isinstance(result, ParseFailure)
        assert "did not contain" in result.message
        assert result.line is None

    def test_invalid_json_reports_position(self):
        result = parse_response('{"tool": "a",\n "parameters": }')
        assert isinstance(result, ParseFailure)
        assert result.message.startswith("Invalid JSON")
        assert result.line == 2
        assert "line 2" in result.diagnostic
        assert ">>>" in result.window

    def test_invalid_fenced_json(self):
        result = parse_response("```json\n{'single': 'quotes'}\n```")
        assert isinstance(result, ParseFailure)
        assert result.line == 1

    def test_fenced_non_object(self):
        result = parse_response("```json\n[1, 2, 3]\n```")
        assert isinstance(result, ParseFailure)
        assert result.message == "Expected a JSON object, got list"

    def test_empty_and_none(self):
        assert isinstance(parse_response(""), ParseFailure)
        assert isinstance(parse_response(None), ParseFailure)


class TestLineColumn:
    def test_first_line(self):
        assert line_column("abc", 0) == (1, 1)

    def test_later_line(self):
        assert line_column("ab\ncd", 4) == (2, 2)
