import json

import pytest

from cv_standardizer.services.json_recovery import (
    BracketScanner,
    extract_balanced_json,
    force_close,
    parse_with_recovery,
    remove_trailing_commas,
    strip_code_fence,
)
from cv_standardizer.utils.exceptions import JsonRecoveryError, ParseFailure


class TestParseWithRecovery:
    """Candidate-by-candidate recovery of generator output"""

    def test_valid_json_is_not_recovered(self):
        """Re-parsing serialized output gives the same value without recovery"""
        value = {"skills": ["Go", "Rust"], "years": 4, "nested": {"a": [1, 2]}}
        result = parse_with_recovery(json.dumps(value))
        assert result.value == value
        assert result.recovered is False

        again = parse_with_recovery(json.dumps(result.value))
        assert again.value == value
        assert again.recovered is False

    def test_fenced_json_is_recovered(self):
        """Valid JSON inside a markdown fence parses with recovered=True"""
        value = {"summary": "Engineer", "skills": []}
        result = parse_with_recovery("```json\n" + json.dumps(value) + "\n```")
        assert result.value == value
        assert result.recovered is True

    def test_fence_without_language_tag(self):
        """A fence without a language tag still strips"""
        result = parse_with_recovery("```\n[1, 2, 3]\n```")
        assert result.value == [1, 2, 3]
        assert result.recovered is True

    def test_fenced_trailing_comma(self):
        """Fenced output with a trailing comma inside an array"""
        result = parse_with_recovery('```json\n{"skills": ["Go",]}\n```')
        assert result.value == {"skills": ["Go"]}
        assert result.recovered is True

    def test_truncated_mid_string(self):
        """Unterminated string and open brace are force-closed"""
        result = parse_with_recovery('{"name": "Ada", "summary": "Built distributed sys')
        assert result.value == {"name": "Ada", "summary": "Built distributed sys"}
        assert result.recovered is True

    def test_truncated_nested_structure(self):
        """Nested arrays and objects are closed in order"""
        text = '{"skills": ["Go", "Rust"], "experience": [{"company": "Acme", "highlights": ["shipped'
        result = parse_with_recovery(text)
        assert result.value["skills"] == ["Go", "Rust"]
        assert result.value["experience"][0]["company"] == "Acme"
        assert result.value["experience"][0]["highlights"] == ["shipped"]

    def test_truncated_after_key(self):
        """A dangling key gets a null value"""
        result = parse_with_recovery('{"a": 1, "b":')
        assert result.value == {"a": 1, "b": None}

    @pytest.mark.parametrize("text,expected", [
        ('{"a": 1, "b', {"a": 1}),
        ('{"skills": ["Go"], "summ', {"skills": ["Go"]}),
        ('{"a": 1, "b"', {"a": 1}),
        ('{"a', {}),
    ])
    def test_truncated_inside_key(self, text, expected):
        """A half-written key is dropped and the members before it survive"""
        result = parse_with_recovery(text)
        assert result.value == expected
        assert result.recovered is True

    def test_truncated_inside_nested_key(self):
        """A half-written key inside a nested object is dropped"""
        result = parse_with_recovery('{"experience": [{"company": "Acme", "highl')
        assert result.value == {"experience": [{"company": "Acme"}]}

    def test_bare_array_is_supported(self):
        """Top-level arrays are recovered too"""
        result = parse_with_recovery("[1, 2,")
        assert result.value == [1, 2]
        assert result.recovered is True

    def test_chatty_prefix_and_suffix(self):
        """Prose around the JSON is ignored"""
        result = parse_with_recovery('Sure! Here it is: {"a": 1} Let me know if you need more.')
        assert result.value == {"a": 1}
        assert result.recovered is True

    def test_smart_quotes_are_straightened(self):
        """Typographic quotes become ASCII quotes"""
        result = parse_with_recovery("{“name”: “Ada”}")
        assert result.value == {"name": "Ada"}

    def test_raw_newline_inside_string(self):
        """Raw newlines inside strings are escaped"""
        result = parse_with_recovery('{"summary": "line one\nline two"}')
        assert result.value == {"summary": "line one\nline two"}
        assert result.recovered is True

    def test_brackets_inside_strings_do_not_confuse_scanner(self):
        """Brackets inside strings are not counted"""
        text = '{"pattern": "a]b}c{[", "ok": true'
        result = parse_with_recovery(text)
        assert result.value == {"pattern": "a]b}c{[", "ok": True}

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_input_fails(self, text):
        """Empty input cannot be recovered"""
        with pytest.raises(JsonRecoveryError):
            parse_with_recovery(text)

    def test_unrecoverable_text_reports_first_error(self):
        """The error carries the first json.loads failure"""
        with pytest.raises(JsonRecoveryError) as exc_info:
            parse_with_recovery("I am sorry, I cannot do that.")
        assert isinstance(exc_info.value, ParseFailure)
        assert isinstance(exc_info.value.first_error, ValueError)
        assert exc_info.value.details["first_error"]


class TestScannerHelpers:
    """Bracket scanning, fence stripping and textual repairs"""

    def test_scanner_tracks_escaped_quotes(self):
        """Escaped quotes do not end a string"""
        scanner = BracketScanner()
        for ch in '{"a": "say \\"hi\\" {':
            scanner.feed(ch)
        assert scanner.in_string is True
        assert scanner.stack == ["{"]
        assert scanner.closers() == "}"

    def test_extract_balanced_json_ignores_string_brackets(self):
        """Balanced extraction skips brackets in strings"""
        assert extract_balanced_json('noise {"a": "}"} tail {"b": 2}') == '{"a": "}"}'

    def test_extract_balanced_json_none_when_unbalanced(self):
        """Unbalanced or bracketless text gives None"""
        assert extract_balanced_json('{"a": [1, 2') is None
        assert extract_balanced_json("no json here") is None

    def test_strip_code_fence(self):
        """Fence body is returned trimmed"""
        assert strip_code_fence("```json\n{}\n```") == "{}"
        assert strip_code_fence("  {} ") == "{}"

    def test_force_close_drops_dangling_backslash(self):
        """A trailing backslash does not escape the closing quote"""
        assert json.loads(force_close('{"a": "x\\')) == {"a": "x"}

    def test_force_close_cuts_back_an_open_key(self):
        """Open keys are cut, open array strings are closed"""
        assert force_close('{"a": 1, "b') == '{"a": 1}'
        assert force_close('["a", "b') == '["a", "b"]'

    def test_remove_trailing_commas_keeps_commas_in_strings(self):
        """Commas inside strings survive trailing-comma removal"""
        assert remove_trailing_commas('{"a": ",]", "b": [1,],}') == '{"a": ",]", "b": [1]}'
