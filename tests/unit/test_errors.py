"""Tests for backend error normalization."""

import pytest
from chatweave.errors import (
    AttachmentConversionFailed,
    ChatweaveError,
    MissingCredential,
    TransportError,
    normalize_error_message,
)


class TestNormalizeErrorMessage:
    def test_wrapped_json_is_pretty_printed(self):
        raw = 'StatusNotOk("{\\"a\\":1}")'
        assert normalize_error_message(raw) == '{\n  "a": 1\n}'

    def test_wrapped_nested_json(self):
        raw = 'StatusNotOk("{\\"error\\": {\\"code\\": 429, \\"status\\": \\"RESOURCE_EXHAUSTED\\"}}")'
        result = normalize_error_message(raw)
        assert result.startswith("{\n")
        assert '"code": 429' in result
        assert '"status": "RESOURCE_EXHAUSTED"' in result

    def test_plain_text_is_unchanged(self):
        assert normalize_error_message("connection reset by peer") == "connection reset by peer"

    def test_escaped_newlines_are_unescaped(self):
        assert normalize_error_message('StatusNotOk("line one\\nline two")') == "line one\nline two"

    def test_unwrapped_json_is_also_pretty_printed(self):
        assert normalize_error_message('{"b": [1, 2]}') == '{\n  "b": [\n    1,\n    2\n  ]\n}'

    def test_empty_message(self):
        assert normalize_error_message("") == ""


@pytest.mark.parametrize(
    "exc_class", [MissingCredential, TransportError, AttachmentConversionFailed]
)
def test_errors_share_a_base(exc_class):
    with pytest.raises(ChatweaveError):
        raise exc_class("failure")
