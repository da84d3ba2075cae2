"""
Unit Tests for directive extraction

Date/time directives are answered from a fixed clock (Friday 2024-03-15 09:05).
"""

from datetime import datetime

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent / "src"))

from nova.models.messages import ReplyType
from nova.services.directives import (
    NO_ANSWER_RESPONSE,
    UNSURE_RESPONSE,
    extract_directive,
    format_directive,
    interpret_model_text,
)

# Friday
FIXED_NOW = datetime(2024, 3, 15, 9, 5, 0)


class TestExtractDirective:
    """Embedded JSON lookup"""

    def test_plain_object(self):
        assert extract_directive('{"type": "get-day"}') == {"type": "get-day"}

    def test_object_wrapped_in_prose(self):
        text = 'Sure! {"type": "get-time"} Hope that helps.'
        assert extract_directive(text) == {"type": "get-time"}

    def test_no_braces(self):
        assert extract_directive("Paris is the capital of France.") is None

    def test_invalid_json_returns_none(self):
        assert extract_directive("{type: get-day}") is None

    def test_greedy_match_spans_two_objects(self):
        """First "{" to last "}" is not a single object"""
        assert extract_directive('{"a": 1} and {"b": 2}') is None


class TestFormatDirective:
    """Canonical date/time strings"""

    @pytest.mark.parametrize("reply_type, expected", [
        (ReplyType.GET_DATE, "Current date is 2024-03-15"),
        (ReplyType.GET_TIME, "Current time is 09:05 AM"),
        (ReplyType.GET_DAY, "Today is Friday"),
        (ReplyType.GET_MONTH, "This month is March"),
    ])
    def test_formats(self, reply_type, expected):
        assert format_directive(reply_type, FIXED_NOW) == expected

    def test_general_is_not_a_directive(self):
        with pytest.raises(ValueError):
            format_directive(ReplyType.GENERAL, FIXED_NOW)


class TestInterpretModelText:
    """Model output to typed replies"""

    def test_day_directive(self, fixed_clock):
        reply = interpret_model_text('{"type": "get-day"}', clock=fixed_clock)

        assert reply.type == "get-day"
        assert reply.response == "Today is Friday"

    def test_month_directive_in_prose(self, fixed_clock):
        reply = interpret_model_text('Here you go: {"type": "get-month"}', clock=fixed_clock)

        assert reply.type == "get-month"
        assert reply.response == "This month is March"

    def test_free_text_passthrough(self, fixed_clock):
        reply = interpret_model_text("  Paris is the capital of France.  ", clock=fixed_clock)

        assert reply.type == "general"
        assert reply.response == "Paris is the capital of France."

    def test_invalid_json_falls_back_to_text(self, fixed_clock):
        text = "Use {curly braces} for sets."
        reply = interpret_model_text(text, clock=fixed_clock)

        assert reply.type == "general"
        assert reply.response == text

    def test_general_directive_uses_response(self, fixed_clock):
        reply = interpret_model_text('{"type": "general", "response": "Hi there"}', clock=fixed_clock)

        assert reply.type == "general"
        assert reply.response == "Hi there"

    def test_directive_without_response_is_unsure(self, fixed_clock):
        reply = interpret_model_text('{"type": "weather"}', clock=fixed_clock)

        assert reply.type == "general"
        assert reply.response == UNSURE_RESPONSE

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_output(self, text, fixed_clock):
        reply = interpret_model_text(text, clock=fixed_clock)

        assert reply.type == "general"
        assert reply.response == NO_ANSWER_RESPONSE

    @pytest.mark.parametrize("text, expected", [
        ('{"type": ["get-day"], "response": "hi"}', "hi"),
        ('{"type": {"a": 1}}', UNSURE_RESPONSE),
        ('{"type": 42, "response": "forty-two"}', "forty-two"),
        ('{"type": null}', UNSURE_RESPONSE),
    ])
    def test_non_string_type_is_general(self, text, expected, fixed_clock):
        reply = interpret_model_text(text, clock=fixed_clock)

        assert reply.type == "general"
        assert reply.response == expected
