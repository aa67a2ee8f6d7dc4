"""
Tests for inbound request schemas.
"""

import math

import pytest
from pydantic import ValidationError

from abuse_guard.schemas.submission import RequestContext, Submission, SubmissionPayload, Telemetry


class TestTelemetry:
    """Tests for Telemetry normalization."""

    def test_defaults_are_zero(self):
        telemetry = Telemetry()

        assert telemetry.form_duration_ms == 0
        assert telemetry.keystroke_count == 0
        assert telemetry.mouse_movement_count == 0
        assert telemetry.focus_event_count == 0
        assert telemetry.keystroke_intervals_ms == ()
        assert telemetry.average_keystroke_interval_ms is None

    @pytest.mark.parametrize(
        "raw",
        [
            {"form_duration_ms": 1500, "keystroke_count": 3},
            {"formDurationMs": 1500, "keystrokeCount": 3},
            {"formDuration": 1500, "keystrokes": 3},
        ],
    )
    def test_accepts_field_name_variants(self, raw):
        telemetry = Telemetry.model_validate(raw)

        assert telemetry.form_duration_ms == 1500
        assert telemetry.keystroke_count == 3

    @pytest.mark.parametrize("value", [None, True, "abc", -5, math.nan, math.inf, [], {}])
    def test_garbage_counts_become_zero(self, value):
        assert Telemetry.model_validate({"keystrokeCount": value}).keystroke_count == 0

    def test_numeric_strings_and_floats_are_truncated(self):
        telemetry = Telemetry.model_validate({"formDuration": "2500.9", "mouseMovements": 4.7})

        assert telemetry.form_duration_ms == 2500
        assert telemetry.mouse_movement_count == 4

    def test_intervals_keep_usable_samples(self):
        telemetry = Telemetry.model_validate(
            {"keystrokeIntervals": [100, None, "x", -1, 50.5, True, math.nan, "30"]}
        )

        assert telemetry.keystroke_intervals_ms == (100, 50, 30)
        assert telemetry.average_keystroke_interval_ms == 60

    def test_is_frozen(self):
        telemetry = Telemetry()
        with pytest.raises(ValidationError):
            telemetry.keystroke_count = 10


class TestSubmission:
    """Tests for Submission normalization."""

    def test_short_field_names(self):
        submission = Submission.model_validate(
            {
                "name": "Ana",
                "email": "ana@example.com",
                "phone": "555-0100",
                "website": "spam",
                "analytics": {"keystrokes": 12},
            }
        )

        assert submission.display_name == "Ana"
        assert submission.email_address == "ana@example.com"
        assert submission.phone_number == "555-0100"
        assert submission.honeypot_value == "spam"
        assert submission.telemetry.keystroke_count == 12

    def test_missing_and_null_text_is_empty(self):
        submission = Submission.model_validate({"name": None, "email": {"nested": True}})

        assert submission.display_name == ""
        assert submission.email_address == ""
        assert submission.phone_number == ""

    def test_numeric_phone_is_stringified(self):
        assert Submission.model_validate({"phone": 5551234}).phone_number == "5551234"

    @pytest.mark.parametrize("value", [None, "nope", 12, ["a"]])
    def test_non_object_telemetry_is_empty(self, value):
        assert Submission.model_validate({"telemetry": value}).telemetry == Telemetry()


class TestSubmissionPayload:
    """Tests for SubmissionPayload parsing."""

    def test_nested_shape(self):
        payload = SubmissionPayload.model_validate(
            {"submission": {"name": "Ana"}, "challenge_token": "tok"}
        )

        assert payload.submission.display_name == "Ana"
        assert payload.challenge_token == "tok"
        assert payload.has_challenge_token is True

    def test_registration_body_with_widget_block(self):
        payload = SubmissionPayload.model_validate(
            {
                "name": "Ana",
                "email": "ana@example.com",
                "botProtection": {
                    "captchaToken": "tok-1",
                    "honeypotValue": "filled",
                    "analytics": {"formDuration": 3000, "keystrokes": 5, "mouseMovements": 1},
                },
            }
        )

        assert payload.challenge_token == "tok-1"
        assert payload.submission.display_name == "Ana"
        assert payload.submission.honeypot_value == "filled"
        assert payload.submission.telemetry.form_duration_ms == 3000
        assert payload.submission.telemetry.mouse_movement_count == 1

    def test_top_level_token_wins_over_widget(self):
        payload = SubmissionPayload.model_validate(
            {"captchaToken": "outer", "botProtection": {"captchaToken": "inner"}}
        )
        assert payload.challenge_token == "outer"

    def test_top_level_honeypot_wins_over_widget(self):
        payload = SubmissionPayload.model_validate(
            {"website": "outer", "botProtection": {"honeypotValue": "inner"}}
        )
        assert payload.submission.honeypot_value == "outer"

    def test_non_object_widget_is_ignored(self):
        payload = SubmissionPayload.model_validate({"name": "Ana", "botProtection": "garbage"})

        assert payload.challenge_token is None
        assert payload.has_challenge_token is False
        assert payload.submission.display_name == "Ana"

    def test_empty_token_is_not_present(self):
        assert SubmissionPayload(challenge_token="").has_challenge_token is False

    def test_non_string_token_is_stringified(self):
        assert SubmissionPayload.model_validate({"challengeToken": 12345}).challenge_token == "12345"

    def test_empty_body(self):
        payload = SubmissionPayload.model_validate({})

        assert payload.submission == Submission()
        assert payload.challenge_token is None


class TestRequestContext:
    def test_defaults(self):
        context = RequestContext()

        assert context.client_address == "unknown"
        assert context.user_agent == ""

    @pytest.mark.parametrize("address", [None, "", "   "])
    def test_blank_address_is_unknown(self, address):
        assert RequestContext.model_validate({"ip": address}).client_address == "unknown"

    def test_aliases(self):
        context = RequestContext.model_validate({"clientAddress": " 10.0.0.1 ", "userAgent": "UA"})

        assert context.client_address == "10.0.0.1"
        assert context.user_agent == "UA"
