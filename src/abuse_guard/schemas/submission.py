"""
Inbound request schemas.

Telemetry and form fields arrive from the browser and cannot be trusted to
be present or well-formed. Everything is normalized here, once, so the rule
code downstream never has to null-check: missing or garbage numeric values
become 0, missing text becomes "".
"""

import math
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def _coerce_count(value: Any) -> int:
    """Coerce a client-supplied number to a non-negative int, defaulting to 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return int(number)


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


class Telemetry(BaseModel):
    """Behavioral metadata captured while the form was being filled in."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    form_duration_ms: int = Field(
        0,
        validation_alias=AliasChoices("form_duration_ms", "formDurationMs", "formDuration"),
    )
    keystroke_count: int = Field(
        0,
        validation_alias=AliasChoices("keystroke_count", "keystrokeCount", "keystrokes"),
    )
    mouse_movement_count: int = Field(
        0,
        validation_alias=AliasChoices("mouse_movement_count", "mouseMovementCount", "mouseMovements"),
    )
    focus_event_count: int = Field(
        0,
        validation_alias=AliasChoices("focus_event_count", "focusEventCount", "focusEvents"),
    )
    keystroke_intervals_ms: tuple[int, ...] = Field(
        (),
        validation_alias=AliasChoices(
            "keystroke_intervals_ms", "keystrokeIntervalsMs", "keystrokeIntervals"
        ),
    )

    @field_validator(
        "form_duration_ms",
        "keystroke_count",
        "mouse_movement_count",
        "focus_event_count",
        mode="before",
    )
    @classmethod
    def default_counts(cls, v: Any) -> int:
        return _coerce_count(v)

    @field_validator("keystroke_intervals_ms", mode="before")
    @classmethod
    def default_intervals(cls, v: Any) -> tuple[int, ...]:
        """Keep only usable interval samples, preserving order."""
        if not isinstance(v, (list, tuple)):
            return ()
        intervals = []
        for item in v:
            if item is None or isinstance(item, bool):
                continue
            try:
                number = float(item)
            except (TypeError, ValueError):
                continue
            if math.isnan(number) or math.isinf(number) or number < 0:
                continue
            intervals.append(int(number))
        return tuple(intervals)

    @property
    def average_keystroke_interval_ms(self) -> float | None:
        """Mean inter-keystroke interval, or None when no samples were sent."""
        if not self.keystroke_intervals_ms:
            return None
        return sum(self.keystroke_intervals_ms) / len(self.keystroke_intervals_ms)


class Submission(BaseModel):
    """Registration form fields relevant to abuse detection."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    display_name: str = Field(
        "", validation_alias=AliasChoices("display_name", "displayName", "name")
    )
    email_address: str = Field(
        "", validation_alias=AliasChoices("email_address", "emailAddress", "email")
    )
    phone_number: str = Field(
        "", validation_alias=AliasChoices("phone_number", "phoneNumber", "phone")
    )
    # Hidden field; humans never see it, so it should always come back empty
    honeypot_value: str = Field(
        "", validation_alias=AliasChoices("honeypot_value", "honeypotValue", "website")
    )
    telemetry: Telemetry = Field(
        default_factory=Telemetry,
        validation_alias=AliasChoices("telemetry", "analytics"),
    )

    @field_validator("display_name", "email_address", "phone_number", "honeypot_value", mode="before")
    @classmethod
    def default_text(cls, v: Any) -> str:
        return _coerce_text(v)

    @field_validator("telemetry", mode="before")
    @classmethod
    def default_telemetry(cls, v: Any) -> Any:
        if isinstance(v, (Telemetry, dict)):
            return v
        return Telemetry()


class SubmissionPayload(BaseModel):
    """A submission plus the optional challenge-response token."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    submission: Submission = Field(default_factory=Submission)
    challenge_token: str | None = Field(
        None,
        validation_alias=AliasChoices("challenge_token", "challengeToken", "captchaToken"),
    )

    @model_validator(mode="before")
    @classmethod
    def accept_flat_registration_body(cls, data: Any) -> Any:
        """
        Accept a raw registration body as well as the nested shape.

        Browsers post the form fields at the top level with the bot-protection
        widget output nested under ``botProtection``::

            {"name": ..., "email": ..., "botProtection": {
                "captchaToken": ..., "honeypotValue": ..., "analytics": {...}}}
        """
        if not isinstance(data, dict) or "submission" in data:
            return data

        body = dict(data)
        widget = body.pop("botProtection", None) or {}
        if not isinstance(widget, dict):
            widget = {}

        token = None
        for key in ("challenge_token", "challengeToken", "captchaToken"):
            if body.get(key) is not None:
                token = body.pop(key)
                break
        if token is None:
            token = widget.get("captchaToken")

        if "analytics" in widget and "telemetry" not in body and "analytics" not in body:
            body["analytics"] = widget["analytics"]
        if "honeypotValue" in widget and not any(
            key in body for key in ("honeypot_value", "honeypotValue", "website")
        ):
            body["honeypotValue"] = widget["honeypotValue"]

        return {"submission": body, "challenge_token": token}

    @field_validator("submission", mode="before")
    @classmethod
    def default_submission(cls, v: Any) -> Any:
        if isinstance(v, (Submission, dict)):
            return v
        return Submission()

    @field_validator("challenge_token", mode="before")
    @classmethod
    def stringify_token(cls, v: Any) -> str | None:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def has_challenge_token(self) -> bool:
        """A token counts as present when it is a non-empty string."""
        return bool(self.challenge_token)


class RequestContext(BaseModel):
    """Caller metadata extracted from the inbound HTTP request."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    client_address: str = Field(
        "unknown", validation_alias=AliasChoices("client_address", "clientAddress", "ip")
    )
    user_agent: str = Field("", validation_alias=AliasChoices("user_agent", "userAgent"))

    @field_validator("client_address", mode="before")
    @classmethod
    def default_address(cls, v: Any) -> str:
        return _coerce_text(v).strip() or "unknown"

    @field_validator("user_agent", mode="before")
    @classmethod
    def default_user_agent(cls, v: Any) -> str:
        return _coerce_text(v)
