"""
Data-driven signal rules.

Each rule is a (flag, weight, predicate) triple. The analyzers are generic
loops over a rule table, so a single rule can be exercised on its own and
the tables can be tuned without touching evaluation code. Pattern lists
(disposable mail providers, keyboard walks, automation user agents) are
configuration, loaded from settings unless injected.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Iterator, Optional, Sequence, TypeVar

import structlog

from abuse_guard.core.config import settings
from abuse_guard.schemas.submission import Submission

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SignalFlags:
    """Insertion-ordered, append-only set of flag names."""

    def __init__(self, flags: Iterable[str] = ()):
        self._flags: list[str] = []
        self.extend(flags)

    def add(self, flag: str) -> None:
        if flag not in self._flags:
            self._flags.append(flag)

    def extend(self, flags: Iterable[str]) -> None:
        for flag in flags:
            self.add(flag)

    def __contains__(self, flag: object) -> bool:
        return flag in self._flags

    def __iter__(self) -> Iterator[str]:
        return iter(self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        return f"SignalFlags({self._flags!r})"

    def to_list(self) -> list[str]:
        return list(self._flags)


@dataclass(frozen=True)
class SignalRule(Generic[T]):
    """One weighted check over a subject of type ``T``."""

    flag: str
    weight: int
    predicate: Callable[[T], bool]
    description: str = ""

    def evaluate(self, subject: T) -> bool:
        return bool(self.predicate(subject))


def evaluate_rules(rules: Sequence[SignalRule[T]], subject: T) -> tuple[int, list[str]]:
    """Run every rule and return (summed weight, triggered flags in table order)."""
    score = 0
    flags = SignalFlags()
    for rule in rules:
        if rule.evaluate(subject):
            score += rule.weight
            flags.add(rule.flag)
    return score, flags.to_list()


class PatternMatcher:
    """
    Case-insensitive search over a list of configured patterns.

    Invalid regular expressions are logged and skipped. With ``literal=True``
    every pattern is matched as plain text. Matches report the pattern as it
    was configured, so diagnostics agree with what the rule scored.
    """

    def __init__(self, patterns: Iterable[str], *, literal: bool = False):
        self._compiled: list[tuple[str, re.Pattern]] = []
        for pattern in patterns:
            if not pattern:
                continue
            try:
                compiled = re.compile(re.escape(pattern) if literal else pattern, re.IGNORECASE)
            except re.error as e:
                logger.error("invalid_rule_pattern", pattern=pattern, error=str(e))
                continue
            self._compiled.append((pattern, compiled))

    @property
    def patterns(self) -> list[str]:
        return [source for source, _ in self._compiled]

    def first_match(self, text: str) -> Optional[str]:
        for source, compiled in self._compiled:
            if compiled.search(text):
                return source
        return None

    def __call__(self, text: str) -> bool:
        return bool(text) and self.first_match(text) is not None


# =============================================================================
# Telemetry / form rules
# =============================================================================

FORM_TOO_QUICK_MS = 5000
FORM_QUICK_MS = 10000
MIN_KEYSTROKES = 20
MIN_MOUSE_MOVEMENTS = 5
MIN_AVG_KEYSTROKE_INTERVAL_MS = 50

_REPEATED_CHAR = re.compile(r"(.)\1{3,}")
_REPEATED_DIGIT = re.compile(r"(\d)\1{4,}")
_GENERATED_NAME = re.compile(r"^[a-z]+\d+$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s")


def _compact_name(submission: Submission) -> str:
    return _WHITESPACE.sub("", submission.display_name)


def _email_local_part(submission: Submission) -> str:
    return submission.email_address.rsplit("@", 1)[0] if "@" in submission.email_address else submission.email_address


@dataclass
class TelemetryRuleConfig:
    """Pattern tables consumed by the telemetry rules."""

    disposable_email_patterns: list[str] = field(
        default_factory=lambda: settings.disposable_email_patterns_list
    )
    keyboard_walk_patterns: list[str] = field(
        default_factory=lambda: settings.keyboard_walk_patterns_list
    )


def build_telemetry_rules(config: Optional[TelemetryRuleConfig] = None) -> list[SignalRule[Submission]]:
    """Build the form/telemetry rule table from ``config``."""
    config = config or TelemetryRuleConfig()
    disposable = PatternMatcher(config.disposable_email_patterns)
    keyboard_walks = PatternMatcher(config.keyboard_walk_patterns, literal=True)

    def form_duration(s: Submission) -> int:
        return s.telemetry.form_duration_ms

    def robotic_typing(s: Submission) -> bool:
        average = s.telemetry.average_keystroke_interval_ms
        return average is not None and average < MIN_AVG_KEYSTROKE_INTERVAL_MS

    return [
        SignalRule(
            "honeypot_filled",
            50,
            lambda s: s.honeypot_value.strip() != "",
            "hidden honeypot field was filled in",
        ),
        # A duration of 0 means the client never measured it
        SignalRule(
            "form_filled_too_quickly",
            30,
            lambda s: 0 < form_duration(s) < FORM_TOO_QUICK_MS,
            "form completed in under 5 seconds",
        ),
        SignalRule(
            "form_filled_quickly",
            15,
            lambda s: FORM_TOO_QUICK_MS <= form_duration(s) < FORM_QUICK_MS,
            "form completed in under 10 seconds",
        ),
        SignalRule(
            "insufficient_keystrokes",
            20,
            lambda s: s.telemetry.keystroke_count < MIN_KEYSTROKES,
            "fewer than 20 keystrokes",
        ),
        SignalRule(
            "insufficient_mouse_movement",
            20,
            lambda s: s.telemetry.mouse_movement_count < MIN_MOUSE_MOVEMENTS,
            "fewer than 5 mouse movements",
        ),
        SignalRule(
            "temporary_email",
            40,
            lambda s: disposable(s.email_address),
            "disposable mail provider",
        ),
        SignalRule(
            "repetitive_email_pattern",
            20,
            lambda s: _REPEATED_CHAR.search(_email_local_part(s)) is not None,
            "4+ identical characters in a row in the email local part",
        ),
        SignalRule(
            "generated_name_pattern",
            25,
            lambda s: _GENERATED_NAME.match(_compact_name(s)) is not None,
            "name looks like letters followed by digits",
        ),
        SignalRule(
            "keyboard_pattern_name",
            30,
            lambda s: keyboard_walks(_compact_name(s)),
            "name contains a keyboard walk",
        ),
        SignalRule(
            "repetitive_phone_pattern",
            20,
            lambda s: _REPEATED_DIGIT.search(s.phone_number) is not None,
            "5+ identical digits in a row in the phone number",
        ),
        SignalRule(
            "robotic_typing_pattern",
            25,
            robotic_typing,
            "average keystroke interval under 50 ms",
        ),
    ]


# =============================================================================
# User-agent rules
# =============================================================================

MIN_USER_AGENT_LENGTH = 20
MAX_USER_AGENT_LENGTH = 500
BOT_PATTERN_FLAG = "bot_pattern_detected"


@dataclass
class UserAgentRuleConfig:
    """Pattern table consumed by the user-agent rules."""

    bot_patterns: list[str] = field(default_factory=lambda: settings.bot_user_agent_patterns_list)


def build_user_agent_rules(config: Optional[UserAgentRuleConfig] = None) -> list[SignalRule[str]]:
    """Build the user-agent rule table from ``config``."""
    config = config or UserAgentRuleConfig()
    bot_patterns = PatternMatcher(config.bot_patterns, literal=True)

    return [
        # Only the first matching pattern counts
        SignalRule(
            BOT_PATTERN_FLAG,
            40,
            bot_patterns,
            "automation tool or scripting client",
        ),
        SignalRule(
            "missing_mozilla",
            20,
            lambda ua: "Mozilla" not in ua,
            "no Mozilla product token",
        ),
        SignalRule(
            "unusual_length",
            15,
            lambda ua: not MIN_USER_AGENT_LENGTH <= len(ua) <= MAX_USER_AGENT_LENGTH,
            "user agent shorter than 20 or longer than 500 characters",
        ),
    ]

