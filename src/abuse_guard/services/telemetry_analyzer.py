"""
Form and behavioral telemetry analysis.

A transparent linear model: every triggered rule adds its fixed weight to
the suspicion score and its flag to the result. Scores are not capped here;
thresholding is the decision engine's job.
"""

from typing import Optional, Sequence

import structlog

from abuse_guard.schemas.assessment import TelemetryAnalysis
from abuse_guard.schemas.submission import Submission
from abuse_guard.services.signal_rules import (
    SignalRule,
    TelemetryRuleConfig,
    build_telemetry_rules,
    evaluate_rules,
)

logger = structlog.get_logger(__name__)


class TelemetryAnalyzer:
    """
    Score a registration submission for bot-like patterns.

    Bots typically exhibit:
    - Filled-in honeypot fields
    - Near-instant form completion
    - Little or no keyboard and mouse activity
    - Generated names, disposable mailboxes, repeated digits
    """

    def __init__(
        self,
        config: Optional[TelemetryRuleConfig] = None,
        rules: Optional[Sequence[SignalRule[Submission]]] = None,
    ):
        self.rules = list(rules) if rules is not None else build_telemetry_rules(config)

    def analyze(self, submission: Submission) -> TelemetryAnalysis:
        score, flags = evaluate_rules(self.rules, submission)
        if flags:
            logger.debug("telemetry_rules_triggered", suspicion_score=score, flags=flags)
        return TelemetryAnalysis(suspicion_score=score, flags=flags)
