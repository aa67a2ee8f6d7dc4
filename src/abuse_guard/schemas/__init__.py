"""Schemas module initialization."""

from abuse_guard.schemas.assessment import (
    ChallengeResult,
    RateLimitResult,
    ReasonCode,
    Recommendation,
    RiskAssessment,
    RiskLevel,
    TelemetryAnalysis,
    UserAgentAnalysis,
)
from abuse_guard.schemas.submission import RequestContext, Submission, SubmissionPayload, Telemetry

__all__ = [
    "ChallengeResult",
    "RateLimitResult",
    "ReasonCode",
    "Recommendation",
    "RiskAssessment",
    "RiskLevel",
    "TelemetryAnalysis",
    "UserAgentAnalysis",
    "RequestContext",
    "Submission",
    "SubmissionPayload",
    "Telemetry",
]
