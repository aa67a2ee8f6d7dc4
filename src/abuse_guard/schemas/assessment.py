"""
Result schemas produced by the abuse-detection pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Suspicion-score cut points shared by risk level and recommendation
HIGH_RISK_SCORE = 70
MEDIUM_RISK_SCORE = 40
LOW_RISK_SCORE = 20


class RiskLevel(str, Enum):
    """Ordinal risk classification derived from the suspicion score."""

    MINIMAL = "MINIMAL"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        if score >= HIGH_RISK_SCORE:
            return cls.HIGH
        elif score >= MEDIUM_RISK_SCORE:
            return cls.MEDIUM
        elif score >= LOW_RISK_SCORE:
            return cls.LOW
        return cls.MINIMAL


class Recommendation(str, Enum):
    """Suggested action for the calling registration flow."""

    ALLOW = "ALLOW"
    ADDITIONAL_VERIFICATION = "ADDITIONAL_VERIFICATION"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    BLOCK = "BLOCK"

    @classmethod
    def from_score(cls, score: int) -> "Recommendation":
        if score >= HIGH_RISK_SCORE:
            return cls.BLOCK
        elif score >= MEDIUM_RISK_SCORE:
            return cls.MANUAL_REVIEW
        elif score >= LOW_RISK_SCORE:
            return cls.ADDITIONAL_VERIFICATION
        return cls.ALLOW


class ReasonCode(str, Enum):
    """Why the engine reached its decision."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CHALLENGE_FAILED = "CHALLENGE_FAILED"
    LOW_TRUST_SCORE = "LOW_TRUST_SCORE"
    MISSING_CHALLENGE = "MISSING_CHALLENGE"
    DEV_CHALLENGE_SKIPPED = "DEV_CHALLENGE_SKIPPED"
    CHALLENGE_PASSED = "CHALLENGE_PASSED"
    HIGH_SUSPICION = "HIGH_SUSPICION"
    MODERATE_SUSPICION_MONITORED = "MODERATE_SUSPICION_MONITORED"
    EVALUATION_ERROR = "EVALUATION_ERROR"


class RateLimitResult(BaseModel):
    """Outcome of a single windowed rate-limit check."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    remaining: int = Field(..., ge=0)
    reset_at: int  # epoch milliseconds
    limit: int


class ChallengeResult(BaseModel):
    """Normalized challenge-response verification outcome."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    trust_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    action: Optional[str] = None
    hostname: Optional[str] = None
    challenge_ts: Optional[str] = None
    error_codes: list[str] = Field(default_factory=list)

    @classmethod
    def failure(cls, *error_codes: str) -> "ChallengeResult":
        """Build the normalized failure shape used for every non-success path."""
        return cls(success=False, trust_score=0.0, error_codes=list(error_codes))


class TelemetryAnalysis(BaseModel):
    """Suspicion score and triggered flags from form/telemetry analysis."""

    model_config = ConfigDict(frozen=True)

    suspicion_score: int = 0
    flags: list[str] = Field(default_factory=list)

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.from_score(self.suspicion_score)

    @property
    def recommendation(self) -> Recommendation:
        return Recommendation.from_score(self.suspicion_score)


class UserAgentAnalysis(BaseModel):
    """User-agent heuristic result."""

    model_config = ConfigDict(frozen=True)

    suspicious: bool = False
    score: int = 0
    flags: list[str] = Field(default_factory=list)
    matched_pattern: Optional[str] = None
    # Truncated copy for diagnostics; full strings can be arbitrarily long
    user_agent: str = ""


class RiskAssessment(BaseModel):
    """Terminal output of one abuse-risk evaluation."""

    model_config = ConfigDict(frozen=True)

    is_bot: bool = False
    confidence_percent: int = Field(0, ge=0, le=100)
    reason_code: ReasonCode
    suspicion_score: int = Field(0, ge=0)
    risk_level: RiskLevel = RiskLevel.MINIMAL
    recommendation: Recommendation = Recommendation.ALLOW
    flags: list[str] = Field(default_factory=list)

    identifier: Optional[str] = None
    # Populated only for EVALUATION_ERROR
    error: Optional[str] = None
    # Per-stage diagnostic data (not meant for end users)
    checks: dict[str, Any] = Field(default_factory=dict)
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def should_block(self, threshold: int = 70) -> bool:
        """Whether a caller acting at ``threshold`` confidence should reject the request."""
        return self.is_bot and self.confidence_percent >= threshold
