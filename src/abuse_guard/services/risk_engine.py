"""
Abuse Risk Decision Engine.

Decides, for each account-creation request, whether to allow, flag, or
block it. Signals are evaluated as an ordered pipeline of stages; each stage
either hands the evaluation state on (``Continue``) or ends it with a final
assessment (``Terminal``):

1. Rate limiting       - fail fast on repeated attempts from one caller
2. Challenge-response  - CAPTCHA token verification and trust score
3. Signal analysis     - form telemetry and user-agent heuristics
4. Thresholds          - environment-dependent cut points on the total score

Internal faults never reach the caller: they are logged and converted into
a fail-open ``EVALUATION_ERROR`` assessment.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from abuse_guard.core.config import Settings, settings
from abuse_guard.schemas.assessment import (
    ChallengeResult,
    ReasonCode,
    Recommendation,
    RiskAssessment,
    RiskLevel,
)
from abuse_guard.schemas.submission import RequestContext, Submission, SubmissionPayload
from abuse_guard.services.challenge_verifier import ChallengeVerifier
from abuse_guard.services.rate_limiter import WindowedRateLimiter
from abuse_guard.services.signal_rules import SignalFlags
from abuse_guard.services.telemetry_analyzer import TelemetryAnalyzer
from abuse_guard.services.user_agent_classifier import UserAgentClassifier

logger = structlog.get_logger(__name__)

# Added to the telemetry score when the user agent looks automated
USER_AGENT_SUSPICION_WEIGHT = 20


# =============================================================================
# Environment policy
# =============================================================================


class EnvironmentPolicy(BaseModel):
    """Environment-dependent decision policy (strict in production)."""

    model_config = ConfigDict(frozen=True)

    environment: str = "development"
    is_production: bool = False

    # Challenge-response
    require_challenge: bool = False
    min_trust_score: float = Field(0.0, ge=0.0, le=1.0)
    # Provider test keys always score 0.0; let them through outside production
    test_provider_hostname: Optional[str] = "testkey.google.com"

    # Suspicion thresholds
    high_threshold: int = Field(90, ge=0)
    moderate_threshold: int = Field(70, ge=0)

    # Rate limiting
    rate_limit_max_attempts: int = Field(3, gt=0)
    rate_limit_window_ms: int = Field(15 * 60 * 1000, gt=0)

    @model_validator(mode="after")
    def check_threshold_order(self) -> "EnvironmentPolicy":
        if self.moderate_threshold > self.high_threshold:
            raise ValueError("moderate_threshold must not exceed high_threshold")
        return self

    @classmethod
    def production(cls, **overrides: Any) -> "EnvironmentPolicy":
        values: dict[str, Any] = {
            "environment": "production",
            "is_production": True,
            "require_challenge": True,
            "min_trust_score": 0.3,
            "high_threshold": 80,
            "moderate_threshold": 50,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def non_production(cls, environment: str = "development", **overrides: Any) -> "EnvironmentPolicy":
        values: dict[str, Any] = {
            "environment": environment,
            "is_production": False,
            "require_challenge": False,
            "min_trust_score": 0.0,
            "high_threshold": 90,
            "moderate_threshold": 70,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def for_environment(cls, app_env: str, **overrides: Any) -> "EnvironmentPolicy":
        env = (app_env or "development").strip().lower()
        if env == "production":
            return cls.production(**overrides)
        return cls.non_production(environment=env, **overrides)

    @classmethod
    def from_settings(cls, app_settings: Optional[Settings] = None) -> "EnvironmentPolicy":
        cfg = app_settings or settings
        return cls.for_environment(
            cfg.APP_ENV,
            test_provider_hostname=cfg.RECAPTCHA_TEST_HOSTNAME,
            rate_limit_max_attempts=cfg.RATE_LIMIT_MAX_ATTEMPTS,
            rate_limit_window_ms=cfg.rate_limit_window_ms,
        )

    @staticmethod
    def effective_score(result: ChallengeResult) -> float:
        """The provider score, with a missing score counted as 0.0."""
        return result.trust_score if result.trust_score is not None else 0.0

    def accepts_trust_score(self, result: ChallengeResult) -> bool:
        """Whether a successful challenge's score clears this policy."""
        if self.effective_score(result) >= self.min_trust_score:
            return True
        return (
            not self.is_production
            and self.test_provider_hostname is not None
            and result.hostname == self.test_provider_hostname
        )


# =============================================================================
# Pipeline primitives
# =============================================================================


@dataclass
class EvaluationState:
    """Mutable state threaded through the pipeline for one evaluation."""

    identifier: str
    user_agent: str
    submission: Submission
    challenge_token: Optional[str]
    policy: EnvironmentPolicy

    is_bot: bool = False
    confidence: int = 0
    reason_code: Optional[ReasonCode] = None
    suspicion_score: int = 0
    flags: SignalFlags = field(default_factory=SignalFlags)
    checks: dict[str, Any] = field(default_factory=dict)

    def to_assessment(
        self,
        risk_level: Optional[RiskLevel] = None,
        recommendation: Optional[Recommendation] = None,
    ) -> RiskAssessment:
        """Freeze the current state; risk level and recommendation default to score cut points."""
        return RiskAssessment(
            is_bot=self.is_bot,
            confidence_percent=max(0, min(100, self.confidence)),
            reason_code=self.reason_code or ReasonCode.CHALLENGE_PASSED,
            suspicion_score=self.suspicion_score,
            risk_level=risk_level or RiskLevel.from_score(self.suspicion_score),
            recommendation=recommendation or Recommendation.from_score(self.suspicion_score),
            flags=self.flags.to_list(),
            identifier=self.identifier,
            checks=dict(self.checks),
        )

    def block(self, reason_code: ReasonCode, confidence: int, flag: str) -> "Terminal":
        """End the evaluation before signal analysis with a conclusive bot verdict."""
        self.is_bot = True
        self.confidence = confidence
        self.reason_code = reason_code
        self.flags.add(flag)
        return Terminal(self.to_assessment(RiskLevel.HIGH, Recommendation.BLOCK))


@dataclass(frozen=True)
class Continue:
    state: EvaluationState


@dataclass(frozen=True)
class Terminal:
    assessment: RiskAssessment


StageOutcome = Union[Continue, Terminal]


class PipelineStage(ABC):
    """One step of the decision pipeline."""

    name: str = "stage"

    @abstractmethod
    async def run(self, state: EvaluationState) -> StageOutcome:
        """Return ``Continue(state)`` to proceed or ``Terminal(assessment)`` to stop."""


# =============================================================================
# Stages
# =============================================================================


class RateLimitStage(PipelineStage):
    name = "rate_limit"

    def __init__(self, limiter: WindowedRateLimiter):
        self.limiter = limiter

    async def run(self, state: EvaluationState) -> StageOutcome:
        result = await self.limiter.check(
            state.identifier,
            state.policy.rate_limit_max_attempts,
            state.policy.rate_limit_window_ms,
        )
        state.checks["rate_limit"] = result.model_dump()

        if not result.allowed:
            return state.block(ReasonCode.RATE_LIMIT_EXCEEDED, 90, "rate_limit_exceeded")
        return Continue(state)


class ChallengeStage(PipelineStage):
    name = "challenge"

    def __init__(self, verifier: ChallengeVerifier):
        self.verifier = verifier

    async def run(self, state: EvaluationState) -> StageOutcome:
        if not state.challenge_token:
            return self._without_token(state)

        result = await self.verifier.verify(state.challenge_token, state.identifier)
        state.checks["challenge"] = result.model_dump()

        if not result.success:
            return state.block(ReasonCode.CHALLENGE_FAILED, 85, "challenge_failed")

        if not state.policy.accepts_trust_score(result):
            return state.block(ReasonCode.LOW_TRUST_SCORE, 80, "low_trust_score")

        if state.policy.effective_score(result) < state.policy.min_trust_score:
            logger.info(
                "challenge_test_key_allowed",
                identifier=state.identifier,
                score=result.trust_score,
                hostname=result.hostname,
            )

        state.reason_code = ReasonCode.CHALLENGE_PASSED
        return Continue(state)

    def _without_token(self, state: EvaluationState) -> StageOutcome:
        state.checks["challenge"] = None
        if state.policy.require_challenge:
            return state.block(ReasonCode.MISSING_CHALLENGE, 95, "missing_challenge")

        logger.warning(
            "challenge_token_missing_allowed",
            identifier=state.identifier,
            environment=state.policy.environment,
        )
        state.is_bot = False
        state.confidence = 0
        state.reason_code = ReasonCode.DEV_CHALLENGE_SKIPPED
        return Continue(state)


class SignalAnalysisStage(PipelineStage):
    name = "signal_analysis"

    def __init__(self, telemetry_analyzer: TelemetryAnalyzer, user_agent_classifier: UserAgentClassifier):
        self.telemetry_analyzer = telemetry_analyzer
        self.user_agent_classifier = user_agent_classifier

    async def run(self, state: EvaluationState) -> StageOutcome:
        telemetry = self.telemetry_analyzer.analyze(state.submission)
        user_agent = self.user_agent_classifier.classify(state.user_agent)

        state.checks["telemetry"] = {
            "suspicion_score": telemetry.suspicion_score,
            "flags": telemetry.flags,
            "risk_level": telemetry.risk_level.value,
            "recommendation": telemetry.recommendation.value,
        }
        state.checks["user_agent"] = user_agent.model_dump()

        state.flags.extend(telemetry.flags)
        state.flags.extend(user_agent.flags)
        state.suspicion_score = telemetry.suspicion_score + (
            USER_AGENT_SUSPICION_WEIGHT if user_agent.suspicious else 0
        )
        return Continue(state)


class ThresholdStage(PipelineStage):
    name = "thresholds"

    async def run(self, state: EvaluationState) -> StageOutcome:
        total = state.suspicion_score
        policy = state.policy

        if total >= policy.high_threshold:
            state.is_bot = True
            state.confidence = min(95, 50 + total)
            state.reason_code = ReasonCode.HIGH_SUSPICION
        elif total >= policy.moderate_threshold:
            # Allowed, but flagged for monitoring
            state.is_bot = False
            state.confidence = 30
            state.reason_code = ReasonCode.MODERATE_SUSPICION_MONITORED

        return Terminal(state.to_assessment())


# =============================================================================
# Engine
# =============================================================================


def _log_completed(assessment: RiskAssessment) -> None:
    logger.info(
        "abuse_evaluation_completed",
        identifier=assessment.identifier,
        is_bot=assessment.is_bot,
        confidence=assessment.confidence_percent,
        suspicion_score=assessment.suspicion_score,
        flags=assessment.flags,
        reason_code=assessment.reason_code.value,
    )


def _raw_client_address(request_context: Any) -> str:
    """Best-effort caller address from a context that failed to parse."""
    if isinstance(request_context, RequestContext):
        return request_context.client_address
    if isinstance(request_context, dict):
        for key in ("client_address", "clientAddress", "ip"):
            value = request_context.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return "unknown"


class RiskDecisionEngine:
    """
    Main abuse-risk orchestrator.

    Collaborators are injected so each can be replaced in tests or swapped
    for a shared backend (e.g. a rate-limit store reachable by every
    instance).
    """

    def __init__(
        self,
        limiter: Optional[WindowedRateLimiter] = None,
        verifier: Optional[ChallengeVerifier] = None,
        telemetry_analyzer: Optional[TelemetryAnalyzer] = None,
        user_agent_classifier: Optional[UserAgentClassifier] = None,
        policy: Optional[EnvironmentPolicy] = None,
        stages: Optional[Sequence[PipelineStage]] = None,
    ):
        self.limiter = limiter or WindowedRateLimiter()
        self.verifier = verifier or ChallengeVerifier()
        self.telemetry_analyzer = telemetry_analyzer or TelemetryAnalyzer()
        self.user_agent_classifier = user_agent_classifier or UserAgentClassifier()
        self.policy = policy or EnvironmentPolicy.from_settings()
        self.stages: list[PipelineStage] = (
            list(stages)
            if stages is not None
            else [
                RateLimitStage(self.limiter),
                ChallengeStage(self.verifier),
                SignalAnalysisStage(self.telemetry_analyzer, self.user_agent_classifier),
                ThresholdStage(),
            ]
        )

    async def evaluate(
        self,
        identifier: str,
        user_agent: Optional[str],
        submission: Union[Submission, dict, None],
        challenge_token: Optional[str] = None,
        env_policy: Optional[EnvironmentPolicy] = None,
    ) -> RiskAssessment:
        """
        Evaluate one request. Never raises.

        ``submission`` may be a ``Submission`` or the raw dict from the client.
        """
        state: Optional[EvaluationState] = None
        try:
            if not isinstance(submission, Submission):
                submission = Submission.model_validate(submission or {})

            state = EvaluationState(
                identifier=identifier,
                user_agent=user_agent or "",
                submission=submission,
                challenge_token=challenge_token,
                policy=env_policy or self.policy,
            )
            assessment = await self._run(state)
        except Exception as e:
            logger.exception(
                "abuse_evaluation_error",
                identifier=identifier,
                error=str(e),
                error_type=type(e).__name__,
            )
            assessment = RiskAssessment(
                is_bot=False,
                confidence_percent=0,
                reason_code=ReasonCode.EVALUATION_ERROR,
                suspicion_score=state.suspicion_score if state else 0,
                flags=state.flags.to_list() if state else [],
                identifier=identifier,
                error=f"{type(e).__name__}: {e}",
                checks=dict(state.checks) if state else {},
            )

        _log_completed(assessment)
        return assessment

    async def _run(self, state: EvaluationState) -> RiskAssessment:
        for stage in self.stages:
            outcome = await stage.run(state)
            if isinstance(outcome, Terminal):
                return outcome.assessment
            state = outcome.state
        return state.to_assessment()

    async def evaluate_request(
        self,
        request_context: Union[RequestContext, dict],
        submission_payload: Union[SubmissionPayload, dict],
        env_policy: Optional[EnvironmentPolicy] = None,
    ) -> RiskAssessment:
        """Evaluate from request-level inputs (caller address, user agent, payload)."""
        try:
            if not isinstance(request_context, RequestContext):
                request_context = RequestContext.model_validate(request_context or {})
            if not isinstance(submission_payload, SubmissionPayload):
                submission_payload = SubmissionPayload.model_validate(submission_payload or {})
        except Exception as e:
            identifier = _raw_client_address(request_context)
            logger.exception("abuse_request_parse_error", identifier=identifier, error=str(e))
            assessment = RiskAssessment(
                reason_code=ReasonCode.EVALUATION_ERROR,
                identifier=identifier,
                error=f"{type(e).__name__}: {e}",
            )
            _log_completed(assessment)
            return assessment

        return await self.evaluate(
            request_context.client_address,
            request_context.user_agent,
            submission_payload.submission,
            submission_payload.challenge_token,
            env_policy,
        )


@lru_cache
def get_risk_engine() -> RiskDecisionEngine:
    """Get the process-wide engine (in-memory rate-limit store)."""
    return RiskDecisionEngine()


async def evaluate_abuse_risk(
    request_context: Union[RequestContext, dict],
    submission_payload: Union[SubmissionPayload, dict],
) -> RiskAssessment:
    """Primary entry point for the registration flow. Never raises."""
    return await get_risk_engine().evaluate_request(request_context, submission_payload)
