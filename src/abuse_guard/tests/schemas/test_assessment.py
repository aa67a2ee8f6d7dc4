"""
Tests for assessment result schemas.
"""

import pytest
from pydantic import ValidationError

from abuse_guard.schemas.assessment import (
    ChallengeResult,
    ReasonCode,
    Recommendation,
    RiskAssessment,
    RiskLevel,
)


@pytest.mark.parametrize(
    "score, level, recommendation",
    [
        (0, RiskLevel.MINIMAL, Recommendation.ALLOW),
        (19, RiskLevel.MINIMAL, Recommendation.ALLOW),
        (20, RiskLevel.LOW, Recommendation.ADDITIONAL_VERIFICATION),
        (39, RiskLevel.LOW, Recommendation.ADDITIONAL_VERIFICATION),
        (40, RiskLevel.MEDIUM, Recommendation.MANUAL_REVIEW),
        (69, RiskLevel.MEDIUM, Recommendation.MANUAL_REVIEW),
        (70, RiskLevel.HIGH, Recommendation.BLOCK),
        (280, RiskLevel.HIGH, Recommendation.BLOCK),
    ],
)
def test_score_cut_points(score, level, recommendation):
    assert RiskLevel.from_score(score) == level
    assert Recommendation.from_score(score) == recommendation


class TestRiskAssessment:
    def test_should_block_requires_bot_and_confidence(self):
        blocked = RiskAssessment(is_bot=True, confidence_percent=85, reason_code=ReasonCode.CHALLENGE_FAILED)
        monitored = RiskAssessment(
            is_bot=False, confidence_percent=30, reason_code=ReasonCode.MODERATE_SUSPICION_MONITORED
        )

        assert blocked.should_block() is True
        assert blocked.should_block(threshold=90) is False
        assert monitored.should_block(threshold=0) is False

    def test_confidence_is_bounded(self):
        with pytest.raises(ValidationError):
            RiskAssessment(confidence_percent=101, reason_code=ReasonCode.HIGH_SUSPICION)

    def test_enums_serialize_as_strings(self):
        data = RiskAssessment(reason_code=ReasonCode.CHALLENGE_PASSED).model_dump(mode="json")

        assert data["reason_code"] == "CHALLENGE_PASSED"
        assert data["risk_level"] == "MINIMAL"
        assert data["recommendation"] == "ALLOW"
        assert data["evaluated_at"].endswith("Z")


class TestChallengeResult:
    def test_failure_shape(self):
        result = ChallengeResult.failure("request-timeout")

        assert result.success is False
        assert result.trust_score == 0.0
        assert result.error_codes == ["request-timeout"]

    def test_trust_score_range(self):
        with pytest.raises(ValidationError):
            ChallengeResult(success=True, trust_score=1.5)
