"""
Challenge-response (CAPTCHA) verification.

Talks to a reCAPTCHA-compatible ``siteverify`` endpoint. Every failure mode
(missing token, network error, timeout, bad status, garbage body) comes
back as a ``ChallengeResult`` with ``success=False`` instead of raising, so
callers only ever branch on the result.
"""

from typing import Any, Optional

import httpx
import structlog

from abuse_guard.core.config import settings
from abuse_guard.schemas.assessment import ChallengeResult

logger = structlog.get_logger(__name__)

# Provider tokens are ~2KB; anything far beyond that is not a real token
MAX_TOKEN_LENGTH = 8192


def _parse_score(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return None
    if score != score:  # NaN
        return None
    return min(1.0, max(0.0, score))


def _parse_error_codes(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(code) for code in raw]
    if isinstance(raw, str) and raw:
        return [raw]
    return []


def _optional_str(raw: Any) -> Optional[str]:
    return raw if isinstance(raw, str) else None


class ChallengeVerifier:
    """
    Verify client challenge tokens against the provider.

    A fresh ``httpx.AsyncClient`` is opened per call. Pass ``transport`` to
    route calls somewhere other than the network (tests use
    ``httpx.MockTransport``).
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        verify_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.RECAPTCHA_SECRET_KEY
        self.verify_url = verify_url or settings.RECAPTCHA_VERIFY_URL
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.RECAPTCHA_TIMEOUT_SECONDS
        )
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    @staticmethod
    def is_well_formed(token: Any) -> bool:
        """Cheap local sanity check run before spending a network round trip."""
        if not isinstance(token, str):
            return False
        if not token or len(token) > MAX_TOKEN_LENGTH:
            return False
        return not any(ch.isspace() or not ch.isprintable() for ch in token)

    async def verify(self, token: Any, caller_address: str) -> ChallengeResult:
        """Verify ``token`` for the client at ``caller_address``."""
        if token is None or token == "":
            return ChallengeResult.failure("missing-input-response")

        if not self.is_well_formed(token):
            logger.info("challenge_token_malformed", ip=caller_address)
            return ChallengeResult.failure("malformed-input-response")

        if not self.is_configured:
            logger.warning("challenge_secret_not_configured", ip=caller_address)
            return ChallengeResult.failure("missing-input-secret")

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.verify_url,
                    data={
                        "secret": self.secret_key,
                        "response": token,
                        "remoteip": caller_address,
                    },
                )
        except httpx.TimeoutException:
            logger.warning(
                "challenge_verification_timeout",
                ip=caller_address,
                timeout_seconds=self.timeout_seconds,
            )
            return ChallengeResult.failure("request-timeout")
        # InvalidURL does not subclass HTTPError
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(
                "challenge_verification_error",
                ip=caller_address,
                token=token[:10] + "...",
                error=str(e),
            )
            return ChallengeResult.failure("transport-error")

        if not response.is_success:
            logger.warning(
                "challenge_verification_bad_status",
                ip=caller_address,
                status_code=response.status_code,
            )
            return ChallengeResult.failure(f"bad-status-{response.status_code}")

        try:
            data = response.json()
        except ValueError:
            logger.warning("challenge_verification_invalid_json", ip=caller_address)
            return ChallengeResult.failure("invalid-json")

        if not isinstance(data, dict):
            return ChallengeResult.failure("invalid-json")

        result = ChallengeResult(
            success=data.get("success") is True,
            trust_score=_parse_score(data.get("score")),
            action=_optional_str(data.get("action")),
            hostname=_optional_str(data.get("hostname")),
            challenge_ts=_optional_str(data.get("challenge_ts")),
            error_codes=_parse_error_codes(data.get("error-codes")),
        )

        logger.info(
            "challenge_verification_result",
            success=result.success,
            score=result.trust_score,
            action=result.action,
            hostname=result.hostname,
            ip=caller_address,
        )
        return result
