"""
Pytest fixtures for abuse-guard tests.
"""

import os
from collections.abc import AsyncGenerator
from typing import Any, Callable

import httpx
import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("LOG_JSON", "false")

from abuse_guard.schemas.assessment import ChallengeResult  # noqa: E402
from abuse_guard.schemas.submission import Submission  # noqa: E402
from abuse_guard.services.challenge_verifier import ChallengeVerifier  # noqa: E402
from abuse_guard.services.rate_limit_store import InMemoryRateLimitStore  # noqa: E402
from abuse_guard.services.rate_limiter import WindowedRateLimiter  # noqa: E402

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class StubVerifier:
    """Challenge verifier returning a canned result and recording calls."""

    def __init__(self, result: ChallengeResult):
        self.result = result
        self.calls: list[tuple[Any, str]] = []

    async def verify(self, token: Any, caller_address: str) -> ChallengeResult:
        self.calls.append((token, caller_address))
        return self.result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def limiter(store: InMemoryRateLimitStore, clock: FakeClock) -> WindowedRateLimiter:
    return WindowedRateLimiter(store=store, clock=clock)


@pytest.fixture
def browser_user_agent() -> str:
    return BROWSER_USER_AGENT


@pytest.fixture
def clean_submission() -> Submission:
    """A submission a careful human would produce."""
    return Submission(
        display_name="Priya Raman",
        email_address="priya.raman@example.com",
        phone_number="+1 415 555 0134",
        honeypot_value="",
        telemetry={
            "form_duration_ms": 60000,
            "keystroke_count": 150,
            "mouse_movement_count": 40,
            "focus_event_count": 8,
            "keystroke_intervals_ms": [120, 180, 95, 210, 140],
        },
    )


@pytest.fixture
def passing_challenge() -> ChallengeResult:
    return ChallengeResult(
        success=True,
        trust_score=0.9,
        action="register",
        hostname="app.example.com",
        challenge_ts="2026-10-19T12:00:00Z",
    )


@pytest.fixture
def make_verifier() -> Callable[..., ChallengeVerifier]:
    """Build a ChallengeVerifier whose HTTP calls go to ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any) -> ChallengeVerifier:
        kwargs.setdefault("secret_key", "test-secret")
        kwargs.setdefault("verify_url", "https://verify.test/siteverify")
        kwargs.setdefault("timeout_seconds", 1.0)
        return ChallengeVerifier(transport=httpx.MockTransport(handler), **kwargs)

    return _make


@pytest.fixture
async def client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async test client for the service application (lifespan not run)."""
    from abuse_guard.main import app

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def make_stub_verifier() -> Callable[[ChallengeResult], StubVerifier]:
    return StubVerifier
