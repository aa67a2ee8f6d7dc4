"""
Run the abuse check against sample registrations and print the results.

Uses the current environment's settings (APP_ENV, RECAPTCHA_SECRET_KEY, ...).
Pass a challenge token as the first argument to exercise the live
verification endpoint.
"""

import asyncio
import sys

from abuse_guard.core.config import settings
from abuse_guard.services.risk_engine import RiskDecisionEngine

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

SAMPLE_BODY = {
    "name": "Test User",
    "email": "test@example.com",
    "phone": "+1234567890",
    "botProtection": {
        "honeypotValue": "",
        "analytics": {
            "formDuration": 45000,
            "keystrokes": 150,
            "mouseMovements": 25,
            "focusEvents": 8,
        },
    },
}


def print_assessment(title, assessment):
    print(f"\n{title}")
    print(f"  is_bot:          {assessment.is_bot}")
    print(f"  confidence:      {assessment.confidence_percent}")
    print(f"  reason:          {assessment.reason_code.value}")
    print(f"  suspicion score: {assessment.suspicion_score}")
    print(f"  risk level:      {assessment.risk_level.value}")
    print(f"  recommendation:  {assessment.recommendation.value}")
    print(f"  flags:           {', '.join(assessment.flags) or '-'}")
    if assessment.error:
        print(f"  error:           {assessment.error}")


async def main():
    print(f"APP_ENV: {settings.APP_ENV}")
    print(f"RECAPTCHA_SECRET_KEY: {'SET' if settings.RECAPTCHA_SECRET_KEY else 'NOT SET'}")

    engine = RiskDecisionEngine()
    context = {"client_address": "127.0.0.1", "user_agent": BROWSER_UA}

    token = sys.argv[1] if len(sys.argv) > 1 else None
    if token:
        body = {**SAMPLE_BODY, "captchaToken": token}
        print_assessment("With token:", await engine.evaluate_request(context, body))

    print_assessment("Without token:", await engine.evaluate_request(context, SAMPLE_BODY))


if __name__ == "__main__":
    asyncio.run(main())
