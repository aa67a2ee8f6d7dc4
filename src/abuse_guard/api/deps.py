"""
Shared dependencies for host applications.

The registration endpoint itself lives in the host application; these
helpers turn its FastAPI request into the inputs the engine expects.
"""

from typing import Annotated

from fastapi import Depends, Request

from abuse_guard.schemas.submission import RequestContext
from abuse_guard.services.risk_engine import RiskDecisionEngine, get_risk_engine


def get_client_ip(request: Request) -> str:
    """Extract real client IP from request, handling proxies."""
    # Check common proxy headers
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take first IP (original client)
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    # Fall back to direct connection
    if request.client:
        return request.client.host

    return "unknown"


def build_request_context(request: Request) -> RequestContext:
    """Caller address and raw user agent for an inbound request."""
    return RequestContext(
        client_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent", ""),
    )


def get_abuse_engine() -> RiskDecisionEngine:
    return get_risk_engine()


RequestContextDep = Annotated[RequestContext, Depends(build_request_context)]
AbuseEngineDep = Annotated[RiskDecisionEngine, Depends(get_abuse_engine)]
