"""Rule-based abuse detection for account registration."""

from abuse_guard.services.risk_engine import EnvironmentPolicy, RiskDecisionEngine, evaluate_abuse_risk

__version__ = "1.0.0"

__all__ = ["EnvironmentPolicy", "RiskDecisionEngine", "evaluate_abuse_risk", "__version__"]
