"""
User-agent heuristics.
"""

from typing import Optional, Sequence

from abuse_guard.schemas.assessment import UserAgentAnalysis
from abuse_guard.services.signal_rules import (
    BOT_PATTERN_FLAG,
    PatternMatcher,
    SignalRule,
    UserAgentRuleConfig,
    build_user_agent_rules,
    evaluate_rules,
)

# Scores above this mark the user agent as suspicious
SUSPICIOUS_SCORE = 20
# Only this much of the user agent is kept for diagnostics
LOGGED_USER_AGENT_CHARS = 200


class UserAgentClassifier:
    """Flag user agents that look like automation tools or scripting clients."""

    def __init__(
        self,
        config: Optional[UserAgentRuleConfig] = None,
        rules: Optional[Sequence[SignalRule[str]]] = None,
    ):
        self.config = config or UserAgentRuleConfig()
        self.rules = list(rules) if rules is not None else build_user_agent_rules(self.config)

    def matched_pattern(self, user_agent: str) -> Optional[str]:
        """Return the bot pattern the scoring rule matched in ``user_agent``, if any."""
        for rule in self.rules:
            if rule.flag == BOT_PATTERN_FLAG and isinstance(rule.predicate, PatternMatcher):
                return rule.predicate.first_match(user_agent)
        return None

    def classify(self, user_agent: Optional[str]) -> UserAgentAnalysis:
        user_agent = user_agent or ""
        score, flags = evaluate_rules(self.rules, user_agent)
        return UserAgentAnalysis(
            suspicious=score > SUSPICIOUS_SCORE,
            score=score,
            flags=flags,
            matched_pattern=self.matched_pattern(user_agent),
            user_agent=user_agent[:LOGGED_USER_AGENT_CHARS],
        )
