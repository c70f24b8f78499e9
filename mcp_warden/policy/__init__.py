"""Profile policy: pattern matching and the allow/deny engine."""

from mcp_warden.policy.engine import DecisionReason, PolicyEngine
from mcp_warden.policy.patterns import match_pattern

__all__ = [
    "DecisionReason",
    "PolicyEngine",
    "match_pattern",
]
