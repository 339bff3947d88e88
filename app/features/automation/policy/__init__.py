"""
Policy evaluation for trigger firings.
"""

from .evaluator import (
    POLICY_RULES,
    PolicyDecision,
    PolicyRule,
    alert_level,
    evaluate,
    resolve_mode,
)

__all__ = [
    "POLICY_RULES",
    "PolicyDecision",
    "PolicyRule",
    "alert_level",
    "evaluate",
    "resolve_mode",
]
