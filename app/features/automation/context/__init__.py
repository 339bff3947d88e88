"""
User-context signals consumed by the policy evaluator.
"""

from .store import ContextStore

__all__ = ["ContextStore"]
