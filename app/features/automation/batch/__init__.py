"""
Rate-limited batch messaging.
"""

from .dispatcher import BatchDispatcher

__all__ = ["BatchDispatcher"]
