"""
Execution pipeline for trigger firings.
"""

from .execution import ExecutionPipeline

__all__ = ["ExecutionPipeline"]
