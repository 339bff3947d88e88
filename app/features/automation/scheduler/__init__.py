"""
Trigger scheduling and recurrence.
"""

from .recurrence import add_months, next_occurrence
from .trigger_scheduler import FiringResult, TriggerScheduler

__all__ = ["FiringResult", "TriggerScheduler", "add_months", "next_occurrence"]
