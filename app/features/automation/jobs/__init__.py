"""
Job runners for the automation feature.
"""

from .scheduler_job import (
    TriggerSchedulerJob,
    get_trigger_scheduler_status,
    start_trigger_scheduler,
    trigger_scheduler_job,
)

__all__ = [
    "TriggerSchedulerJob",
    "get_trigger_scheduler_status",
    "start_trigger_scheduler",
    "trigger_scheduler_job",
]
