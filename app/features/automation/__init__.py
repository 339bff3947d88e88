"""
Adaptive alarm and automation feature package.

This vertical slice keeps every layer of the automation engine co-located
(domain models, policy, actuators, pipeline, scheduler, batch dispatch,
repository, services, jobs and API router) so contributors can navigate the
feature without hunting through global folders.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as automation_router  # noqa: F401
from .services.automation_service import AutomationService, get_automation_service  # noqa: F401
from .jobs.scheduler_job import start_trigger_scheduler  # noqa: F401
from .domain.models import Trigger, ContextSnapshot, ExecutionRecord, BatchJob  # noqa: F401
