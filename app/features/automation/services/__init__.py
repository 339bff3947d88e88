"""
Service layer for the automation feature.
"""

from .automation_service import (
    SNOOZE_OPTIONS_MINUTES,
    AutomationService,
    get_automation_service,
    shutdown_automation_service,
)

__all__ = [
    "AutomationService",
    "SNOOZE_OPTIONS_MINUTES",
    "get_automation_service",
    "shutdown_automation_service",
]
