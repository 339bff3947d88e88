"""
Domain subpackage for the automation feature.
"""

from .actions import (
    ACTION_TYPES,
    Action,
    CalendarEventAction,
    CreateNoteAction,
    OpenAppAction,
    PlayMusicAction,
    SendEmailAction,
    SendMessageAction,
    StartWorkflowAction,
    TriggerReminderAction,
    action_to_dict,
    parse_action,
)
from .enums import (
    ActionKind,
    AlertLevel,
    AutonomyLevel,
    BatchJobStatus,
    EnergyLevel,
    ExecutionMode,
    ExecutionStatus,
    RepeatPattern,
    TaskCategory,
    TriggerKind,
    WorkflowType,
)
from .models import (
    BatchJob,
    BatchProgress,
    BatchRecipient,
    Conditions,
    ContextSnapshot,
    ExecutionRecord,
    Trigger,
)

__all__ = [
    "ACTION_TYPES",
    "Action",
    "ActionKind",
    "AlertLevel",
    "AutonomyLevel",
    "BatchJob",
    "BatchJobStatus",
    "BatchProgress",
    "BatchRecipient",
    "CalendarEventAction",
    "Conditions",
    "ContextSnapshot",
    "CreateNoteAction",
    "EnergyLevel",
    "ExecutionMode",
    "ExecutionRecord",
    "ExecutionStatus",
    "OpenAppAction",
    "PlayMusicAction",
    "RepeatPattern",
    "SendEmailAction",
    "SendMessageAction",
    "StartWorkflowAction",
    "TaskCategory",
    "Trigger",
    "TriggerKind",
    "TriggerReminderAction",
    "WorkflowType",
    "action_to_dict",
    "parse_action",
]
