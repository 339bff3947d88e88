"""
Enumerations shared by the automation domain.

Values match the strings stored in the Supabase enums and JSONB columns.
"""

from enum import Enum


class TriggerKind(str, Enum):
    TIME_BASED = "time_based"
    PURPOSE = "purpose"
    BATCH_TASK = "batch_task"
    FOLLOW_UP = "follow_up"
    CALENDAR_AUTOPILOT = "calendar_autopilot"
    REMINDER_CHAIN = "reminder_chain"


class TaskCategory(str, Enum):
    """Informational tag; never consulted by scheduling."""

    FITNESS = "fitness"
    STUDY = "study"
    FINANCE = "finance"
    SOCIAL = "social"
    REFLECTION = "reflection"
    ROUTINE = "routine"
    NETWORKING = "networking"
    OUTREACH = "outreach"
    WELLNESS = "wellness"


class ExecutionMode(str, Enum):
    RING_ASK_EXECUTE = "ring_ask_execute"
    RING_EXECUTE = "ring_execute"
    SILENT_EXECUTE = "silent_execute"
    SILENT_EXECUTE_REPORT = "silent_execute_report"
    SUPPRESS = "suppress"
    DELAY = "delay"

    @property
    def runs_pipeline(self) -> bool:
        return self not in (ExecutionMode.SUPPRESS, ExecutionMode.DELAY)

    @property
    def skips_confirmation(self) -> bool:
        """Modes that perform actions without asking the user first."""
        return self in (
            ExecutionMode.RING_EXECUTE,
            ExecutionMode.SILENT_EXECUTE,
            ExecutionMode.SILENT_EXECUTE_REPORT,
        )


class AutonomyLevel(str, Enum):
    A = "A"  # execute only on explicit confirmation
    B = "B"  # execute and notify
    C = "C"  # execute silently and report


class ActionKind(str, Enum):
    SEND_MESSAGE = "send_message"
    SEND_EMAIL = "send_email"
    CALENDAR_EVENT = "calendar_event"
    OPEN_APP = "open_app"
    PLAY_MUSIC = "play_music"
    START_WORKFLOW = "start_workflow"
    CREATE_NOTE = "create_note"
    TRIGGER_REMINDER = "trigger_reminder"


class WorkflowType(str, Enum):
    STUDY = "study"
    GYM = "gym"
    REFLECTION = "reflection"
    FINANCE = "finance"
    ROUTINE = "routine"


class EnergyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RepeatPattern(str, Enum):
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ExecutionStatus(str, Enum):
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.EXECUTING


class BatchJobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AlertLevel(str, Enum):
    """How loudly the notification collaborator should ring."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
