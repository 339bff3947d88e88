"""
Domain models for the automation engine.

These dataclasses describe triggers, the user-context snapshot, execution
records and batch jobs. Every entity is scoped to exactly one user id.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any

from .actions import Action, action_to_dict
from .enums import (
    AutonomyLevel,
    BatchJobStatus,
    EnergyLevel,
    ExecutionMode,
    ExecutionStatus,
    RepeatPattern,
    TaskCategory,
    TriggerKind,
)
from .errors import ContextUpdateError


@dataclass(slots=True)
class Conditions:
    """Context conditions declared on a trigger (stored as camelCase JSONB)."""

    min_mood: float | None = None
    max_mood: float | None = None
    min_energy: float | None = None
    max_energy: float | None = None
    burnout_threshold: float | None = None
    allowed_days: frozenset[int] | None = None  # 0 = Sunday ... 6 = Saturday
    quiet_hours_respect: bool = False
    requires_approval: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "quietHoursRespect": self.quiet_hours_respect,
            "requiresApproval": self.requires_approval,
        }
        optional = {
            "minMood": self.min_mood,
            "maxMood": self.max_mood,
            "minEnergy": self.min_energy,
            "maxEnergy": self.max_energy,
            "burnoutThreshold": self.burnout_threshold,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.allowed_days is not None:
            data["allowedDays"] = sorted(self.allowed_days)
        return data


@dataclass(slots=True)
class Trigger:
    """A user-configured alarm: a schedule, a condition set, and ordered actions."""

    id: str
    user_id: str
    title: str
    kind: TriggerKind
    scheduled_at: datetime
    actions: list[Action]
    conditions: Conditions = field(default_factory=Conditions)
    description: str | None = None
    category: TaskCategory | None = None
    repeat_pattern: RepeatPattern | None = None
    is_active: bool = True
    declared_execution_mode: ExecutionMode = ExecutionMode.RING_ASK_EXECUTE
    autonomy_level: AutonomyLevel = AutonomyLevel.A
    priority: int = 5
    urgency: int = 5
    metadata: dict[str, Any] = field(default_factory=dict)
    last_triggered_at: datetime | None = None
    next_trigger_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def fire_time(self) -> datetime:
        """When the next firing is due."""
        return self.next_trigger_at or self.scheduled_at

    @property
    def delay_count(self) -> int:
        return int(self.metadata.get("delay_count", 0))

    def actions_as_dicts(self) -> list[dict[str, Any]]:
        return [action_to_dict(action) for action in self.actions]


_BOOL_CONTEXT_FIELDS = (
    "is_working",
    "is_studying",
    "is_exercising",
    "active_focus_session",
    "quiet_hours_active",
)
_NUMERIC_CONTEXT_FIELDS = ("motivation_level", "burnout_score", "stress_level")


@dataclass(slots=True)
class ContextSnapshot:
    """Latest known behavioural signals for one user (last-write-wins per field)."""

    current_mood: str | None = None
    current_energy: EnergyLevel | None = None
    motivation_level: float = 0.0
    burnout_score: float = 0.0
    stress_level: float = 0.0
    is_working: bool = False
    is_studying: bool = False
    is_exercising: bool = False
    active_focus_session: bool = False
    quiet_hours_active: bool = False
    updated_at: datetime | None = None

    @classmethod
    def signal_fields(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name != "updated_at")

    def merged(self, partial: dict[str, Any]) -> "ContextSnapshot":
        """
        Return a copy with the supplied fields overwritten.

        Only type-correctness is checked; freshness and plausibility of the
        signals are the caller's responsibility.
        """
        allowed = set(self.signal_fields())
        unknown = set(partial) - allowed
        if unknown:
            raise ContextUpdateError(f"Unknown context fields: {', '.join(sorted(unknown))}")

        changes: dict[str, Any] = {}
        for key, value in partial.items():
            if key in _BOOL_CONTEXT_FIELDS:
                if not isinstance(value, bool):
                    raise ContextUpdateError(f"Context field '{key}' must be a boolean")
                changes[key] = value
            elif key in _NUMERIC_CONTEXT_FIELDS:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ContextUpdateError(f"Context field '{key}' must be a number")
                changes[key] = float(value)
            elif key == "current_energy":
                try:
                    changes[key] = EnergyLevel(value) if value is not None else None
                except ValueError as e:
                    raise ContextUpdateError(f"Unknown energy level: {value}") from e
            else:
                if value is not None and not isinstance(value, str):
                    raise ContextUpdateError("Context field 'current_mood' must be a string")
                changes[key] = value

        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = {name: getattr(self, name) for name in self.signal_fields()}
        if self.current_energy is not None:
            data["current_energy"] = self.current_energy.value
        return data


@dataclass(slots=True)
class ExecutionRecord:
    """Audit row for one firing that reached the execution pipeline."""

    trigger_id: str
    user_id: str
    execution_mode: ExecutionMode
    status: ExecutionStatus
    context_snapshot: dict[str, Any]
    started_at: datetime
    actions_performed: list[Action] = field(default_factory=list)
    duration_ms: int | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    id: str | None = None
    persisted: bool = True


@dataclass(frozen=True, slots=True)
class BatchRecipient:
    name: str
    identifier: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "identifier": self.identifier}


@dataclass(slots=True)
class BatchProgress:
    sent: int = 0
    failed: int = 0
    total: int = 0

    @property
    def attempted(self) -> int:
        return self.sent + self.failed

    @property
    def is_complete(self) -> bool:
        return self.attempted == self.total

    def to_dict(self) -> dict[str, int]:
        return {"sent": self.sent, "failed": self.failed, "total": self.total}


@dataclass(slots=True)
class BatchJob:
    """A rate-limited fan-out of one message template to many recipients."""

    id: str
    user_id: str
    title: str
    recipients: list[BatchRecipient]
    message_template: str
    platform: str
    status: BatchJobStatus = BatchJobStatus.PENDING
    progress: BatchProgress = field(default_factory=BatchProgress)
    task_type: str = "message_batch"
    trigger_id: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    def render_message(self, recipient: BatchRecipient) -> str:
        return self.message_template.replace("{name}", recipient.name)
