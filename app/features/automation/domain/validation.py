"""
Trigger and batch-job validation.

Everything here runs before the store is touched: a malformed definition is
a configuration error and never reaches the scheduler.
"""

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from .actions import Action, parse_action
from .enums import (
    AutonomyLevel,
    ExecutionMode,
    RepeatPattern,
    TaskCategory,
    TriggerKind,
)
from .errors import BatchJobConfigurationError, TriggerConfigurationError
from .models import BatchRecipient, Conditions, Trigger

SCALE_MIN = 0
SCALE_MAX = 10

_CONDITION_KEYS = {
    "minMood": "min_mood",
    "maxMood": "max_mood",
    "minEnergy": "min_energy",
    "maxEnergy": "max_energy",
    "burnoutThreshold": "burnout_threshold",
    "allowedDays": "allowed_days",
    "quietHoursRespect": "quiet_hours_respect",
    "requiresApproval": "requires_approval",
}

# Fields a caller may change through update_trigger
UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "kind",
        "category",
        "scheduled_at",
        "repeat_pattern",
        "is_active",
        "execution_mode",
        "autonomy_level",
        "priority",
        "urgency",
        "actions",
        "conditions",
        "metadata",
    }
)


def _enum(enum_cls, value, field_name: str, *, optional: bool = False):
    if value is None or value == "":
        if optional:
            return None
        raise TriggerConfigurationError(f"'{field_name}' is required", field=field_name)
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        raise TriggerConfigurationError(
            f"Invalid {field_name}: {value!r}", field=field_name
        ) from e


def _number(data: dict, key: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TriggerConfigurationError(f"Condition '{key}' must be a number", field=key)
    return float(value)


def _flag(data: dict, key: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise TriggerConfigurationError(f"Condition '{key}' must be a boolean", field=key)
    return value


def parse_conditions(data: dict[str, Any] | None) -> Conditions:
    """Parse and validate the camelCase conditions object."""
    if data is None:
        return Conditions()
    if not isinstance(data, dict):
        raise TriggerConfigurationError("Conditions must be an object", field="conditions")

    unknown = set(data) - set(_CONDITION_KEYS)
    if unknown:
        raise TriggerConfigurationError(
            f"Unknown condition keys: {', '.join(sorted(unknown))}", field="conditions"
        )

    allowed_days = data.get("allowedDays")
    if allowed_days is not None:
        if not isinstance(allowed_days, (list, tuple, set, frozenset)) or any(
            isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6
            for day in allowed_days
        ):
            raise TriggerConfigurationError(
                "allowedDays must be weekday indices 0-6", field="allowedDays"
            )
        allowed_days = frozenset(allowed_days)

    conditions = Conditions(
        min_mood=_number(data, "minMood"),
        max_mood=_number(data, "maxMood"),
        min_energy=_number(data, "minEnergy"),
        max_energy=_number(data, "maxEnergy"),
        burnout_threshold=_number(data, "burnoutThreshold"),
        allowed_days=allowed_days,
        quiet_hours_respect=_flag(data, "quietHoursRespect"),
        requires_approval=_flag(data, "requiresApproval"),
    )

    for low, high, name in (
        (conditions.min_mood, conditions.max_mood, "mood"),
        (conditions.min_energy, conditions.max_energy, "energy"),
    ):
        if low is not None and high is not None and low > high:
            raise TriggerConfigurationError(
                f"min {name} bound exceeds max {name} bound", field="conditions"
            )

    return conditions


def parse_actions(raw_actions: Any) -> list[Action]:
    """Parse the ordered action list; an empty list is a configuration error."""
    if not isinstance(raw_actions, list) or not raw_actions:
        raise TriggerConfigurationError("A trigger needs at least one action", field="actions")
    return [parse_action(item) for item in raw_actions]


def _scale(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TriggerConfigurationError(f"'{field_name}' must be an integer", field=field_name)
    if not SCALE_MIN <= value <= SCALE_MAX:
        raise TriggerConfigurationError(
            f"'{field_name}' must be between {SCALE_MIN} and {SCALE_MAX}", field=field_name
        )
    return value


def _timestamp(value: Any, field_name: str) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise TriggerConfigurationError(
                f"'{field_name}' is not an ISO timestamp", field=field_name
            ) from e
    if not isinstance(value, datetime):
        raise TriggerConfigurationError(f"'{field_name}' is required", field=field_name)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def build_trigger(trigger_id: str, user_id: str, data: dict[str, Any]) -> Trigger:
    """
    Validate a trigger definition and build the domain object.

    Raises:
        TriggerConfigurationError: on any malformed field
    """
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise TriggerConfigurationError("'title' is required", field="title")

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise TriggerConfigurationError("'metadata' must be an object", field="metadata")

    scheduled_at = _timestamp(data.get("scheduled_at"), "scheduled_at")

    return Trigger(
        id=trigger_id,
        user_id=user_id,
        title=title.strip(),
        description=data.get("description"),
        kind=_enum(TriggerKind, data.get("kind", TriggerKind.TIME_BASED), "kind"),
        category=_enum(TaskCategory, data.get("category"), "category", optional=True),
        scheduled_at=scheduled_at,
        repeat_pattern=_enum(
            RepeatPattern, data.get("repeat_pattern"), "repeat_pattern", optional=True
        ),
        is_active=bool(data.get("is_active", True)),
        declared_execution_mode=_enum(
            ExecutionMode,
            data.get("execution_mode", ExecutionMode.RING_ASK_EXECUTE),
            "execution_mode",
        ),
        autonomy_level=_enum(
            AutonomyLevel, data.get("autonomy_level", AutonomyLevel.A), "autonomy_level"
        ),
        priority=_scale(data.get("priority", 5), "priority"),
        urgency=_scale(data.get("urgency", 5), "urgency"),
        actions=parse_actions(data.get("actions")),
        conditions=parse_conditions(data.get("conditions")),
        metadata=dict(metadata),
        next_trigger_at=scheduled_at,
    )


def apply_trigger_changes(trigger: Trigger, changes: dict[str, Any]) -> Trigger:
    """
    Return a validated copy of `trigger` with `changes` applied.

    Rescheduling resets next_trigger_at to the new scheduled_at.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise TriggerConfigurationError(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}", field="update"
        )

    current = {
        "title": trigger.title,
        "description": trigger.description,
        "kind": trigger.kind,
        "category": trigger.category,
        "scheduled_at": trigger.scheduled_at,
        "repeat_pattern": trigger.repeat_pattern,
        "is_active": trigger.is_active,
        "execution_mode": trigger.declared_execution_mode,
        "autonomy_level": trigger.autonomy_level,
        "priority": trigger.priority,
        "urgency": trigger.urgency,
        "actions": trigger.actions_as_dicts(),
        "conditions": trigger.conditions.to_dict(),
        "metadata": trigger.metadata,
    }
    current.update(changes)

    rebuilt = build_trigger(trigger.id, trigger.user_id, current)
    next_trigger_at = (
        rebuilt.scheduled_at if "scheduled_at" in changes else trigger.next_trigger_at
    )
    return replace(
        rebuilt,
        last_triggered_at=trigger.last_triggered_at,
        next_trigger_at=next_trigger_at,
        created_at=trigger.created_at,
        updated_at=trigger.updated_at,
    )


def parse_recipients(raw: Any) -> list[BatchRecipient]:
    """Parse the ordered recipient list of a batch job."""
    if not isinstance(raw, list) or not raw:
        raise BatchJobConfigurationError("A batch job needs at least one recipient", "recipients")

    recipients = []
    for item in raw:
        if isinstance(item, BatchRecipient):
            recipients.append(item)
            continue
        if not isinstance(item, dict):
            raise BatchJobConfigurationError("Recipient must be an object", "recipients")
        name = item.get("name")
        identifier = item.get("identifier")
        if not isinstance(name, str) or not isinstance(identifier, str) or not identifier:
            raise BatchJobConfigurationError(
                "Recipient needs a 'name' and an 'identifier'", "recipients"
            )
        recipients.append(BatchRecipient(name=name, identifier=identifier))
    return recipients
