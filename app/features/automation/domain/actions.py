"""
Action variants, one dataclass per ActionKind.

Each variant carries only the payload fields its capability needs plus the
opaque metadata bag that is passed through to the actuator. The JSON shape
(`type`, `target`, `content`, `platform`, `appId`, `workflowType`,
`metadata`) is the one stored in the `alarms.actions` column.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from .enums import ActionKind, WorkflowType
from .errors import TriggerConfigurationError, UnknownActionKindError

DEFAULT_MESSAGE_PLATFORM = "whatsapp"
MESSAGE_PLATFORMS = frozenset({"whatsapp", "sms", "linkedin", "instagram", "email"})


@dataclass(frozen=True, slots=True)
class SendMessageAction:
    target: str
    content: str
    platform: str = DEFAULT_MESSAGE_PLATFORM
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.SEND_MESSAGE


@dataclass(frozen=True, slots=True)
class SendEmailAction:
    target: str
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.SEND_EMAIL


@dataclass(frozen=True, slots=True)
class CalendarEventAction:
    content: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.CALENDAR_EVENT


@dataclass(frozen=True, slots=True)
class OpenAppAction:
    app_id: str
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.OPEN_APP


@dataclass(frozen=True, slots=True)
class PlayMusicAction:
    content: str | None = None  # search query or playlist name
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.PLAY_MUSIC


@dataclass(frozen=True, slots=True)
class StartWorkflowAction:
    workflow_type: WorkflowType
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.START_WORKFLOW


@dataclass(frozen=True, slots=True)
class CreateNoteAction:
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.CREATE_NOTE


@dataclass(frozen=True, slots=True)
class TriggerReminderAction:
    content: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[ActionKind] = ActionKind.TRIGGER_REMINDER


Action = Union[
    SendMessageAction,
    SendEmailAction,
    CalendarEventAction,
    OpenAppAction,
    PlayMusicAction,
    StartWorkflowAction,
    CreateNoteAction,
    TriggerReminderAction,
]

ACTION_TYPES: dict[ActionKind, type] = {
    ActionKind.SEND_MESSAGE: SendMessageAction,
    ActionKind.SEND_EMAIL: SendEmailAction,
    ActionKind.CALENDAR_EVENT: CalendarEventAction,
    ActionKind.OPEN_APP: OpenAppAction,
    ActionKind.PLAY_MUSIC: PlayMusicAction,
    ActionKind.START_WORKFLOW: StartWorkflowAction,
    ActionKind.CREATE_NOTE: CreateNoteAction,
    ActionKind.TRIGGER_REMINDER: TriggerReminderAction,
}


def _required_text(data: dict, key: str, kind: ActionKind) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise TriggerConfigurationError(
            f"Action '{kind.value}' requires a non-empty '{key}'", field=key
        )
    return value


def _optional_text(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TriggerConfigurationError(f"Action field '{key}' must be a string", field=key)
    return value


def parse_action(data: dict[str, Any]) -> Action:
    """
    Build the typed action variant from its stored JSON shape.

    Raises:
        UnknownActionKindError: `type` is missing or not a known ActionKind
        TriggerConfigurationError: a required payload field is missing
    """
    if not isinstance(data, dict):
        raise TriggerConfigurationError("Action must be an object", field="actions")

    raw_kind = data.get("type")
    try:
        kind = ActionKind(raw_kind)
    except ValueError as e:
        raise UnknownActionKindError(f"Unknown action type: {raw_kind!r}", field="type") from e

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise TriggerConfigurationError("Action metadata must be an object", field="metadata")

    if kind is ActionKind.SEND_MESSAGE:
        platform = data.get("platform") or DEFAULT_MESSAGE_PLATFORM
        if platform not in MESSAGE_PLATFORMS:
            raise TriggerConfigurationError(f"Unsupported platform: {platform}", field="platform")
        return SendMessageAction(
            target=_required_text(data, "target", kind),
            content=_required_text(data, "content", kind),
            platform=platform,
            metadata=metadata,
        )
    if kind is ActionKind.SEND_EMAIL:
        return SendEmailAction(
            target=_required_text(data, "target", kind),
            content=_optional_text(data, "content") or "",
            metadata=metadata,
        )
    if kind is ActionKind.CALENDAR_EVENT:
        return CalendarEventAction(content=_optional_text(data, "content"), metadata=metadata)
    if kind is ActionKind.OPEN_APP:
        return OpenAppAction(app_id=_required_text(data, "appId", kind), metadata=metadata)
    if kind is ActionKind.PLAY_MUSIC:
        return PlayMusicAction(content=_optional_text(data, "content"), metadata=metadata)
    if kind is ActionKind.START_WORKFLOW:
        raw_workflow = _required_text(data, "workflowType", kind)
        try:
            workflow_type = WorkflowType(raw_workflow)
        except ValueError as e:
            raise TriggerConfigurationError(
                f"Unknown workflow type: {raw_workflow}", field="workflowType"
            ) from e
        return StartWorkflowAction(workflow_type=workflow_type, metadata=metadata)
    if kind is ActionKind.CREATE_NOTE:
        return CreateNoteAction(content=_required_text(data, "content", kind), metadata=metadata)
    return TriggerReminderAction(content=_optional_text(data, "content"), metadata=metadata)


def action_to_dict(action: Action) -> dict[str, Any]:
    """Serialize an action back to its stored JSON shape."""
    data: dict[str, Any] = {"type": action.kind.value}

    if isinstance(action, SendMessageAction):
        data.update(target=action.target, content=action.content, platform=action.platform)
    elif isinstance(action, SendEmailAction):
        data.update(target=action.target, content=action.content, platform="email")
    elif isinstance(action, OpenAppAction):
        data["appId"] = action.app_id
    elif isinstance(action, StartWorkflowAction):
        data["workflowType"] = action.workflow_type.value
    elif action.content is not None:
        data["content"] = action.content

    if action.metadata:
        data["metadata"] = dict(action.metadata)
    return data
