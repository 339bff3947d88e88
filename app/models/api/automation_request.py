# app/models/api/automation_request.py
"""
Automation API request models.
Used by routes for input validation. Domain rules (action shapes, 0-10
scales, enum values) are checked by the service so they surface as 400s.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TriggerCreateRequest(BaseModel):
    """Request for registering a trigger."""

    title: str = Field(..., min_length=1, max_length=200, description="Trigger title")
    scheduled_at: datetime = Field(..., description="First fire time")
    actions: list[dict[str, Any]] = Field(..., description="Ordered actions to perform")
    description: str | None = Field(None, max_length=1000, description="Trigger description")
    kind: str = Field(default="time_based", description="Trigger kind")
    category: str | None = Field(None, description="Informational task category")
    repeat_pattern: str | None = Field(
        None, description="daily, weekdays, weekends, weekly or monthly"
    )
    execution_mode: str = Field(default="ring_ask_execute", description="Declared execution mode")
    autonomy_level: str = Field(default="A", description="A (confirm), B (notify), C (silent)")
    priority: int = Field(default=5, description="Priority 0-10")
    urgency: int = Field(default=5, description="Urgency 0-10")
    conditions: dict[str, Any] | None = Field(None, description="Context conditions (camelCase)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Opaque metadata")
    is_active: bool = Field(default=True, description="Whether the trigger is armed")


class TriggerUpdateRequest(BaseModel):
    """Partial trigger update; only supplied fields change."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    kind: str | None = None
    category: str | None = None
    scheduled_at: datetime | None = None
    repeat_pattern: str | None = None
    execution_mode: str | None = None
    autonomy_level: str | None = None
    priority: int | None = None
    urgency: int | None = None
    actions: list[dict[str, Any]] | None = None
    conditions: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    is_active: bool | None = None


class SnoozeRequest(BaseModel):
    """Request for snoozing a trigger."""

    minutes: int = Field(..., description="One of 5, 10, 15, 30, 60")


class ContextUpdateRequest(BaseModel):
    """Partial context update; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    current_mood: str | None = None
    current_energy: str | None = Field(None, description="low, medium or high")
    motivation_level: float | None = None
    burnout_score: float | None = None
    stress_level: float | None = None
    is_working: bool | None = None
    is_studying: bool | None = None
    is_exercising: bool | None = None
    active_focus_session: bool | None = None
    quiet_hours_active: bool | None = None


class BatchRecipientRequest(BaseModel):
    name: str = Field(..., description="Substituted for {name} in the template")
    identifier: str = Field(..., min_length=1, description="Phone number, handle or address")


class BatchJobCreateRequest(BaseModel):
    """Request for creating a batch messaging job."""

    title: str = Field(..., min_length=1, max_length=200, description="Job title")
    recipients: list[BatchRecipientRequest] = Field(..., description="Ordered recipients")
    message_template: str = Field(..., min_length=1, description="Message text with {name}")
    platform: str = Field(default="whatsapp", description="Messaging platform")
    trigger_id: str | None = Field(None, description="Trigger that spawned this job")
