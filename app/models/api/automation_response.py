# app/models/api/automation_response.py
"""
Automation API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TriggerResponse(BaseModel):
    """Response model for a trigger."""

    id: str = Field(..., description="Trigger ID")
    title: str = Field(..., description="Trigger title")
    description: str | None = Field(None, description="Trigger description")
    kind: str = Field(..., description="Trigger kind")
    category: str | None = Field(None, description="Task category")
    scheduled_at: datetime = Field(..., description="Anchor fire time")
    next_trigger_at: datetime | None = Field(None, description="Next fire time")
    last_triggered_at: datetime | None = Field(None, description="Last execution time")
    repeat_pattern: str | None = Field(None, description="Recurrence, null for one-shot")
    is_active: bool = Field(..., description="Whether the trigger is armed")
    execution_mode: str = Field(..., description="Declared execution mode")
    autonomy_level: str = Field(..., description="Autonomy level")
    priority: int = Field(..., description="Priority 0-10")
    urgency: int = Field(..., description="Urgency 0-10")
    actions: list[dict[str, Any]] = Field(..., description="Ordered actions")
    conditions: dict[str, Any] = Field(..., description="Context conditions")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Opaque metadata")
    created_at: datetime | None = Field(None, description="When the trigger was created")
    updated_at: datetime | None = Field(None, description="When the trigger was last changed")


class TriggerListResponse(BaseModel):
    triggers: list[TriggerResponse] = Field(..., description="User's triggers")
    total_count: int = Field(..., description="Number of triggers")


class ExecutionRecordResponse(BaseModel):
    """Response model for one execution record."""

    id: str | None = Field(None, description="Execution ID")
    trigger_id: str = Field(..., description="Trigger that fired")
    execution_mode: str = Field(..., description="Resolved execution mode")
    status: str = Field(..., description="executing, completed or failed")
    started_at: datetime = Field(..., description="When the run started")
    completed_at: datetime | None = Field(None, description="When the run finished")
    duration_ms: int | None = Field(None, description="Run duration")
    actions_performed: list[dict[str, Any]] = Field(..., description="Actions that succeeded")
    context_snapshot: dict[str, Any] = Field(..., description="Context at start of the run")
    error_message: str | None = Field(None, description="Why the run did not complete")
    persisted: bool = Field(default=True, description="Whether every store write succeeded")


class ExecutionListResponse(BaseModel):
    executions: list[ExecutionRecordResponse] = Field(..., description="Newest first")
    total_count: int = Field(..., description="Number of records returned")


class FiringResponse(BaseModel):
    """Response for a manual firing."""

    trigger_id: str = Field(..., description="Trigger ID")
    outcome: str = Field(..., description="executed, suppressed, delayed or failed")
    mode: str | None = Field(None, description="Resolved execution mode")
    rule: str | None = Field(None, description="Policy rule that decided the mode")
    clamped: bool = Field(default=False, description="Whether a confirmation clamp applied")
    alert_level: str | None = Field(None, description="How loudly to ring")
    execution: ExecutionRecordResponse | None = Field(None, description="Execution record")


class ContextResponse(BaseModel):
    """Response model for the user's context snapshot."""

    current_mood: str | None = None
    current_energy: str | None = None
    motivation_level: float = 0.0
    burnout_score: float = 0.0
    stress_level: float = 0.0
    is_working: bool = False
    is_studying: bool = False
    is_exercising: bool = False
    active_focus_session: bool = False
    quiet_hours_active: bool = False
    updated_at: datetime | None = None


class BatchProgressResponse(BaseModel):
    sent: int = Field(..., description="Recipients reached")
    failed: int = Field(..., description="Recipients that failed")
    total: int = Field(..., description="Total recipients")
    status: str | None = Field(None, description="Job status")
    is_running: bool = Field(default=False, description="Whether dispatch is in progress here")


class BatchJobResponse(BaseModel):
    """Response model for a batch job."""

    id: str = Field(..., description="Batch job ID")
    title: str = Field(..., description="Job title")
    platform: str = Field(..., description="Messaging platform")
    message_template: str = Field(..., description="Message text with {name}")
    recipients: list[dict[str, str]] = Field(..., description="Ordered recipients")
    status: str = Field(..., description="pending, in_progress, completed or cancelled")
    progress: BatchProgressResponse = Field(..., description="Dispatch progress")
    trigger_id: str | None = Field(None, description="Trigger that spawned this job")
    created_at: datetime | None = Field(None, description="When the job was created")
    completed_at: datetime | None = Field(None, description="When the last recipient finished")


class BatchJobListResponse(BaseModel):
    jobs: list[BatchJobResponse] = Field(..., description="User's batch jobs")
    total_count: int = Field(..., description="Number of jobs")
