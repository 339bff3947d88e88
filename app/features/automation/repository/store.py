"""
Store capability consumed by the automation engine.

Per-entity atomic writes only; no multi-row transactions are assumed.
The scheduler never writes a whole trigger row: it stamps
`last_triggered_at` and moves the schedule with narrow writes, and the
schedule write only applies while the row still holds the fire time the
scheduler acted on, so concurrent user edits win.
Every read and write is scoped by user id except `list_active_triggers`,
which the scheduler uses to scan all users.
"""

from datetime import datetime
from typing import Any, Protocol

from app.db.helpers import DatabaseError
from app.features.automation.domain import (
    BatchJob,
    ContextSnapshot,
    ExecutionRecord,
    Trigger,
)


class AutomationStoreError(DatabaseError):
    """Store write or read failed."""


class AutomationStore(Protocol):
    # Triggers
    async def insert_trigger(self, trigger: Trigger) -> Trigger: ...

    async def get_trigger(self, user_id: str, trigger_id: str) -> Trigger | None: ...

    async def list_triggers(self, user_id: str) -> list[Trigger]: ...

    async def list_active_triggers(self) -> list[Trigger]: ...

    async def update_trigger(self, trigger: Trigger) -> Trigger: ...

    async def mark_trigger_fired(
        self, user_id: str, trigger_id: str, fired_at: datetime
    ) -> bool: ...

    async def reschedule_trigger(
        self,
        user_id: str,
        trigger_id: str,
        fire_time: datetime,
        *,
        next_trigger_at: datetime | None = None,
        deactivate: bool = False,
        delay_count: int | None = None,
    ) -> bool: ...

    async def delete_trigger(self, user_id: str, trigger_id: str) -> bool: ...

    # Execution records
    async def insert_execution(self, record: ExecutionRecord) -> ExecutionRecord: ...

    async def complete_execution(self, record: ExecutionRecord) -> ExecutionRecord: ...

    async def list_executions(
        self, user_id: str, trigger_id: str | None = None, limit: int = 50
    ) -> list[ExecutionRecord]: ...

    # Context
    async def get_context(self, user_id: str) -> ContextSnapshot | None: ...

    async def upsert_context_fields(
        self, user_id: str, fields: dict[str, Any]
    ) -> ContextSnapshot: ...

    # Batch jobs
    async def insert_batch_job(self, job: BatchJob) -> BatchJob: ...

    async def get_batch_job(self, user_id: str, job_id: str) -> BatchJob | None: ...

    async def list_batch_jobs(self, user_id: str) -> list[BatchJob]: ...

    async def update_batch_progress(self, job: BatchJob) -> None: ...
