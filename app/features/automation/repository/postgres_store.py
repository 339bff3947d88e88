"""
Postgres-backed store for the automation feature.

Maps the Supabase tables (`alarms`, `alarm_executions`, `batch_tasks`,
`user_context_state`) onto the domain models so the engine never sees SQL.
"""

from datetime import UTC, datetime
from typing import Any

from psycopg.types.json import Jsonb

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from app.features.automation.domain import (
    AutonomyLevel,
    BatchJob,
    BatchJobStatus,
    BatchProgress,
    ContextSnapshot,
    EnergyLevel,
    ExecutionMode,
    ExecutionRecord,
    ExecutionStatus,
    RepeatPattern,
    TaskCategory,
    Trigger,
    TriggerKind,
    action_to_dict,
    parse_action,
)
from app.features.automation.domain.errors import TriggerConfigurationError
from app.features.automation.domain.validation import parse_conditions, parse_recipients
from app.features.automation.repository.store import AutomationStoreError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class PostgresAutomationStore:
    """AutomationStore implementation on the shared psycopg pool."""

    TRIGGER_COLUMNS = """
        id, user_id, title, description, alarm_type, category, scheduled_at,
        repeat_pattern, is_active, execution_mode, autonomy_level, priority,
        urgency, actions, conditions, metadata, last_triggered_at,
        next_trigger_at, created_at, updated_at
    """

    EXECUTION_COLUMNS = """
        id, alarm_id, user_id, executed_at, execution_mode, status,
        actions_performed, context_snapshot, result, error_message, duration_ms
    """

    BATCH_COLUMNS = """
        id, user_id, alarm_id, title, task_type, recipients, message_template,
        platform, status, progress, completed_at, created_at
    """

    CONTEXT_COLUMNS = """
        current_mood, current_energy, motivation_level, burnout_score,
        stress_level, is_working, is_studying, is_exercising,
        active_focus_session, quiet_hours_active, updated_at
    """

    # ------------------------------------------------------------------
    # Query plumbing
    # ------------------------------------------------------------------

    async def _one(self, operation: str, query: str, params: tuple) -> dict | None:
        try:
            return await fetch_one(query, params)
        except DatabaseError as e:
            raise AutomationStoreError(str(e), operation=operation) from e

    async def _all(self, operation: str, query: str, params: tuple) -> list[dict]:
        try:
            return await fetch_all(query, params)
        except DatabaseError as e:
            raise AutomationStoreError(str(e), operation=operation) from e

    async def _execute(self, operation: str, query: str, params: tuple) -> int:
        try:
            return await execute_query(query, params)
        except DatabaseError as e:
            raise AutomationStoreError(str(e), operation=operation) from e

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @classmethod
    def _row_to_trigger(cls, row: dict | None) -> Trigger | None:
        if not row:
            return None

        return Trigger(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=row["title"],
            description=row.get("description"),
            kind=TriggerKind(row["alarm_type"]),
            category=TaskCategory(row["category"]) if row.get("category") else None,
            scheduled_at=_parse_timestamp(row["scheduled_at"]),
            repeat_pattern=(
                RepeatPattern(row["repeat_pattern"]) if row.get("repeat_pattern") else None
            ),
            is_active=bool(row.get("is_active", True)),
            declared_execution_mode=ExecutionMode(
                row.get("execution_mode") or ExecutionMode.RING_ASK_EXECUTE
            ),
            autonomy_level=AutonomyLevel(row.get("autonomy_level") or AutonomyLevel.A),
            priority=row.get("priority") if row.get("priority") is not None else 5,
            urgency=row.get("urgency") if row.get("urgency") is not None else 5,
            actions=[parse_action(item) for item in row.get("actions") or []],
            conditions=parse_conditions(row.get("conditions") or {}),
            metadata=row.get("metadata") or {},
            last_triggered_at=_parse_timestamp(row.get("last_triggered_at")),
            next_trigger_at=_parse_timestamp(row.get("next_trigger_at")),
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )

    @classmethod
    def _row_to_execution(cls, row: dict | None) -> ExecutionRecord | None:
        if not row:
            return None

        result = row.get("result") or {}
        return ExecutionRecord(
            id=str(row["id"]),
            trigger_id=str(row["alarm_id"]),
            user_id=str(row["user_id"]),
            execution_mode=ExecutionMode(row["execution_mode"]),
            status=ExecutionStatus(row["status"]),
            context_snapshot=row.get("context_snapshot") or {},
            started_at=_parse_timestamp(row["executed_at"]),
            actions_performed=[parse_action(item) for item in row.get("actions_performed") or []],
            duration_ms=row.get("duration_ms"),
            completed_at=_parse_timestamp(result.get("completed_at")),
            error_message=row.get("error_message"),
        )

    @classmethod
    def _row_to_batch_job(cls, row: dict | None) -> BatchJob | None:
        if not row:
            return None

        progress = row.get("progress") or {}
        return BatchJob(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            trigger_id=str(row["alarm_id"]) if row.get("alarm_id") else None,
            title=row["title"],
            task_type=row.get("task_type") or "message_batch",
            recipients=parse_recipients(row.get("recipients") or []),
            message_template=row.get("message_template") or "",
            platform=row.get("platform") or "whatsapp",
            status=BatchJobStatus(row.get("status") or BatchJobStatus.PENDING),
            progress=BatchProgress(
                sent=progress.get("sent", 0),
                failed=progress.get("failed", 0),
                total=progress.get("total", 0),
            ),
            completed_at=_parse_timestamp(row.get("completed_at")),
            created_at=_parse_timestamp(row.get("created_at")),
        )

    @classmethod
    def _row_to_context(cls, row: dict | None) -> ContextSnapshot | None:
        if not row:
            return None

        return ContextSnapshot(
            current_mood=row.get("current_mood"),
            current_energy=(
                EnergyLevel(row["current_energy"]) if row.get("current_energy") else None
            ),
            motivation_level=float(row.get("motivation_level") or 0),
            burnout_score=float(row.get("burnout_score") or 0),
            stress_level=float(row.get("stress_level") or 0),
            is_working=bool(row.get("is_working")),
            is_studying=bool(row.get("is_studying")),
            is_exercising=bool(row.get("is_exercising")),
            active_focus_session=bool(row.get("active_focus_session")),
            quiet_hours_active=bool(row.get("quiet_hours_active")),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def insert_trigger(self, trigger: Trigger) -> Trigger:
        query = f"""
            INSERT INTO alarms (
                id, user_id, title, description, alarm_type, category, scheduled_at,
                repeat_pattern, is_active, execution_mode, autonomy_level, priority,
                urgency, actions, conditions, metadata, next_trigger_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {self.TRIGGER_COLUMNS}
        """
        row = await self._one(
            "insert_trigger",
            query,
            (
                trigger.id,
                trigger.user_id,
                trigger.title,
                trigger.description,
                trigger.kind.value,
                trigger.category.value if trigger.category else None,
                trigger.scheduled_at,
                trigger.repeat_pattern.value if trigger.repeat_pattern else None,
                trigger.is_active,
                trigger.declared_execution_mode.value,
                trigger.autonomy_level.value,
                trigger.priority,
                trigger.urgency,
                Jsonb(trigger.actions_as_dicts()),
                Jsonb(trigger.conditions.to_dict()),
                Jsonb(trigger.metadata),
                trigger.next_trigger_at,
            ),
        )
        if not row:
            raise AutomationStoreError("Failed to create trigger", operation="insert_trigger")

        logger.info("Trigger created", trigger_id=trigger.id, user_id=trigger.user_id)
        return self._row_to_trigger(row)

    async def get_trigger(self, user_id: str, trigger_id: str) -> Trigger | None:
        query = f"SELECT {self.TRIGGER_COLUMNS} FROM alarms WHERE id = %s AND user_id = %s"
        row = await self._one("get_trigger", query, (trigger_id, user_id))
        return self._row_to_trigger(row)

    async def list_triggers(self, user_id: str) -> list[Trigger]:
        query = f"""
            SELECT {self.TRIGGER_COLUMNS}
            FROM alarms
            WHERE user_id = %s
            ORDER BY scheduled_at ASC
        """
        rows = await self._all("list_triggers", query, (user_id,))
        return [self._row_to_trigger(row) for row in rows]

    async def list_active_triggers(self) -> list[Trigger]:
        query = f"""
            SELECT {self.TRIGGER_COLUMNS}
            FROM alarms
            WHERE is_active = true
            ORDER BY COALESCE(next_trigger_at, scheduled_at) ASC
        """
        rows = await self._all("list_active_triggers", query, ())
        triggers = []
        for row in rows:
            # One malformed row must not stall the scan for everyone else
            try:
                triggers.append(self._row_to_trigger(row))
            except (ValueError, KeyError, TriggerConfigurationError) as e:
                logger.error(
                    "Skipping malformed trigger row", trigger_id=str(row.get("id")), error=str(e)
                )
        return triggers

    async def update_trigger(self, trigger: Trigger) -> Trigger:
        query = f"""
            UPDATE alarms
            SET title = %s,
                description = %s,
                alarm_type = %s,
                category = %s,
                scheduled_at = %s,
                repeat_pattern = %s,
                is_active = %s,
                execution_mode = %s,
                autonomy_level = %s,
                priority = %s,
                urgency = %s,
                actions = %s,
                conditions = %s,
                metadata = %s,
                next_trigger_at = %s,
                updated_at = NOW()
            WHERE id = %s AND user_id = %s
            RETURNING {self.TRIGGER_COLUMNS}
        """
        row = await self._one(
            "update_trigger",
            query,
            (
                trigger.title,
                trigger.description,
                trigger.kind.value,
                trigger.category.value if trigger.category else None,
                trigger.scheduled_at,
                trigger.repeat_pattern.value if trigger.repeat_pattern else None,
                trigger.is_active,
                trigger.declared_execution_mode.value,
                trigger.autonomy_level.value,
                trigger.priority,
                trigger.urgency,
                Jsonb(trigger.actions_as_dicts()),
                Jsonb(trigger.conditions.to_dict()),
                Jsonb(trigger.metadata),
                trigger.next_trigger_at,
                trigger.id,
                trigger.user_id,
            ),
        )
        if not row:
            raise AutomationStoreError(
                f"Trigger {trigger.id} disappeared during update", operation="update_trigger"
            )
        return self._row_to_trigger(row)

    async def mark_trigger_fired(self, user_id: str, trigger_id: str, fired_at: datetime) -> bool:
        affected = await self._execute(
            "mark_trigger_fired",
            """
            UPDATE alarms
            SET last_triggered_at = %s, updated_at = NOW()
            WHERE id = %s AND user_id = %s
            """,
            (fired_at, trigger_id, user_id),
        )
        return affected > 0

    async def reschedule_trigger(
        self,
        user_id: str,
        trigger_id: str,
        fire_time: datetime,
        *,
        next_trigger_at: datetime | None = None,
        deactivate: bool = False,
        delay_count: int | None = None,
    ) -> bool:
        """
        Move a trigger's schedule after the scheduler handled `fire_time`.

        Only the schedule columns are written, and only while the row still
        fires at `fire_time`. A row the user rescheduled, or deleted, in the
        meantime is left alone and False is returned. `is_active` can only be
        cleared here, never set, so a user's skip survives.

        Args:
            fire_time: The firing the scheduler acted on
            next_trigger_at: New fire time, or None to keep the current one
            deactivate: Clear is_active
            delay_count: Store the delay streak, or None to clear it
        """
        query = """
            UPDATE alarms
            SET next_trigger_at = COALESCE(%s::timestamptz, next_trigger_at),
                is_active = CASE WHEN %s THEN false ELSE is_active END,
                metadata = CASE
                    WHEN %s::int IS NULL THEN COALESCE(metadata, '{}'::jsonb) - 'delay_count'
                    ELSE jsonb_set(
                        COALESCE(metadata, '{}'::jsonb), '{delay_count}', to_jsonb(%s::int)
                    )
                END,
                updated_at = NOW()
            WHERE id = %s AND user_id = %s
              AND COALESCE(next_trigger_at, scheduled_at) = %s
        """
        affected = await self._execute(
            "reschedule_trigger",
            query,
            (
                next_trigger_at,
                deactivate,
                delay_count,
                delay_count,
                trigger_id,
                user_id,
                fire_time,
            ),
        )
        return affected > 0

    async def delete_trigger(self, user_id: str, trigger_id: str) -> bool:
        affected = await self._execute(
            "delete_trigger",
            "DELETE FROM alarms WHERE id = %s AND user_id = %s",
            (trigger_id, user_id),
        )
        return affected > 0

    # ------------------------------------------------------------------
    # Execution records
    # ------------------------------------------------------------------

    async def insert_execution(self, record: ExecutionRecord) -> ExecutionRecord:
        query = f"""
            INSERT INTO alarm_executions (
                alarm_id, user_id, executed_at, execution_mode, status,
                actions_performed, context_snapshot, result, error_message, duration_ms
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {self.EXECUTION_COLUMNS}
        """
        result = {"completed_at": record.completed_at.isoformat()} if record.completed_at else {}
        row = await self._one(
            "insert_execution",
            query,
            (
                record.trigger_id,
                record.user_id,
                record.started_at,
                record.execution_mode.value,
                record.status.value,
                Jsonb([action_to_dict(action) for action in record.actions_performed]),
                Jsonb(record.context_snapshot),
                Jsonb(result),
                record.error_message,
                record.duration_ms,
            ),
        )
        if not row:
            raise AutomationStoreError(
                "Failed to create execution record", operation="insert_execution"
            )
        return self._row_to_execution(row)

    async def complete_execution(self, record: ExecutionRecord) -> ExecutionRecord:
        if record.id is None:
            # Start record was never persisted; write the terminal row on its own
            return await self.insert_execution(record)

        # Terminal rows are immutable: only an 'executing' row may be finalised
        query = f"""
            UPDATE alarm_executions
            SET status = %s,
                actions_performed = %s,
                result = %s,
                error_message = %s,
                duration_ms = %s
            WHERE id = %s AND user_id = %s AND status = 'executing'
            RETURNING {self.EXECUTION_COLUMNS}
        """
        result = {"completed_at": record.completed_at.isoformat()} if record.completed_at else {}
        row = await self._one(
            "complete_execution",
            query,
            (
                record.status.value,
                Jsonb([action_to_dict(action) for action in record.actions_performed]),
                Jsonb(result),
                record.error_message,
                record.duration_ms,
                record.id,
                record.user_id,
            ),
        )
        if not row:
            raise AutomationStoreError(
                f"Execution record {record.id} is not open", operation="complete_execution"
            )
        return self._row_to_execution(row)

    async def list_executions(
        self, user_id: str, trigger_id: str | None = None, limit: int = 50
    ) -> list[ExecutionRecord]:
        if trigger_id:
            query = f"""
                SELECT {self.EXECUTION_COLUMNS}
                FROM alarm_executions
                WHERE user_id = %s AND alarm_id = %s
                ORDER BY executed_at DESC
                LIMIT %s
            """
            params = (user_id, trigger_id, limit)
        else:
            query = f"""
                SELECT {self.EXECUTION_COLUMNS}
                FROM alarm_executions
                WHERE user_id = %s
                ORDER BY executed_at DESC
                LIMIT %s
            """
            params = (user_id, limit)

        rows = await self._all("list_executions", query, params)
        return [self._row_to_execution(row) for row in rows]

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def get_context(self, user_id: str) -> ContextSnapshot | None:
        query = f"SELECT {self.CONTEXT_COLUMNS} FROM user_context_state WHERE user_id = %s"
        row = await self._one("get_context", query, (user_id,))
        return self._row_to_context(row)

    async def upsert_context_fields(self, user_id: str, fields: dict[str, Any]) -> ContextSnapshot:
        """
        Insert-or-merge only the supplied columns.

        Columns are whitelisted against ContextSnapshot so the f-string below
        never carries caller input.
        """
        allowed = set(ContextSnapshot.signal_fields())
        columns = [name for name in fields if name in allowed]

        values = [
            fields[name].value if isinstance(fields[name], EnergyLevel) else fields[name]
            for name in columns
        ]
        insert_columns = ", ".join(["user_id", *columns, "updated_at"])
        placeholders = ", ".join(["%s"] * (len(columns) + 2))
        assignments = ", ".join(
            [f"{name} = EXCLUDED.{name}" for name in columns] + ["updated_at = EXCLUDED.updated_at"]
        )

        query = f"""
            INSERT INTO user_context_state ({insert_columns})
            VALUES ({placeholders})
            ON CONFLICT (user_id) DO UPDATE SET {assignments}
            RETURNING {self.CONTEXT_COLUMNS}
        """
        row = await self._one(
            "upsert_context", query, (user_id, *values, datetime.now(UTC))
        )
        if not row:
            raise AutomationStoreError("Context upsert returned no row", operation="upsert_context")
        return self._row_to_context(row)

    # ------------------------------------------------------------------
    # Batch jobs
    # ------------------------------------------------------------------

    async def insert_batch_job(self, job: BatchJob) -> BatchJob:
        query = f"""
            INSERT INTO batch_tasks (
                id, user_id, alarm_id, title, task_type, recipients,
                message_template, platform, status, progress
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {self.BATCH_COLUMNS}
        """
        row = await self._one(
            "insert_batch_job",
            query,
            (
                job.id,
                job.user_id,
                job.trigger_id,
                job.title,
                job.task_type,
                Jsonb([recipient.to_dict() for recipient in job.recipients]),
                job.message_template,
                job.platform,
                job.status.value,
                Jsonb(job.progress.to_dict()),
            ),
        )
        if not row:
            raise AutomationStoreError("Failed to create batch job", operation="insert_batch_job")

        logger.info(
            "Batch job created", job_id=job.id, user_id=job.user_id, total=job.progress.total
        )
        return self._row_to_batch_job(row)

    async def get_batch_job(self, user_id: str, job_id: str) -> BatchJob | None:
        query = f"SELECT {self.BATCH_COLUMNS} FROM batch_tasks WHERE id = %s AND user_id = %s"
        row = await self._one("get_batch_job", query, (job_id, user_id))
        return self._row_to_batch_job(row)

    async def list_batch_jobs(self, user_id: str) -> list[BatchJob]:
        query = f"""
            SELECT {self.BATCH_COLUMNS}
            FROM batch_tasks
            WHERE user_id = %s
            ORDER BY created_at DESC
        """
        rows = await self._all("list_batch_jobs", query, (user_id,))
        return [self._row_to_batch_job(row) for row in rows]

    async def update_batch_progress(self, job: BatchJob) -> None:
        query = """
            UPDATE batch_tasks
            SET progress = %s,
                status = %s,
                completed_at = %s,
                updated_at = NOW()
            WHERE id = %s AND user_id = %s
        """
        affected = await self._execute(
            "update_batch_progress",
            query,
            (
                Jsonb(job.progress.to_dict()),
                job.status.value,
                job.completed_at,
                job.id,
                job.user_id,
            ),
        )
        if affected == 0:
            raise AutomationStoreError(
                f"Batch job {job.id} not found during progress update",
                operation="update_batch_progress",
            )
