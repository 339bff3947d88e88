"""
Execution pipeline: perform a trigger's actions and keep the audit trail.

Actions run strictly in order with a pacing delay between them. A failing
action is logged and skipped; it never aborts the run. The pipeline owns
the ExecutionRecord lifecycle: one row inserted as `executing`, then
finalised as `completed` (or `failed` if the run was cancelled).
"""

import asyncio
from dataclasses import replace

from app.config import settings
from app.db.helpers import DatabaseError
from app.features.automation.actuators import ActuatorRegistry
from app.features.automation.clock import Clock, system_clock
from app.features.automation.context import ContextStore
from app.features.automation.domain import (
    Action,
    ExecutionMode,
    ExecutionRecord,
    ExecutionStatus,
    Trigger,
)
from app.features.automation.repository.store import AutomationStore
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CANCELLED_MESSAGE = "cancelled"


class ExecutionPipeline:
    def __init__(
        self,
        store: AutomationStore,
        context_store: ContextStore,
        registry: ActuatorRegistry,
        clock: Clock = system_clock,
        pacing_seconds: float | None = None,
    ):
        self.store = store
        self.context_store = context_store
        self.registry = registry
        self.clock = clock
        self.pacing_seconds = (
            pacing_seconds if pacing_seconds is not None else settings.ACTION_PACING_MS / 1000
        )

    async def execute(self, trigger: Trigger, mode: ExecutionMode) -> ExecutionRecord:
        """
        Run every action of `trigger` under an executing mode.

        Returns the terminal ExecutionRecord. If a store write failed the
        record is still returned with `persisted=False`.

        Raises:
            ValueError: `mode` is suppress or delay
            asyncio.CancelledError: after the cancelled run has been recorded
        """
        if not mode.runs_pipeline:
            raise ValueError(f"Execution mode '{mode.value}' never reaches the pipeline")

        snapshot = await self.context_store.read(trigger.user_id)
        started = self.clock.monotonic()

        record = ExecutionRecord(
            trigger_id=trigger.id,
            user_id=trigger.user_id,
            execution_mode=mode,
            status=ExecutionStatus.EXECUTING,
            context_snapshot=snapshot.to_dict(),
            started_at=self.clock.now(),
        )
        record = await self._insert(record)

        logger.info(
            "Execution started",
            trigger_id=trigger.id,
            user_id=trigger.user_id,
            mode=mode.value,
            action_count=len(trigger.actions),
        )

        try:
            for index, action in enumerate(trigger.actions):
                if index > 0:
                    await self.clock.sleep(self.pacing_seconds)
                await self._perform(trigger, action, record)
        except asyncio.CancelledError:
            record.status = ExecutionStatus.FAILED
            record.error_message = CANCELLED_MESSAGE
            self._finish(record, started)
            await self._complete(record)
            logger.warning(
                "Execution cancelled",
                trigger_id=trigger.id,
                actions_performed=len(record.actions_performed),
            )
            raise

        record.status = ExecutionStatus.COMPLETED
        self._finish(record, started)
        record = await self._complete(record)

        trigger.last_triggered_at = record.started_at
        try:
            await self.store.mark_trigger_fired(trigger.user_id, trigger.id, record.started_at)
        except DatabaseError as e:
            record.persisted = False
            logger.critical(
                "Failed to update last_triggered_at",
                trigger_id=trigger.id,
                error=str(e),
                firing_fatal=True,
            )

        logger.info(
            "Execution completed",
            trigger_id=trigger.id,
            mode=mode.value,
            actions_performed=len(record.actions_performed),
            actions_total=len(trigger.actions),
            duration_ms=record.duration_ms,
        )
        return record

    async def _perform(self, trigger: Trigger, action: Action, record: ExecutionRecord) -> None:
        """Run one action to completion, even if the caller is cancelled meanwhile."""
        task = asyncio.ensure_future(self.registry.perform(action))
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # Settle the in-flight action before the cancellation propagates
            if await self._settle(task):
                record.actions_performed.append(action)
            raise
        except Exception as e:
            logger.warning(
                "Action failed",
                trigger_id=trigger.id,
                action_type=action.kind.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            return
        record.actions_performed.append(action)

    @staticmethod
    async def _settle(task: asyncio.Future) -> bool:
        try:
            await task
        except Exception:
            return False
        return True

    def _finish(self, record: ExecutionRecord, started: float) -> None:
        record.completed_at = self.clock.now()
        record.duration_ms = int((self.clock.monotonic() - started) * 1000)

    async def _insert(self, record: ExecutionRecord) -> ExecutionRecord:
        try:
            return await self.store.insert_execution(record)
        except DatabaseError as e:
            logger.critical(
                "Failed to persist execution start",
                trigger_id=record.trigger_id,
                error=str(e),
                firing_fatal=True,
            )
            return replace(record, persisted=False)

    async def _complete(self, record: ExecutionRecord) -> ExecutionRecord:
        try:
            saved = await self.store.complete_execution(record)
        except DatabaseError as e:
            logger.critical(
                "Failed to persist execution result",
                trigger_id=record.trigger_id,
                status=record.status.value,
                error=str(e),
                firing_fatal=True,
            )
            record.persisted = False
            return record
        saved.persisted = saved.persisted and record.persisted
        return saved
