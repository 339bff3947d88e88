"""
Automation service: the trigger, context and batch surfaces.

Routes and jobs talk to this class only. It validates input before the
store is touched, scopes every lookup by user id (another user's entity is
reported as not found) and owns the running batch-job tasks so they can be
cancelled.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any

from app.config import settings
from app.features.automation.actuators import ActuatorRegistry, build_default_registry
from app.features.automation.batch import BatchDispatcher
from app.features.automation.clock import Clock, system_clock
from app.features.automation.context import ContextStore
from app.features.automation.domain import (
    BatchJob,
    BatchJobStatus,
    BatchProgress,
    ContextSnapshot,
    ExecutionRecord,
    Trigger,
)
from app.features.automation.domain.errors import (
    BatchJobConfigurationError,
    BatchJobNotFoundError,
    TriggerConfigurationError,
    TriggerNotFoundError,
)
from app.features.automation.domain.validation import (
    apply_trigger_changes,
    build_trigger,
    parse_recipients,
)
from app.features.automation.pipeline import ExecutionPipeline
from app.features.automation.repository import AutomationStore, PostgresAutomationStore
from app.features.automation.scheduler import FiringResult, TriggerScheduler
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SNOOZE_OPTIONS_MINUTES = (5, 10, 15, 30, 60)
DEFAULT_PLATFORM = "whatsapp"


class AutomationService:
    def __init__(
        self,
        store: AutomationStore,
        registry: ActuatorRegistry,
        clock: Clock = system_clock,
    ):
        self.store = store
        self.registry = registry
        self.clock = clock
        self.context_store = ContextStore(store)
        self.pipeline = ExecutionPipeline(store, self.context_store, registry, clock)
        self.scheduler = TriggerScheduler(store, self.context_store, self.pipeline, clock)
        self.dispatcher = BatchDispatcher(store, registry, clock)
        self._batch_tasks: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def create_trigger(self, user_id: str, payload: dict[str, Any]) -> Trigger:
        """
        Validate and persist a new trigger.

        Raises:
            TriggerConfigurationError: malformed definition (nothing is stored)
        """
        trigger = build_trigger(str(uuid.uuid4()), user_id, payload)
        created = await self.store.insert_trigger(trigger)
        logger.info(
            "Trigger registered",
            trigger_id=created.id,
            user_id=user_id,
            kind=created.kind.value,
            action_count=len(created.actions),
        )
        return created

    async def get_trigger(self, user_id: str, trigger_id: str) -> Trigger:
        trigger = await self.store.get_trigger(user_id, trigger_id)
        if trigger is None:
            raise TriggerNotFoundError(trigger_id)
        return trigger

    async def list_triggers(self, user_id: str) -> list[Trigger]:
        return await self.store.list_triggers(user_id)

    async def update_trigger(
        self, user_id: str, trigger_id: str, changes: dict[str, Any]
    ) -> Trigger:
        trigger = await self.get_trigger(user_id, trigger_id)
        updated = apply_trigger_changes(trigger, changes)
        saved = await self.store.update_trigger(updated)
        logger.info("Trigger updated", trigger_id=trigger_id, fields=sorted(changes))
        return saved

    async def delete_trigger(self, user_id: str, trigger_id: str) -> None:
        if not await self.store.delete_trigger(user_id, trigger_id):
            raise TriggerNotFoundError(trigger_id)
        logger.info("Trigger deleted", trigger_id=trigger_id, user_id=user_id)

    async def list_due_triggers(self, user_id: str, now: datetime | None = None) -> list[Trigger]:
        """The user's triggers inside the scheduler's look-ahead window."""
        now = now or self.clock.now()
        triggers = await self.store.list_triggers(user_id)
        return self.scheduler.find_due(triggers, now)

    async def fire_trigger(self, user_id: str, trigger_id: str) -> FiringResult:
        return await self.scheduler.fire(user_id, trigger_id)

    async def snooze_trigger(self, user_id: str, trigger_id: str, minutes: int) -> Trigger:
        """Push the next firing back by one of the fixed snooze options."""
        if minutes not in SNOOZE_OPTIONS_MINUTES:
            raise TriggerConfigurationError(
                f"Snooze must be one of {', '.join(map(str, SNOOZE_OPTIONS_MINUTES))} minutes",
                field="minutes",
            )

        trigger = await self.get_trigger(user_id, trigger_id)
        trigger.next_trigger_at = self.clock.now() + timedelta(minutes=minutes)
        trigger.is_active = True
        saved = await self.store.update_trigger(trigger)
        logger.info(
            "Trigger snoozed",
            trigger_id=trigger_id,
            minutes=minutes,
            next_trigger_at=saved.next_trigger_at.isoformat() if saved.next_trigger_at else None,
        )
        return saved

    async def skip_trigger(self, user_id: str, trigger_id: str) -> Trigger:
        """Dismiss the trigger without running it."""
        trigger = await self.get_trigger(user_id, trigger_id)
        trigger.is_active = False
        saved = await self.store.update_trigger(trigger)
        logger.info("Trigger skipped", trigger_id=trigger_id, user_id=user_id)
        return saved

    async def list_executions(
        self, user_id: str, trigger_id: str | None = None, limit: int = 50
    ) -> list[ExecutionRecord]:
        if trigger_id is not None:
            await self.get_trigger(user_id, trigger_id)
        return await self.store.list_executions(user_id, trigger_id=trigger_id, limit=limit)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def get_context(self, user_id: str) -> ContextSnapshot:
        return await self.context_store.read(user_id)

    async def update_context(self, user_id: str, partial: dict[str, Any]) -> ContextSnapshot:
        return await self.context_store.upsert(user_id, partial)

    # ------------------------------------------------------------------
    # Batch jobs
    # ------------------------------------------------------------------

    async def create_batch_job(
        self,
        user_id: str,
        title: str,
        recipients: list[dict[str, str]],
        message_template: str,
        platform: str = DEFAULT_PLATFORM,
        trigger_id: str | None = None,
    ) -> BatchJob:
        """
        Raises:
            BatchJobConfigurationError: empty recipients, blank title or template
        """
        if not title or not title.strip():
            raise BatchJobConfigurationError("'title' is required", "title")
        if not message_template:
            raise BatchJobConfigurationError("'message_template' is required", "message_template")

        parsed = parse_recipients(recipients)
        job = BatchJob(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title.strip(),
            recipients=parsed,
            message_template=message_template,
            platform=platform or DEFAULT_PLATFORM,
            trigger_id=trigger_id,
            progress=BatchProgress(total=len(parsed)),
        )
        return await self.store.insert_batch_job(job)

    async def get_batch_job(self, user_id: str, job_id: str) -> BatchJob:
        job = await self.store.get_batch_job(user_id, job_id)
        if job is None:
            raise BatchJobNotFoundError(job_id)
        return job

    async def list_batch_jobs(self, user_id: str) -> list[BatchJob]:
        return await self.store.list_batch_jobs(user_id)

    async def get_progress(self, user_id: str, job_id: str) -> BatchProgress:
        return (await self.get_batch_job(user_id, job_id)).progress

    async def run_batch_job(self, user_id: str, job_id: str) -> BatchJob:
        """Dispatch a job and wait for it. A job already running is joined."""
        running = self._batch_tasks.get(job_id)
        if running is None:
            running = await self.start_batch_job(user_id, job_id)
        return await running

    async def start_batch_job(self, user_id: str, job_id: str) -> asyncio.Task:
        """Dispatch a job in the background and return its task."""
        job = await self.get_batch_job(user_id, job_id)

        running = self._batch_tasks.get(job_id)
        if running is not None and not running.done():
            return running

        task = asyncio.create_task(self.dispatcher.run(job), name=f"batch-{job_id}")
        self._batch_tasks[job_id] = task
        task.add_done_callback(lambda _: self._batch_tasks.pop(job_id, None))
        return task

    async def cancel_batch_job(self, user_id: str, job_id: str) -> BatchJob:
        """
        Stop a running job after its current recipient, or mark an idle
        unfinished job cancelled.
        """
        job = await self.get_batch_job(user_id, job_id)

        task = self._batch_tasks.get(job_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
            job = await self.get_batch_job(user_id, job_id)

        # A task cancelled before its first step never persisted anything
        if job.status in (BatchJobStatus.PENDING, BatchJobStatus.IN_PROGRESS):
            job.status = BatchJobStatus.CANCELLED
            await self.store.update_batch_progress(job)
            logger.info("Batch job cancelled", job_id=job_id, **job.progress.to_dict())
        return job

    def is_batch_running(self, job_id: str) -> bool:
        task = self._batch_tasks.get(job_id)
        return task is not None and not task.done()

    async def shutdown(self) -> None:
        """Cancel running batch jobs; each persists its progress before stopping."""
        running = [task for task in self._batch_tasks.values() if not task.done()]
        if not running:
            return
        for task in running:
            task.cancel()
        await asyncio.wait(running)
        logger.info("Batch jobs stopped for shutdown", count=len(running))


_automation_service: AutomationService | None = None


def get_automation_service() -> AutomationService:
    """Process-wide service on the Postgres store and configured actuators."""
    global _automation_service
    if _automation_service is None:
        _automation_service = AutomationService(PostgresAutomationStore(), build_default_registry())
        logger.info("Automation service initialized", **settings.get_engine_config())
    return _automation_service


async def shutdown_automation_service() -> None:
    if _automation_service is not None:
        await _automation_service.shutdown()
