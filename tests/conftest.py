import asyncio
import copy
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from app.auth.verify import auth_dependency
from app.features.automation.actuators import ActuatorRegistry
from app.features.automation.context import ContextStore
from app.features.automation.domain import (
    BatchJob,
    BatchProgress,
    BatchRecipient,
    ContextSnapshot,
    ExecutionRecord,
    OpenAppAction,
    SendMessageAction,
    Trigger,
    TriggerKind,
)
from app.features.automation.pipeline import ExecutionPipeline
from app.features.automation.repository.store import AutomationStoreError
from app.features.automation.scheduler import TriggerScheduler
from app.features.automation.services import AutomationService

# Monday 07:00 UTC
NOW = datetime(2026, 10, 19, 7, 0, tzinfo=UTC)
USER_ID = "user-123"


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": USER_ID}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class FakeClock:
    """Virtual time: sleeps advance the clock instantly but still yield."""

    def __init__(self, start: datetime = NOW):
        self.current = start
        self._monotonic = 1000.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self._monotonic += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class FakeStore:
    """In-memory AutomationStore. Reads and writes copy, like a database would."""

    def __init__(self):
        self.triggers: dict[str, Trigger] = {}
        self.executions: dict[str, ExecutionRecord] = {}
        self.contexts: dict[str, ContextSnapshot] = {}
        self.batch_jobs: dict[str, BatchJob] = {}
        self.progress_writes: list[dict] = []
        self.trigger_writes: list[Trigger] = []
        self.fail_on: set[str] = set()
        self._execution_seq = 0

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise AutomationStoreError(f"{operation} unavailable", operation=operation)

    # Triggers
    async def insert_trigger(self, trigger: Trigger) -> Trigger:
        self._check("insert_trigger")
        self.triggers[trigger.id] = copy.deepcopy(trigger)
        return copy.deepcopy(trigger)

    async def get_trigger(self, user_id: str, trigger_id: str) -> Trigger | None:
        self._check("get_trigger")
        trigger = self.triggers.get(trigger_id)
        if trigger is None or trigger.user_id != user_id:
            return None
        return copy.deepcopy(trigger)

    async def list_triggers(self, user_id: str) -> list[Trigger]:
        self._check("list_triggers")
        return [copy.deepcopy(t) for t in self.triggers.values() if t.user_id == user_id]

    async def list_active_triggers(self) -> list[Trigger]:
        self._check("list_active_triggers")
        return [copy.deepcopy(t) for t in self.triggers.values() if t.is_active]

    async def update_trigger(self, trigger: Trigger) -> Trigger:
        self._check("update_trigger")
        saved = copy.deepcopy(trigger)
        current = self.triggers.get(trigger.id)
        # Firing stamps are only ever written by mark_trigger_fired
        saved.last_triggered_at = current.last_triggered_at if current else None
        self.triggers[trigger.id] = saved
        self.trigger_writes.append(copy.deepcopy(saved))
        return copy.deepcopy(saved)

    async def mark_trigger_fired(self, user_id: str, trigger_id: str, fired_at: datetime) -> bool:
        self._check("mark_trigger_fired")
        trigger = self.triggers.get(trigger_id)
        if trigger is None or trigger.user_id != user_id:
            return False
        trigger.last_triggered_at = fired_at
        return True

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
        self._check("reschedule_trigger")
        trigger = self.triggers.get(trigger_id)
        if trigger is None or trigger.user_id != user_id or trigger.fire_time != fire_time:
            return False
        if next_trigger_at is not None:
            trigger.next_trigger_at = next_trigger_at
        if deactivate:
            trigger.is_active = False
        if delay_count is None:
            trigger.metadata.pop("delay_count", None)
        else:
            trigger.metadata["delay_count"] = delay_count
        self.trigger_writes.append(copy.deepcopy(trigger))
        return True

    async def delete_trigger(self, user_id: str, trigger_id: str) -> bool:
        self._check("delete_trigger")
        trigger = self.triggers.get(trigger_id)
        if trigger is None or trigger.user_id != user_id:
            return False
        del self.triggers[trigger_id]
        return True

    # Execution records
    async def insert_execution(self, record: ExecutionRecord) -> ExecutionRecord:
        self._check("insert_execution")
        self._execution_seq += 1
        saved = replace(record, id=f"exec-{self._execution_seq}", actions_performed=[])
        self.executions[saved.id] = copy.deepcopy(saved)
        return saved

    async def complete_execution(self, record: ExecutionRecord) -> ExecutionRecord:
        self._check("complete_execution")
        if record.id is None:
            return await self.insert_execution(record)
        self.executions[record.id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def list_executions(
        self, user_id: str, trigger_id: str | None = None, limit: int = 50
    ) -> list[ExecutionRecord]:
        self._check("list_executions")
        records = [
            r
            for r in self.executions.values()
            if r.user_id == user_id and (trigger_id is None or r.trigger_id == trigger_id)
        ]
        return copy.deepcopy(records[::-1][:limit])

    # Context
    async def get_context(self, user_id: str) -> ContextSnapshot | None:
        self._check("get_context")
        snapshot = self.contexts.get(user_id)
        return copy.deepcopy(snapshot) if snapshot else None

    async def upsert_context_fields(self, user_id: str, fields: dict) -> ContextSnapshot:
        self._check("upsert_context_fields")
        current = self.contexts.get(user_id) or ContextSnapshot()
        self.contexts[user_id] = replace(current, **fields, updated_at=NOW)
        return copy.deepcopy(self.contexts[user_id])

    # Batch jobs
    async def insert_batch_job(self, job: BatchJob) -> BatchJob:
        self._check("insert_batch_job")
        self.batch_jobs[job.id] = copy.deepcopy(job)
        return copy.deepcopy(job)

    async def get_batch_job(self, user_id: str, job_id: str) -> BatchJob | None:
        self._check("get_batch_job")
        job = self.batch_jobs.get(job_id)
        if job is None or job.user_id != user_id:
            return None
        return copy.deepcopy(job)

    async def list_batch_jobs(self, user_id: str) -> list[BatchJob]:
        self._check("list_batch_jobs")
        return [copy.deepcopy(j) for j in self.batch_jobs.values() if j.user_id == user_id]

    async def update_batch_progress(self, job: BatchJob) -> None:
        self._check("update_batch_progress")
        self.batch_jobs[job.id] = copy.deepcopy(job)
        self.progress_writes.append({**job.progress.to_dict(), "status": job.status.value})


class RecordingActuator:
    """Records every action; fails for configured targets or kinds."""

    def __init__(self):
        self.performed: list = []
        self.fail_targets: set[str] = set()
        self.fail_kinds: set = set()
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def perform(self, action) -> None:
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if action.kind in self.fail_kinds or getattr(action, "target", None) in self.fail_targets:
            raise RuntimeError(f"{action.kind.value} rejected")
        self.performed.append(action)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def actuator():
    return RecordingActuator()


@pytest.fixture
def registry(actuator):
    registry = ActuatorRegistry(timeout_seconds=5)
    registry.register_all(actuator)
    return registry


@pytest.fixture
def context_store(fake_store):
    return ContextStore(fake_store)


@pytest.fixture
def pipeline(fake_store, context_store, registry, fake_clock):
    return ExecutionPipeline(fake_store, context_store, registry, fake_clock, pacing_seconds=0.5)


@pytest.fixture
def scheduler(fake_store, context_store, pipeline, fake_clock):
    return TriggerScheduler(
        fake_store,
        context_store,
        pipeline,
        fake_clock,
        tick_seconds=60,
        lookahead_minutes=5,
        missed_grace_minutes=30,
    )


@pytest.fixture
def service(fake_store, registry, fake_clock):
    return AutomationService(fake_store, registry, fake_clock)


@pytest.fixture
def make_trigger():
    def _make(**overrides) -> Trigger:
        values = {
            "id": "trigger-1",
            "user_id": USER_ID,
            "title": "Morning routine",
            "kind": TriggerKind.TIME_BASED,
            "scheduled_at": NOW + timedelta(minutes=2),
            "actions": [
                SendMessageAction(target="+15550001", content="Good morning"),
                OpenAppAction(app_id="spotify"),
            ],
        }
        values.update(overrides)
        return Trigger(**values)

    return _make


@pytest.fixture
def make_batch_job():
    def _make(names=("Ana", "Ben", "Cy"), **overrides) -> BatchJob:
        recipients = [
            BatchRecipient(name=name, identifier=f"+1555{i:04d}") for i, name in enumerate(names)
        ]
        values = {
            "id": "job-1",
            "user_id": USER_ID,
            "title": "Birthday wishes",
            "recipients": recipients,
            "message_template": "Hi {name}!",
            "platform": "whatsapp",
            "progress": BatchProgress(total=len(recipients)),
        }
        values.update(overrides)
        return BatchJob(**values)

    return _make
