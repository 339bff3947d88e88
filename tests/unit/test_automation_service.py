"""
Tests for AutomationService: trigger lifecycle, user scoping, snooze / skip,
context and batch-job orchestration.
"""

import asyncio
from datetime import timedelta

import pytest

from app.features.automation.domain import (
    BatchJobStatus,
    ContextSnapshot,
    EnergyLevel,
    ExecutionStatus,
)
from app.features.automation.domain.errors import (
    BatchJobConfigurationError,
    BatchJobNotFoundError,
    ContextUpdateError,
    TriggerConfigurationError,
    TriggerNotFoundError,
)
from app.features.automation.services import SNOOZE_OPTIONS_MINUTES
from tests.conftest import NOW, USER_ID

RECIPIENTS = [
    {"name": "Ana", "identifier": "+15550000"},
    {"name": "Ben", "identifier": "+15550001"},
    {"name": "Cy", "identifier": "+15550002"},
]


def _payload(**overrides):
    payload = {
        "title": "Morning run",
        "scheduled_at": (NOW + timedelta(minutes=3)).isoformat(),
        "actions": [
            {"type": "play_music", "content": "running mix"},
            {"type": "open_app", "appId": "strava"},
        ],
        "conditions": {"quietHoursRespect": True},
    }
    payload.update(overrides)
    return payload


class TestTriggers:
    @pytest.mark.asyncio
    async def test_create_and_get(self, service, fake_store):
        created = await service.create_trigger(USER_ID, _payload())

        assert created.id in fake_store.triggers
        fetched = await service.get_trigger(USER_ID, created.id)
        assert fetched.title == "Morning run"
        assert fetched.conditions.quiet_hours_respect is True
        assert len(fetched.actions) == 2

    @pytest.mark.asyncio
    async def test_invalid_definition_stores_nothing(self, service, fake_store):
        with pytest.raises(TriggerConfigurationError):
            await service.create_trigger(USER_ID, _payload(actions=[{"type": "teleport"}]))

        assert fake_store.triggers == {}

    @pytest.mark.asyncio
    async def test_other_users_trigger_is_not_found(self, service):
        created = await service.create_trigger("someone-else", _payload())

        with pytest.raises(TriggerNotFoundError):
            await service.get_trigger(USER_ID, created.id)
        with pytest.raises(TriggerNotFoundError):
            await service.delete_trigger(USER_ID, created.id)
        assert await service.list_triggers(USER_ID) == []

    @pytest.mark.asyncio
    async def test_update(self, service):
        created = await service.create_trigger(USER_ID, _payload())

        updated = await service.update_trigger(USER_ID, created.id, {"priority": 9})

        assert updated.priority == 9
        assert (await service.get_trigger(USER_ID, created.id)).priority == 9

    @pytest.mark.asyncio
    async def test_delete(self, service):
        created = await service.create_trigger(USER_ID, _payload())

        await service.delete_trigger(USER_ID, created.id)

        with pytest.raises(TriggerNotFoundError):
            await service.get_trigger(USER_ID, created.id)

    @pytest.mark.asyncio
    async def test_list_due(self, service):
        due = await service.create_trigger(USER_ID, _payload())
        await service.create_trigger(
            USER_ID, _payload(scheduled_at=(NOW + timedelta(hours=2)).isoformat())
        )

        result = await service.list_due_triggers(USER_ID)

        assert [t.id for t in result] == [due.id]

    @pytest.mark.asyncio
    async def test_fire_runs_actions(self, service, actuator):
        created = await service.create_trigger(USER_ID, _payload())

        result = await service.fire_trigger(USER_ID, created.id)

        assert result.outcome == "executed"
        assert result.record.status == ExecutionStatus.COMPLETED
        assert len(actuator.performed) == 2
        executions = await service.list_executions(USER_ID, trigger_id=created.id)
        assert [e.id for e in executions] == [result.record.id]

    @pytest.mark.asyncio
    async def test_list_executions_checks_trigger_ownership(self, service):
        with pytest.raises(TriggerNotFoundError):
            await service.list_executions(USER_ID, trigger_id="missing")


class TestSnoozeAndSkip:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("minutes", SNOOZE_OPTIONS_MINUTES)
    async def test_snooze(self, service, minutes):
        created = await service.create_trigger(USER_ID, _payload())

        snoozed = await service.snooze_trigger(USER_ID, created.id, minutes)

        assert snoozed.next_trigger_at == NOW + timedelta(minutes=minutes)
        assert snoozed.is_active is True

    @pytest.mark.asyncio
    async def test_snooze_rejects_other_durations(self, service):
        created = await service.create_trigger(USER_ID, _payload())

        with pytest.raises(TriggerConfigurationError) as exc:
            await service.snooze_trigger(USER_ID, created.id, 7)
        assert exc.value.field == "minutes"

    @pytest.mark.asyncio
    async def test_snooze_reactivates_dismissed_trigger(self, service):
        created = await service.create_trigger(USER_ID, _payload())
        await service.skip_trigger(USER_ID, created.id)

        snoozed = await service.snooze_trigger(USER_ID, created.id, 5)

        assert snoozed.is_active is True

    @pytest.mark.asyncio
    async def test_skip(self, service, actuator):
        created = await service.create_trigger(USER_ID, _payload())

        skipped = await service.skip_trigger(USER_ID, created.id)

        assert skipped.is_active is False
        assert await service.list_due_triggers(USER_ID) == []
        assert actuator.performed == []


class TestContext:
    @pytest.mark.asyncio
    async def test_update_and_read(self, service):
        await service.update_context(USER_ID, {"current_energy": "low", "burnout_score": 4})

        snapshot = await service.get_context(USER_ID)

        assert snapshot.current_energy == EnergyLevel.LOW
        assert snapshot.burnout_score == 4.0

    @pytest.mark.asyncio
    async def test_invalid_update(self, service):
        with pytest.raises(ContextUpdateError):
            await service.update_context(USER_ID, {"burnout_score": "very"})

    @pytest.mark.asyncio
    async def test_default_snapshot(self, service):
        assert await service.get_context(USER_ID) == ContextSnapshot(updated_at=NOW)


class TestBatchJobs:
    @pytest.mark.asyncio
    async def test_create(self, service):
        job = await service.create_batch_job(USER_ID, "Birthdays", RECIPIENTS, "Hi {name}!")

        assert job.status == BatchJobStatus.PENDING
        assert job.platform == "whatsapp"
        assert job.progress.to_dict() == {"sent": 0, "failed": 0, "total": 3}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "title,recipients,template",
        [
            ("Birthdays", [], "Hi {name}!"),
            ("  ", RECIPIENTS, "Hi {name}!"),
            ("Birthdays", RECIPIENTS, ""),
        ],
    )
    async def test_create_rejects_malformed(self, service, fake_store, title, recipients, template):
        with pytest.raises(BatchJobConfigurationError):
            await service.create_batch_job(USER_ID, title, recipients, template)

        assert fake_store.batch_jobs == {}

    @pytest.mark.asyncio
    async def test_run_to_completion(self, service, actuator):
        actuator.fail_targets.add("+15550001")
        job = await service.create_batch_job(USER_ID, "Birthdays", RECIPIENTS, "Hi {name}!")

        finished = await service.run_batch_job(USER_ID, job.id)

        assert finished.status == BatchJobStatus.COMPLETED
        progress = await service.get_progress(USER_ID, job.id)
        assert progress.to_dict() == {"sent": 2, "failed": 1, "total": 3}
        assert service.is_batch_running(job.id) is False

    @pytest.mark.asyncio
    async def test_rerun_of_completed_job_sends_nothing(self, service, actuator):
        job = await service.create_batch_job(USER_ID, "Birthdays", RECIPIENTS, "Hi {name}!")
        await service.run_batch_job(USER_ID, job.id)
        actuator.performed.clear()

        await service.run_batch_job(USER_ID, job.id)

        assert actuator.performed == []

    @pytest.mark.asyncio
    async def test_cancel_running_job(self, service, actuator):
        actuator.gate = asyncio.Event()
        job = await service.create_batch_job(USER_ID, "Birthdays", RECIPIENTS, "Hi {name}!")

        await service.start_batch_job(USER_ID, job.id)
        await actuator.started.wait()
        assert service.is_batch_running(job.id) is True

        cancelling = asyncio.create_task(service.cancel_batch_job(USER_ID, job.id))
        await asyncio.sleep(0)
        actuator.gate.set()
        cancelled = await cancelling

        assert cancelled.status == BatchJobStatus.CANCELLED
        assert cancelled.progress.to_dict() == {"sent": 1, "failed": 0, "total": 3}
        assert service.is_batch_running(job.id) is False

    @pytest.mark.asyncio
    async def test_cancel_idle_job(self, service):
        job = await service.create_batch_job(USER_ID, "Birthdays", RECIPIENTS, "Hi {name}!")

        cancelled = await service.cancel_batch_job(USER_ID, job.id)

        assert cancelled.status == BatchJobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_before_first_step(self, service, fake_store):
        job = await service.create_batch_job(USER_ID, "Birthdays", RECIPIENTS, "Hi {name}!")

        await service.start_batch_job(USER_ID, job.id)
        cancelled = await service.cancel_batch_job(USER_ID, job.id)

        assert cancelled.status == BatchJobStatus.CANCELLED
        assert fake_store.batch_jobs[job.id].status == BatchJobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_other_users_job_is_not_found(self, service):
        job = await service.create_batch_job("someone-else", "Birthdays", RECIPIENTS, "Hi {name}!")

        with pytest.raises(BatchJobNotFoundError):
            await service.get_progress(USER_ID, job.id)

    @pytest.mark.asyncio
    async def test_shutdown_stops_running_jobs(self, service, actuator, fake_store):
        actuator.gate = asyncio.Event()
        job = await service.create_batch_job(USER_ID, "Birthdays", RECIPIENTS, "Hi {name}!")
        await service.start_batch_job(USER_ID, job.id)
        await actuator.started.wait()

        stopping = asyncio.create_task(service.shutdown())
        await asyncio.sleep(0)
        actuator.gate.set()
        await stopping

        assert service.is_batch_running(job.id) is False
        assert fake_store.batch_jobs[job.id].status == BatchJobStatus.CANCELLED
        assert fake_store.batch_jobs[job.id].progress.sent == 1

    @pytest.mark.asyncio
    async def test_shutdown_without_jobs(self, service):
        await service.shutdown()
