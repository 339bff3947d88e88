"""
End-to-end flow through the HTTP surface and the scheduler job, on the
in-memory store and a virtual clock.
"""

import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.features.automation.api.router import router
from app.features.automation.jobs import TriggerSchedulerJob
from app.features.automation.services import get_automation_service
from tests.conftest import NOW, USER_ID


@pytest.fixture
def api(apply_auth_override, service):
    app = FastAPI()
    app.include_router(router)
    apply_auth_override(app)
    app.dependency_overrides[get_automation_service] = lambda: service
    return TestClient(app)


def _create_daily_trigger(api, **overrides) -> dict:
    body = {
        "title": "Wake up",
        "scheduled_at": (NOW + timedelta(minutes=2)).isoformat(),
        "repeat_pattern": "daily",
        "autonomy_level": "C",
        "execution_mode": "silent_execute",
        "actions": [
            {"type": "play_music", "content": "morning mix"},
            {"type": "send_message", "target": "+15550001", "content": "Up and running"},
        ],
    }
    body.update(overrides)
    response = api.post("/automation/triggers", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_scheduled_firing_runs_and_advances(api, service, actuator):
    trigger = _create_daily_trigger(api)
    job = TriggerSchedulerJob(service=service)

    metrics = asyncio.run(job.run_once(NOW))

    assert metrics["executed"] == 1
    assert len(actuator.performed) == 2

    fetched = api.get(f"/automation/triggers/{trigger['id']}").json()
    assert fetched["is_active"] is True
    assert datetime.fromisoformat(fetched["next_trigger_at"]) == NOW + timedelta(
        days=1, minutes=2
    )

    executions = api.get("/automation/executions").json()["executions"]
    assert len(executions) == 1
    assert executions[0]["status"] == "completed"
    assert executions[0]["execution_mode"] == "silent_execute"


def test_burnout_suppresses_until_context_recovers(api, service, actuator):
    trigger = _create_daily_trigger(api, conditions={"burnoutThreshold": 6})
    api.patch("/automation/context", json={"burnout_score": 8})

    suppressed = api.post(f"/automation/triggers/{trigger['id']}/fire").json()
    api.patch("/automation/context", json={"burnout_score": 2})
    executed = api.post(f"/automation/triggers/{trigger['id']}/fire").json()

    assert suppressed["outcome"] == "suppressed"
    assert executed["outcome"] == "executed"
    assert executed["mode"] == "silent_execute"
    assert len(actuator.performed) == 2
    assert api.get("/automation/executions").json()["total_count"] == 1


def test_low_energy_delays_scheduled_firing(api, service, actuator):
    trigger = _create_daily_trigger(api, priority=5)
    api.patch("/automation/context", json={"current_energy": "low"})
    job = TriggerSchedulerJob(service=service)

    metrics = asyncio.run(job.run_once(NOW))

    assert metrics["delayed"] == 1
    assert actuator.performed == []
    fetched = api.get(f"/automation/triggers/{trigger['id']}").json()
    assert datetime.fromisoformat(fetched["next_trigger_at"]) == NOW + timedelta(minutes=5)


def test_batch_job_reports_progress(api, service, actuator):
    actuator.fail_targets.add("+15550001")
    created = api.post(
        "/automation/batch-jobs",
        json={
            "title": "Thank-you notes",
            "recipients": [
                {"name": "Ana", "identifier": "+15550000"},
                {"name": "Ben", "identifier": "+15550001"},
            ],
            "message_template": "Thanks {name}!",
        },
    ).json()

    asyncio.run(service.run_batch_job(USER_ID, created["id"]))

    progress = api.get(f"/automation/batch-jobs/{created['id']}/progress").json()
    assert progress == {
        "sent": 1,
        "failed": 1,
        "total": 2,
        "status": "completed",
        "is_running": False,
    }
    assert [a.content for a in actuator.performed] == ["Thanks Ana!"]
