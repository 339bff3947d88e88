import pytest

from app.features.automation.domain import ContextSnapshot, EnergyLevel
from app.features.automation.domain.errors import ContextUpdateError
from tests.conftest import USER_ID


@pytest.mark.asyncio
async def test_first_read_creates_default_snapshot(context_store, fake_store):
    snapshot = await context_store.read(USER_ID)

    assert snapshot.burnout_score == 0.0
    assert snapshot.current_energy is None
    assert snapshot.active_focus_session is False
    assert USER_ID in fake_store.contexts


@pytest.mark.asyncio
async def test_upsert_merges_only_supplied_fields(context_store):
    await context_store.upsert(USER_ID, {"burnout_score": 7, "quiet_hours_active": True})
    snapshot = await context_store.upsert(USER_ID, {"current_energy": "low"})

    assert snapshot.burnout_score == 7.0
    assert snapshot.quiet_hours_active is True
    assert snapshot.current_energy == EnergyLevel.LOW


@pytest.mark.asyncio
async def test_last_write_wins_per_field(context_store):
    await context_store.upsert(USER_ID, {"stress_level": 2})
    await context_store.upsert(USER_ID, {"stress_level": 9})

    snapshot = await context_store.read(USER_ID)

    assert snapshot.stress_level == 9.0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "partial",
    [
        {"mood_ring": "blue"},
        {"burnout_score": "high"},
        {"burnout_score": True},
        {"active_focus_session": 1},
        {"current_energy": "exhausted"},
        {"current_mood": 3},
    ],
)
async def test_rejects_invalid_updates(context_store, fake_store, partial):
    with pytest.raises(ContextUpdateError):
        await context_store.upsert(USER_ID, partial)

    assert USER_ID not in fake_store.contexts


def test_merged_leaves_original_untouched():
    original = ContextSnapshot()

    merged = original.merged({"is_working": True})

    assert merged.is_working is True
    assert original.is_working is False


def test_to_dict_serializes_energy():
    snapshot = ContextSnapshot(current_energy=EnergyLevel.HIGH)

    assert snapshot.to_dict()["current_energy"] == "high"
    assert "updated_at" not in snapshot.to_dict()
