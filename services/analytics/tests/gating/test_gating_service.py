from uuid import uuid4

import pytest

from app.gating import service
from app.gating.exceptions import (
    ABTestNotFound,
    ABTestTransitionError,
    AllocationError,
    DuplicateName,
    FlagNotFound,
)
from app.models.enums import ABTestStatus, FeatureFlagStatus

CONTROL = {"name": "Current Layout", "description": "Image on top", "percentage": 50}
VARIANT = {"name": "New Layout", "description": "Image on the side", "percentage": 50}


# ---------------------------------------------------------------------------
# Feature flags
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_flag_defaults(db_session) -> None:
    flag = await service.create_flag("recipe_sharing", db_session)
    assert flag.status == FeatureFlagStatus.DISABLED
    assert flag.rollout_percentage == 0
    assert flag.platforms == ["all"]
    assert flag.anonymous_safe is False
    assert flag.created_at is not None


@pytest.mark.asyncio
async def test_create_flag_duplicate_name_raises(db_session) -> None:
    await service.create_flag("dark_mode", db_session)
    with pytest.raises(DuplicateName):
        await service.create_flag("dark_mode", db_session)


@pytest.mark.asyncio
async def test_create_flag_rejects_out_of_range_rollout(db_session) -> None:
    with pytest.raises(AllocationError):
        await service.create_flag("too_much", db_session, rollout_percentage=101)


@pytest.mark.asyncio
async def test_get_flag_by_name_and_missing(db_session) -> None:
    created = await service.create_flag("nutrition_panel", db_session, platforms=["ios"])
    found = await service.get_flag_by_name("nutrition_panel", db_session)
    assert found is not None and found.flag_id == created.flag_id
    assert await service.get_flag_by_name("nope", db_session) is None
    with pytest.raises(FlagNotFound):
        await service.get_flag(uuid4(), db_session)


@pytest.mark.asyncio
async def test_update_flag_applies_non_null_fields(db_session) -> None:
    flag = await service.create_flag("smart_search", db_session)
    updated = await service.update_flag(
        flag.flag_id,
        {"status": FeatureFlagStatus.PERCENTAGE_ROLLOUT, "rollout_percentage": 30, "description": None},
        db_session,
    )
    assert updated.status == FeatureFlagStatus.PERCENTAGE_ROLLOUT
    assert updated.rollout_percentage == 30
    assert updated.description == ""


@pytest.mark.asyncio
async def test_list_and_delete_flags(db_session) -> None:
    b = await service.create_flag("b_flag", db_session)
    await service.create_flag("a_flag", db_session)
    assert [f.name for f in await service.list_flags(db_session)] == ["a_flag", "b_flag"]

    assert await service.delete_flag(b.flag_id, db_session) == "b_flag"
    assert [f.name for f in await service.list_flags(db_session)] == ["a_flag"]


# ---------------------------------------------------------------------------
# A/B tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_ab_test_validates_allocation(db_session) -> None:
    with pytest.raises(AllocationError):
        await service.create_ab_test(
            "recipe_card_layout", CONTROL, {**VARIANT, "percentage": 40}, db_session
        )


@pytest.mark.asyncio
async def test_create_and_lookup_active_test(db_session) -> None:
    test = await service.create_ab_test(
        "recipe_card_layout", CONTROL, VARIANT, db_session, metrics=["recipe_saves"]
    )
    assert test.status == ABTestStatus.ACTIVE
    assert test.metrics == ["recipe_saves"]

    active = await service.get_active_ab_test_by_name("recipe_card_layout", db_session)
    assert active is not None and active.test_id == test.test_id

    await service.pause_ab_test(test.test_id, db_session)
    assert await service.get_active_ab_test_by_name("recipe_card_layout", db_session) is None
    assert await service.get_ab_test_by_name("recipe_card_layout", db_session) is not None


@pytest.mark.asyncio
async def test_lifecycle_transitions(db_session) -> None:
    test = await service.create_ab_test("search_placement", CONTROL, VARIANT, db_session)

    paused = await service.pause_ab_test(test.test_id, db_session)
    assert paused.status == ABTestStatus.PAUSED
    with pytest.raises(ABTestTransitionError):
        await service.pause_ab_test(test.test_id, db_session)

    resumed = await service.resume_ab_test(test.test_id, db_session)
    assert resumed.status == ABTestStatus.ACTIVE

    completed = await service.complete_ab_test(test.test_id, db_session)
    assert completed.status == ABTestStatus.COMPLETED
    with pytest.raises(ABTestTransitionError):
        await service.resume_ab_test(test.test_id, db_session)
    with pytest.raises(ABTestTransitionError):
        await service.update_ab_test(test.test_id, {"description": "late edit"}, db_session)


@pytest.mark.asyncio
async def test_update_ab_test_revalidates_groups(db_session) -> None:
    test = await service.create_ab_test("ingredient_display", CONTROL, VARIANT, db_session)
    with pytest.raises(AllocationError):
        await service.update_ab_test(
            test.test_id, {"variant_group": {**VARIANT, "percentage": 70}}, db_session
        )


@pytest.mark.asyncio
async def test_delete_missing_ab_test_raises(db_session) -> None:
    with pytest.raises(ABTestNotFound):
        await service.delete_ab_test(uuid4(), db_session)
