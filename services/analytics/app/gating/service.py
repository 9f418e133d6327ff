"""Gating config service — pure business logic, no FastAPI imports.

Key responsibilities:
- FeatureFlag CRUD (unique names, rollout 0..100)
- ABTest CRUD + lifecycle transitions (pause / resume / complete)
- Name lookups used by the AssignmentEngine

Last writer wins; there is no optimistic concurrency on updates.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.gating.exceptions import (
    ABTestNotFound,
    ABTestTransitionError,
    AllocationError,
    DuplicateName,
    FlagNotFound,
)
from app.models.enums import ALL_PLATFORMS, ABTestStatus, FeatureFlagStatus
from app.models.gating import ABTest, FeatureFlag

# Valid transitions for pause/resume/complete
_PAUSE_FROM = {ABTestStatus.ACTIVE}
_RESUME_FROM = {ABTestStatus.PAUSED}
_COMPLETE_FROM = {ABTestStatus.ACTIVE, ABTestStatus.PAUSED}


async def _flush_unique(db: AsyncSession, kind: str, name: str) -> None:
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise DuplicateName(f"{kind} with name '{name}' already exists.")


# ===========================================================================
# FeatureFlag CRUD
# ===========================================================================


def _validate_rollout(rollout_percentage: int) -> None:
    if not 0 <= rollout_percentage <= 100:
        raise AllocationError(
            f"rollout_percentage must be between 0 and 100, got {rollout_percentage}."
        )


async def create_flag(
    name: str,
    db: AsyncSession,
    description: str = "",
    status: FeatureFlagStatus = FeatureFlagStatus.DISABLED,
    rollout_percentage: int = 0,
    platforms: list[str] | None = None,
    anonymous_safe: bool = False,
) -> FeatureFlag:
    _validate_rollout(rollout_percentage)
    flag = FeatureFlag(
        name=name,
        description=description,
        status=status,
        rollout_percentage=rollout_percentage,
        platforms=list(platforms or [ALL_PLATFORMS]),
        anonymous_safe=anonymous_safe,
    )
    db.add(flag)
    await _flush_unique(db, "Feature flag", name)
    await db.refresh(flag)
    return flag


async def list_flags(db: AsyncSession) -> list[FeatureFlag]:
    result = await db.execute(select(FeatureFlag).order_by(FeatureFlag.name.asc()))
    return list(result.scalars().all())


async def get_flag(flag_id: UUID, db: AsyncSession) -> FeatureFlag:
    flag = await db.get(FeatureFlag, flag_id)
    if flag is None:
        raise FlagNotFound(flag_id)
    return flag


async def get_flag_by_name(name: str, db: AsyncSession) -> FeatureFlag | None:
    result = await db.execute(select(FeatureFlag).where(FeatureFlag.name == name))
    return result.scalar_one_or_none()


async def update_flag(flag_id: UUID, updates: dict[str, Any], db: AsyncSession) -> FeatureFlag:
    flag = await get_flag(flag_id, db)
    if updates.get("rollout_percentage") is not None:
        _validate_rollout(updates["rollout_percentage"])
    for key, value in updates.items():
        if value is not None:
            setattr(flag, key, value)
    await _flush_unique(db, "Feature flag", flag.name)
    await db.refresh(flag)
    return flag


async def delete_flag(flag_id: UUID, db: AsyncSession) -> str:
    """Delete a flag; returns its name so callers can drop cached copies."""
    flag = await get_flag(flag_id, db)
    name = flag.name
    await db.delete(flag)
    await db.flush()
    return name


# ===========================================================================
# ABTest CRUD
# ===========================================================================


def _validate_groups(control_group: dict, variant_group: dict) -> None:
    total = control_group.get("percentage", 0) + variant_group.get("percentage", 0)
    if total != 100:
        raise AllocationError(
            f"control_group + variant_group percentages must sum to 100, got {total}."
        )


async def create_ab_test(
    name: str,
    control_group: dict,
    variant_group: dict,
    db: AsyncSession,
    description: str = "",
    status: ABTestStatus = ABTestStatus.ACTIVE,
    metrics: list[str] | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> ABTest:
    _validate_groups(control_group, variant_group)
    test = ABTest(
        name=name,
        description=description,
        status=status,
        control_group=control_group,
        variant_group=variant_group,
        metrics=list(metrics or []),
        start_date=start_date,
        end_date=end_date,
    )
    db.add(test)
    await _flush_unique(db, "A/B test", name)
    await db.refresh(test)
    return test


async def list_ab_tests(db: AsyncSession) -> list[ABTest]:
    result = await db.execute(select(ABTest).order_by(ABTest.created_at.desc()))
    return list(result.scalars().all())


async def get_ab_test(test_id: UUID, db: AsyncSession) -> ABTest:
    test = await db.get(ABTest, test_id)
    if test is None:
        raise ABTestNotFound(test_id)
    return test


async def get_ab_test_by_name(name: str, db: AsyncSession) -> ABTest | None:
    result = await db.execute(select(ABTest).where(ABTest.name == name))
    return result.scalar_one_or_none()


async def get_active_ab_test_by_name(name: str, db: AsyncSession) -> ABTest | None:
    result = await db.execute(
        select(ABTest).where(ABTest.name == name, ABTest.status == ABTestStatus.ACTIVE)
    )
    return result.scalar_one_or_none()


async def update_ab_test(test_id: UUID, updates: dict[str, Any], db: AsyncSession) -> ABTest:
    test = await get_ab_test(test_id, db)
    if test.status == ABTestStatus.COMPLETED:
        raise ABTestTransitionError("Completed A/B tests cannot be updated.")
    control = updates.get("control_group") or test.control_group
    variant = updates.get("variant_group") or test.variant_group
    _validate_groups(control, variant)
    for key, value in updates.items():
        if value is not None:
            setattr(test, key, value)
    await _flush_unique(db, "A/B test", test.name)
    await db.refresh(test)
    return test


async def delete_ab_test(test_id: UUID, db: AsyncSession) -> str:
    test = await get_ab_test(test_id, db)
    name = test.name
    await db.delete(test)
    await db.flush()
    return name


# ===========================================================================
# ABTest lifecycle
# ===========================================================================


async def _transition(
    test_id: UUID,
    allowed_from: set[ABTestStatus],
    target: ABTestStatus,
    verb: str,
    db: AsyncSession,
) -> ABTest:
    test = await get_ab_test(test_id, db)
    if test.status not in allowed_from:
        allowed = ", ".join(sorted(s.value.upper() for s in allowed_from))
        raise ABTestTransitionError(
            f"Cannot {verb} A/B test in status '{test.status.value}'. Allowed: {allowed}."
        )
    test.status = target
    await db.flush()
    await db.refresh(test)
    return test


async def pause_ab_test(test_id: UUID, db: AsyncSession) -> ABTest:
    return await _transition(test_id, _PAUSE_FROM, ABTestStatus.PAUSED, "pause", db)


async def resume_ab_test(test_id: UUID, db: AsyncSession) -> ABTest:
    return await _transition(test_id, _RESUME_FROM, ABTestStatus.ACTIVE, "resume", db)


async def complete_ab_test(test_id: UUID, db: AsyncSession) -> ABTest:
    return await _transition(test_id, _COMPLETE_FROM, ABTestStatus.COMPLETED, "complete", db)
