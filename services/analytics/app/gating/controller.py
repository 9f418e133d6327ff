"""Gating controller — converts service results to Pydantic responses,
catches domain exceptions and maps them to HTTPExceptions.

Every successful config write is committed before the engine's cached copy is
dropped, so the next evaluation in this process reads the new definition.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, NotFoundError, UnprocessableError
from app.gating import service
from app.gating.engine import AssignmentEngine
from app.gating.exceptions import (
    ABTestNotFound,
    ABTestTransitionError,
    AllocationError,
    DuplicateName,
    FlagNotFound,
)
from app.gating.schemas import (
    ABTestCreate,
    ABTestResponse,
    ABTestUpdate,
    ConversionIngest,
    FeatureFlagCreate,
    FeatureFlagResponse,
    FeatureFlagUpdate,
    FlagEvaluationResponse,
    VariantResponse,
)
from app.models.enums import Platform


# ---------------------------------------------------------------------------
# Client-facing evaluation
# ---------------------------------------------------------------------------


async def evaluate_flag(
    flag_name: str, subject_id: str, platform: Platform, engine: AssignmentEngine
) -> FlagEvaluationResponse:
    enabled = await engine.is_feature_enabled(flag_name, subject_id, platform)
    return FlagEvaluationResponse(flag_name=flag_name, platform=platform, enabled=enabled)


async def get_variant(
    test_name: str, subject_id: str, engine: AssignmentEngine
) -> VariantResponse:
    variant = await engine.get_variant(test_name, subject_id)
    return VariantResponse(test_name=test_name, variant=variant)


async def track_conversion(
    test_name: str, body: ConversionIngest, subject_id: str, engine: AssignmentEngine
) -> None:
    await engine.track_conversion(test_name, body.metric_name, body.value, subject_id)


# ---------------------------------------------------------------------------
# Feature flags
# ---------------------------------------------------------------------------


async def create_flag(
    body: FeatureFlagCreate, db: AsyncSession, engine: AssignmentEngine
) -> FeatureFlagResponse:
    try:
        flag = await service.create_flag(
            name=body.name,
            db=db,
            description=body.description,
            status=body.status,
            rollout_percentage=body.rollout_percentage,
            platforms=body.platforms,
            anonymous_safe=body.anonymous_safe,
        )
    except DuplicateName as exc:
        raise ConflictError(str(exc))
    except AllocationError as exc:
        raise UnprocessableError(str(exc))
    response = FeatureFlagResponse.model_validate(flag)
    await db.commit()
    engine.invalidate_flag(response.name)
    return response


async def list_flags(db: AsyncSession) -> list[FeatureFlagResponse]:
    flags = await service.list_flags(db)
    return [FeatureFlagResponse.model_validate(f) for f in flags]


async def get_flag(flag_id: UUID, db: AsyncSession) -> FeatureFlagResponse:
    try:
        flag = await service.get_flag(flag_id, db)
    except FlagNotFound as exc:
        raise NotFoundError(str(exc))
    return FeatureFlagResponse.model_validate(flag)


async def update_flag(
    flag_id: UUID, body: FeatureFlagUpdate, db: AsyncSession, engine: AssignmentEngine
) -> FeatureFlagResponse:
    updates = body.model_dump(exclude_none=True)
    try:
        previous_name = (await service.get_flag(flag_id, db)).name
        flag = await service.update_flag(flag_id, updates, db)
    except FlagNotFound as exc:
        raise NotFoundError(str(exc))
    except DuplicateName as exc:
        raise ConflictError(str(exc))
    except AllocationError as exc:
        raise UnprocessableError(str(exc))
    response = FeatureFlagResponse.model_validate(flag)
    await db.commit()
    engine.invalidate_flag(previous_name)
    engine.invalidate_flag(response.name)
    return response


async def delete_flag(flag_id: UUID, db: AsyncSession, engine: AssignmentEngine) -> None:
    try:
        name = await service.delete_flag(flag_id, db)
    except FlagNotFound as exc:
        raise NotFoundError(str(exc))
    await db.commit()
    engine.invalidate_flag(name)


# ---------------------------------------------------------------------------
# A/B tests
# ---------------------------------------------------------------------------


async def create_ab_test(
    body: ABTestCreate, db: AsyncSession, engine: AssignmentEngine
) -> ABTestResponse:
    try:
        test = await service.create_ab_test(
            name=body.name,
            control_group=body.control_group.model_dump(),
            variant_group=body.variant_group.model_dump(),
            db=db,
            description=body.description,
            status=body.status,
            metrics=body.metrics,
            start_date=body.start_date,
            end_date=body.end_date,
        )
    except DuplicateName as exc:
        raise ConflictError(str(exc))
    except AllocationError as exc:
        raise UnprocessableError(str(exc))
    response = ABTestResponse.model_validate(test)
    await db.commit()
    engine.invalidate_test(response.name)
    return response


async def list_ab_tests(db: AsyncSession) -> list[ABTestResponse]:
    tests = await service.list_ab_tests(db)
    return [ABTestResponse.model_validate(t) for t in tests]


async def get_ab_test(test_id: UUID, db: AsyncSession) -> ABTestResponse:
    try:
        test = await service.get_ab_test(test_id, db)
    except ABTestNotFound as exc:
        raise NotFoundError(str(exc))
    return ABTestResponse.model_validate(test)


async def update_ab_test(
    test_id: UUID, body: ABTestUpdate, db: AsyncSession, engine: AssignmentEngine
) -> ABTestResponse:
    updates = body.model_dump(exclude_none=True)
    try:
        previous_name = (await service.get_ab_test(test_id, db)).name
        test = await service.update_ab_test(test_id, updates, db)
    except ABTestNotFound as exc:
        raise NotFoundError(str(exc))
    except DuplicateName as exc:
        raise ConflictError(str(exc))
    except (ABTestTransitionError, AllocationError) as exc:
        raise UnprocessableError(str(exc))
    response = ABTestResponse.model_validate(test)
    await db.commit()
    engine.invalidate_test(previous_name)
    engine.invalidate_test(response.name)
    return response


async def delete_ab_test(test_id: UUID, db: AsyncSession, engine: AssignmentEngine) -> None:
    try:
        name = await service.delete_ab_test(test_id, db)
    except ABTestNotFound as exc:
        raise NotFoundError(str(exc))
    await db.commit()
    engine.invalidate_test(name)


async def _transition(transition, test_id: UUID, db: AsyncSession, engine: AssignmentEngine) -> ABTestResponse:
    try:
        test = await transition(test_id, db)
    except ABTestNotFound as exc:
        raise NotFoundError(str(exc))
    except ABTestTransitionError as exc:
        raise UnprocessableError(str(exc))
    response = ABTestResponse.model_validate(test)
    await db.commit()
    engine.invalidate_test(response.name)
    return response


async def pause_ab_test(test_id: UUID, db: AsyncSession, engine: AssignmentEngine) -> ABTestResponse:
    return await _transition(service.pause_ab_test, test_id, db, engine)


async def resume_ab_test(test_id: UUID, db: AsyncSession, engine: AssignmentEngine) -> ABTestResponse:
    return await _transition(service.resume_ab_test, test_id, db, engine)


async def complete_ab_test(
    test_id: UUID, db: AsyncSession, engine: AssignmentEngine
) -> ABTestResponse:
    return await _transition(service.complete_ab_test, test_id, db, engine)
