"""Gating routers — client flag/variant evaluation and dashboard config CRUD."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_assignment_engine, get_subject_id
from app.gating import controller
from app.gating.engine import AssignmentEngine
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
from shared.auth.dependencies import require_roles
from shared.constants.roles import OPERATOR_ROLES
from shared.models.user import CurrentUser

flags_router = APIRouter(prefix="/flags", tags=["Feature Flags"])
ab_tests_router = APIRouter(prefix="/ab-tests", tags=["A/B Tests"])

_operator = require_roles(OPERATOR_ROLES)


# ===========================================================================
# Feature flags: client evaluation
# ===========================================================================


@flags_router.get(
    "/{flag_name}/evaluate",
    response_model=FlagEvaluationResponse,
    summary="Evaluate a feature flag",
    description=(
        "Returns whether `flag_name` is on for the calling subject on `platform`. "
        "The subject is the bearer token's user when present, else `subject_id`, else anonymous. "
        "Missing flags and config-store failures evaluate to `enabled=false`."
    ),
)
async def evaluate_flag(
    flag_name: str,
    platform: Platform = Query(..., description="ios, android or web."),
    subject_id: str = Depends(get_subject_id),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> FlagEvaluationResponse:
    return await controller.evaluate_flag(flag_name, subject_id, platform, engine)


# ===========================================================================
# Feature flags: dashboard CRUD (admin)
# ===========================================================================


@flags_router.post(
    "",
    response_model=FeatureFlagResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a feature flag (admin)",
    description="Returns 409 if the name is already taken. Requires the admin role.",
)
async def create_flag(
    body: FeatureFlagCreate,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> FeatureFlagResponse:
    return await controller.create_flag(body, db, engine)


@flags_router.get(
    "",
    response_model=list[FeatureFlagResponse],
    summary="List feature flags (admin)",
    description="All flags ordered by name. Requires the admin role.",
)
async def list_flags(
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
) -> list[FeatureFlagResponse]:
    return await controller.list_flags(db)


@flags_router.get(
    "/{flag_id}",
    response_model=FeatureFlagResponse,
    summary="Get a feature flag by ID (admin)",
)
async def get_flag(
    flag_id: UUID,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
) -> FeatureFlagResponse:
    return await controller.get_flag(flag_id, db)


@flags_router.patch(
    "/{flag_id}",
    response_model=FeatureFlagResponse,
    summary="Update a feature flag (admin)",
    description=(
        "Partial update (PATCH semantics). Last writer wins. "
        "Takes effect immediately in this process, within the cache TTL elsewhere."
    ),
)
async def update_flag(
    flag_id: UUID,
    body: FeatureFlagUpdate,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> FeatureFlagResponse:
    return await controller.update_flag(flag_id, body, db, engine)


@flags_router.delete(
    "/{flag_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a feature flag (admin)",
    description="Hard delete. Subsequent evaluations return `enabled=false`.",
)
async def delete_flag(
    flag_id: UUID,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> None:
    await controller.delete_flag(flag_id, db, engine)


# ===========================================================================
# A/B tests: client assignment + conversions
# ===========================================================================


@ab_tests_router.get(
    "/{test_name}/variant",
    response_model=VariantResponse,
    summary="Get the calling subject's variant",
    description=(
        "Deterministic two-arm assignment (`control` / `variant`). "
        "`variant` is null when the test is missing, paused or completed. "
        "Anonymous subjects always receive `control`."
    ),
)
async def get_variant(
    test_name: str,
    subject_id: str = Depends(get_subject_id),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> VariantResponse:
    return await controller.get_variant(test_name, subject_id, engine)


@ab_tests_router.post(
    "/{test_name}/conversions",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record a conversion for an A/B test",
    description=(
        "Records an `ab_test_conversion` event tagged with the subject's current variant. "
        "Always accepted; write failures are logged server-side."
    ),
)
async def track_conversion(
    test_name: str,
    body: ConversionIngest,
    subject_id: str = Depends(get_subject_id),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> dict:
    await controller.track_conversion(test_name, body, subject_id, engine)
    return {"accepted": 1}


# ===========================================================================
# A/B tests: dashboard CRUD + lifecycle (admin)
# ===========================================================================


@ab_tests_router.post(
    "",
    response_model=ABTestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an A/B test (admin)",
    description=(
        "`control_group.percentage + variant_group.percentage` must equal 100. "
        "Status defaults to ACTIVE. Returns 409 if the name is already taken."
    ),
)
async def create_ab_test(
    body: ABTestCreate,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> ABTestResponse:
    return await controller.create_ab_test(body, db, engine)


@ab_tests_router.get(
    "",
    response_model=list[ABTestResponse],
    summary="List A/B tests (admin)",
    description="All tests, newest first.",
)
async def list_ab_tests(
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
) -> list[ABTestResponse]:
    return await controller.list_ab_tests(db)


@ab_tests_router.get(
    "/{test_id}",
    response_model=ABTestResponse,
    summary="Get an A/B test by ID (admin)",
)
async def get_ab_test(
    test_id: UUID,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
) -> ABTestResponse:
    return await controller.get_ab_test(test_id, db)


@ab_tests_router.patch(
    "/{test_id}",
    response_model=ABTestResponse,
    summary="Update an A/B test (admin)",
    description="Partial update. Returns 422 for COMPLETED tests or an allocation not summing to 100.",
)
async def update_ab_test(
    test_id: UUID,
    body: ABTestUpdate,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> ABTestResponse:
    return await controller.update_ab_test(test_id, body, db, engine)


@ab_tests_router.delete(
    "/{test_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an A/B test (admin)",
)
async def delete_ab_test(
    test_id: UUID,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> None:
    await controller.delete_ab_test(test_id, db, engine)


@ab_tests_router.post(
    "/{test_id}/pause",
    response_model=ABTestResponse,
    summary="Pause an active A/B test (admin)",
    description="Transitions ACTIVE → PAUSED. Returns 422 if not ACTIVE.",
)
async def pause_ab_test(
    test_id: UUID,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> ABTestResponse:
    return await controller.pause_ab_test(test_id, db, engine)


@ab_tests_router.post(
    "/{test_id}/resume",
    response_model=ABTestResponse,
    summary="Resume a paused A/B test (admin)",
    description="Transitions PAUSED → ACTIVE. Returns 422 if not PAUSED.",
)
async def resume_ab_test(
    test_id: UUID,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> ABTestResponse:
    return await controller.resume_ab_test(test_id, db, engine)


@ab_tests_router.post(
    "/{test_id}/complete",
    response_model=ABTestResponse,
    summary="Complete an A/B test (admin)",
    description="Transitions ACTIVE or PAUSED → COMPLETED (terminal).",
)
async def complete_ab_test(
    test_id: UUID,
    _: CurrentUser = Depends(_operator),
    db: AsyncSession = Depends(get_db),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> ABTestResponse:
    return await controller.complete_ab_test(test_id, db, engine)
