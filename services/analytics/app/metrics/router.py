"""Metrics router — dashboard summaries (analyst / admin)."""

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_metrics_aggregator
from app.metrics import controller
from app.metrics.schemas import (
    ABTestResults,
    DietaryTrend,
    IngredientCombination,
    MetricResult,
    PerformanceSummary,
    PopularRecipe,
    UserEngagement,
    UserStats,
)
from app.metrics.service import MetricsAggregator
from shared.auth.dependencies import require_roles
from shared.constants.roles import DASHBOARD_READ_ROLES
from shared.models.user import CurrentUser

router = APIRouter(prefix="/metrics", tags=["Metrics"])

_reader = require_roles(DASHBOARD_READ_ROLES)


@router.get(
    "/popular-recipes",
    response_model=MetricResult[list[PopularRecipe]],
    summary="Most viewed recipes",
    description=(
        "Scans the latest 100 `view_recipe` and 100 `save_recipe` events. "
        "Sorted by views desc, then saves desc."
    ),
)
async def popular_recipes(
    limit: int = Query(10, ge=1, le=100),
    _: CurrentUser = Depends(_reader),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
) -> MetricResult[list[PopularRecipe]]:
    return await controller.popular_recipes(limit, aggregator)


@router.get(
    "/dietary-trends",
    response_model=MetricResult[list[DietaryTrend]],
    summary="Dietary preference adoption",
    description=(
        "Scans the latest 500 `dietary_toggle` events with action `add`. "
        "Percentages are rounded to the nearest integer."
    ),
)
async def dietary_trends(
    _: CurrentUser = Depends(_reader),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
) -> MetricResult[list[DietaryTrend]]:
    return await controller.dietary_trends(aggregator)


@router.get(
    "/engagement",
    response_model=MetricResult[UserEngagement],
    summary="User engagement",
    description=(
        "Distinct signed-in users from the latest 1000 logins, those active in the last "
        "30 days, and mean screen time from the latest 1000 screen views."
    ),
)
async def engagement(
    _: CurrentUser = Depends(_reader),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
) -> MetricResult[UserEngagement]:
    return await controller.engagement(aggregator)


@router.get(
    "/performance",
    response_model=MetricResult[PerformanceSummary],
    summary="Client performance",
    description="Mean duration per metric name over the latest 1000 `performance_metric` events.",
)
async def performance(
    _: CurrentUser = Depends(_reader),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
) -> MetricResult[PerformanceSummary]:
    return await controller.performance(aggregator)


@router.get(
    "/ingredient-combinations",
    response_model=MetricResult[list[IngredientCombination]],
    summary="Frequently searched ingredient combinations",
)
async def ingredient_combinations(
    limit: int = Query(10, ge=1, le=100),
    _: CurrentUser = Depends(_reader),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
) -> MetricResult[list[IngredientCombination]]:
    return await controller.ingredient_combinations(limit, aggregator)


@router.get(
    "/ab-tests/{test_name}",
    response_model=MetricResult[ABTestResults],
    summary="A/B test results with confidence intervals",
    description=(
        "Per-arm conversion of distinct exposed subjects with 95% Wilson CIs. "
        "`is_significant=true` when the variant CI lower bound is above the control CI upper bound."
    ),
)
async def ab_test_results(
    test_name: str,
    _: CurrentUser = Depends(_reader),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
) -> MetricResult[ABTestResults]:
    return await controller.ab_test_results(test_name, aggregator)


@router.get(
    "/user-stats",
    response_model=MetricResult[UserStats],
    summary="Real-time user counter",
    description="Total signups from the Redis counter store; 0 when Redis is unavailable.",
)
async def user_stats(
    _: CurrentUser = Depends(_reader),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
) -> MetricResult[UserStats]:
    return await controller.user_stats(aggregator)
