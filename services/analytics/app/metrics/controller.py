"""Metrics controller — thin pass-through to the MetricsAggregator.

The aggregator never raises, so there is no exception mapping here; the
`status` field of each result tells the dashboard whether data is live.
"""

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


async def popular_recipes(
    limit: int, aggregator: MetricsAggregator
) -> MetricResult[list[PopularRecipe]]:
    return await aggregator.get_popular_recipes(limit)


async def dietary_trends(aggregator: MetricsAggregator) -> MetricResult[list[DietaryTrend]]:
    return await aggregator.get_dietary_trends()


async def engagement(aggregator: MetricsAggregator) -> MetricResult[UserEngagement]:
    return await aggregator.get_user_engagement()


async def performance(aggregator: MetricsAggregator) -> MetricResult[PerformanceSummary]:
    return await aggregator.get_performance_metrics()


async def ingredient_combinations(
    limit: int, aggregator: MetricsAggregator
) -> MetricResult[list[IngredientCombination]]:
    return await aggregator.get_ingredient_combinations(limit)


async def ab_test_results(test_name: str, aggregator: MetricsAggregator) -> MetricResult[ABTestResults]:
    return await aggregator.get_ab_test_results(test_name)


async def user_stats(aggregator: MetricsAggregator) -> MetricResult[UserStats]:
    return await aggregator.get_user_stats()
