"""Metrics service — read-side aggregation of the event log, no FastAPI imports.

Each operation scans a bounded window of the most recent events of one or two
names (newest first, by write time), folds them in Python, and wraps the
outcome in a MetricResult. No operation raises: a failed read is logged and
answered with the constant data from app.metrics.fallbacks.

Windows:
  popular recipes        100 view_recipe + 100 save_recipe
  dietary trends         500 dietary_toggle (action == "add")
  engagement             1000 user_login + 1000 screen_view
  performance            1000 performance_metric
  ingredient combos      100 search_ingredients
  A/B test results       5000 ab_test_exposure + 5000 ab_test_conversion
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, TypeVar

from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.events import counters
from app.events.payloads import IngredientSearchPayload, PerformanceMetricPayload
from app.events.schemas import EventRecord
from app.gating import service as gating_service
from app.metrics import fallbacks
from app.metrics.schemas import (
    ABTestResults,
    ArmResult,
    DietaryTrend,
    IngredientCombination,
    MetricResult,
    PerformanceSummary,
    PopularRecipe,
    UserEngagement,
    UserStats,
)
from app.models.enums import EventName
from app.models.event import AnalyticsEvent, is_anonymous
from app.models.types import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RECIPE_WINDOW = 100
_DIETARY_WINDOW = 500
_ENGAGEMENT_WINDOW = 1000
_PERFORMANCE_WINDOW = 1000
_SEARCH_WINDOW = 100
_AB_TEST_WINDOW = 5000

_ACTIVE_PERIOD = timedelta(days=30)
_UNKNOWN_RECIPE = "Unknown Recipe"
_HEADLINE_METRICS = ("api_latency", "app_load_time", "search_latency")
_ERROR_SUFFIX = "_error"
_ERROR_RATE_METRIC = "error_rate"
_ARMS = ("control", "variant")


async def _recent(
    session: AsyncSession, event_name: EventName, limit: int, *conditions: Any
) -> list[EventRecord]:
    q = (
        select(AnalyticsEvent)
        .where(AnalyticsEvent.event_name == event_name.value, *conditions)
        .order_by(AnalyticsEvent.occurred_at.desc())
        .limit(limit)
    )
    rows = (await session.execute(q)).scalars().all()
    return [EventRecord.model_validate(row) for row in rows]


def _attribute_equals(key: str, value: str) -> Any:
    return AnalyticsEvent.attributes[key].as_string() == value


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _wilson_ci(successes: int, trials: int, z: float = 1.96) -> tuple[float, float]:
    """Wilson score confidence interval for a proportion."""
    if trials == 0:
        return 0.0, 0.0
    p = successes / trials
    denominator = 1 + z * z / trials
    centre = (p + z * z / (2 * trials)) / denominator
    margin = (z * math.sqrt(p * (1 - p) / trials + z * z / (4 * trials * trials))) / denominator
    return max(0.0, centre - margin), min(1.0, centre + margin)


def _arm(name: str, exposed: set[str], converted: set[str]) -> ArmResult:
    hits = len(converted & exposed)
    ci_lo, ci_hi = _wilson_ci(hits, len(exposed))
    return ArmResult(
        name=name,
        exposed=len(exposed),
        converted=hits,
        conversion_rate=round(_ratio(hits, len(exposed)), 6),
        ci_lower=round(ci_lo, 6),
        ci_upper=round(ci_hi, 6),
    )


def _recipe_label(attributes: dict[str, Any]) -> str:
    label = attributes.get("recipe_name")
    return str(label) if label not in (None, "") else _UNKNOWN_RECIPE


def _duration_ms(attributes: dict[str, Any]) -> float:
    """`time_spent_ms` as a float; missing or unreadable values count as 0."""
    value = attributes.get("time_spent_ms", 0)
    if isinstance(value, bool):
        return 0.0
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return 0.0
    return ms if math.isfinite(ms) and ms > 0 else 0.0


def _preference_label(attributes: dict[str, Any]) -> str | None:
    # Older clients sent the label under restriction / dietPlan.
    label = attributes.get("preference") or attributes.get("restriction") or attributes.get("dietPlan")
    return str(label) if label else None


def _combination(ingredients: list[str]) -> str | None:
    normalised = sorted({i.strip().lower() for i in ingredients if i and i.strip()})
    return " + ".join(normalised) if normalised else None


def _result(data: T, has_data: bool) -> MetricResult[T]:
    return MetricResult(status="ok" if has_data else "empty", data=data)


class MetricsAggregator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        redis: Redis | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.redis = redis
        self._now = now or utcnow

    async def _guard(
        self,
        name: str,
        compute: Callable[[], Awaitable[MetricResult[T]]],
        fallback: Callable[[], T],
    ) -> MetricResult[T]:
        try:
            return await compute()
        except Exception as exc:
            logger.warning("Metrics query %s failed, serving fallback data: %s", name, exc)
            return MetricResult(status="fallback", data=fallback())

    # -----------------------------------------------------------------------
    # Popular recipes
    # -----------------------------------------------------------------------

    async def get_popular_recipes(self, limit: int = 10) -> MetricResult[list[PopularRecipe]]:
        async def compute() -> MetricResult[list[PopularRecipe]]:
            async with self.session_factory() as session:
                views = await _recent(session, EventName.VIEW_RECIPE, _RECIPE_WINDOW)
                saves = await _recent(session, EventName.SAVE_RECIPE, _RECIPE_WINDOW)
            view_counts = Counter(_recipe_label(e.attributes) for e in views)
            save_counts = Counter(
                _recipe_label(e.attributes)
                for e in saves
                if e.attributes.get("action", "save") != "unsave"
            )
            ranked = sorted(
                (
                    PopularRecipe(
                        recipe_name=name,
                        view_count=count,
                        save_count=save_counts.get(name, 0),
                    )
                    for name, count in view_counts.items()
                ),
                key=lambda r: (-r.view_count, -r.save_count),
            )
            return _result(ranked[: max(0, limit)], bool(ranked))

        return await self._guard(
            "popular_recipes", compute, lambda: fallbacks.popular_recipes(limit)
        )

    # -----------------------------------------------------------------------
    # Dietary trends
    # -----------------------------------------------------------------------

    async def get_dietary_trends(self) -> MetricResult[list[DietaryTrend]]:
        async def compute() -> MetricResult[list[DietaryTrend]]:
            async with self.session_factory() as session:
                events = await _recent(
                    session,
                    EventName.DIETARY_TOGGLE,
                    _DIETARY_WINDOW,
                    _attribute_equals("action", "add"),
                )
            labels = Counter(
                label
                for label in (_preference_label(e.attributes) for e in events)
                if label is not None
            )
            total = sum(labels.values())
            trends = sorted(
                (
                    DietaryTrend(
                        preference=preference,
                        count=count,
                        percentage=round(_ratio(count, total) * 100),
                    )
                    for preference, count in labels.items()
                ),
                key=lambda t: (-t.percentage, -t.count),
            )
            return _result(trends, total > 0)

        return await self._guard(
            "dietary_trends", compute, lambda: list(fallbacks.DIETARY_TRENDS)
        )

    # -----------------------------------------------------------------------
    # Engagement
    # -----------------------------------------------------------------------

    async def get_user_engagement(self) -> MetricResult[UserEngagement]:
        async def compute() -> MetricResult[UserEngagement]:
            async with self.session_factory() as session:
                logins = await _recent(session, EventName.USER_LOGIN, _ENGAGEMENT_WINDOW)
                screens = await _recent(session, EventName.SCREEN_VIEW, _ENGAGEMENT_WINDOW)

            cutoff = self._now() - _ACTIVE_PERIOD
            known = [e for e in logins if not is_anonymous(e.subject_id)]
            total_users = {e.subject_id for e in known}
            active_users = {
                e.subject_id for e in known if e.occurred_at is not None and e.occurred_at >= cutoff
            }

            total_ms = sum(_duration_ms(e.attributes) for e in screens)
            avg_s = round(_ratio(total_ms, len(screens)) / 1000)

            engagement = UserEngagement(
                total_users=len(total_users),
                active_users=len(active_users),
                avg_session_time_s=avg_s,
            )
            return _result(engagement, bool(logins or screens))

        return await self._guard(
            "user_engagement", compute, lambda: fallbacks.USER_ENGAGEMENT.model_copy()
        )

    # -----------------------------------------------------------------------
    # Performance
    # -----------------------------------------------------------------------

    async def get_performance_metrics(self) -> MetricResult[PerformanceSummary]:
        async def compute() -> MetricResult[PerformanceSummary]:
            async with self.session_factory() as session:
                events = await _recent(session, EventName.PERFORMANCE_METRIC, _PERFORMANCE_WINDOW)

            samples: dict[str, list[float]] = defaultdict(list)
            for payload in (e.payload for e in events):
                if isinstance(payload, PerformanceMetricPayload):
                    samples[payload.metric_name].append(payload.value_ms)

            # A reported error_rate sample is already a percentage.
            reported = samples.pop(_ERROR_RATE_METRIC, [])
            means = {name: round(sum(values) / len(values)) for name, values in samples.items()}
            timed = sum(len(values) for values in samples.values())
            errors = sum(
                len(values) for name, values in samples.items() if name.endswith(_ERROR_SUFFIX)
            )
            if reported:
                error_rate = _ratio(sum(reported), len(reported))
            else:
                error_rate = _ratio(errors, timed) * 100
            summary = PerformanceSummary(
                metrics=means,
                **{name: means.get(name, 0) for name in _HEADLINE_METRICS},
                error_rate=round(error_rate, 2),
            )
            return _result(summary, bool(timed or reported))

        return await self._guard(
            "performance", compute, lambda: fallbacks.PERFORMANCE.model_copy(deep=True)
        )

    # -----------------------------------------------------------------------
    # Ingredient combinations
    # -----------------------------------------------------------------------

    async def get_ingredient_combinations(
        self, limit: int = 10
    ) -> MetricResult[list[IngredientCombination]]:
        async def compute() -> MetricResult[list[IngredientCombination]]:
            async with self.session_factory() as session:
                events = await _recent(session, EventName.SEARCH_INGREDIENTS, _SEARCH_WINDOW)

            combos = Counter(
                combo
                for combo in (
                    _combination(p.ingredients)
                    for p in (e.payload for e in events)
                    if isinstance(p, IngredientSearchPayload)
                )
                if combo is not None
            )
            ranked = [
                IngredientCombination(combination=combo, occurrences=count)
                for combo, count in sorted(combos.items(), key=lambda kv: (-kv[1], kv[0]))
            ]
            return _result(ranked[: max(0, limit)], bool(ranked))

        return await self._guard(
            "ingredient_combinations",
            compute,
            lambda: list(fallbacks.INGREDIENT_COMBINATIONS[:limit]),
        )

    # -----------------------------------------------------------------------
    # A/B test results
    # -----------------------------------------------------------------------

    async def get_ab_test_results(self, test_name: str) -> MetricResult[ABTestResults]:
        """Per-arm conversion of distinct exposed subjects, with 95% Wilson CIs.

        `is_significant` is true when the variant CI lower bound is above the
        control CI upper bound. Anonymous subjects are excluded: they share a
        single id and always receive control.
        """

        async def compute() -> MetricResult[ABTestResults]:
            async with self.session_factory() as session:
                test = await gating_service.get_ab_test_by_name(test_name, session)
                if test is None:
                    return MetricResult(
                        status="empty", data=fallbacks.ab_test_results(test_name)
                    )
                same_test = _attribute_equals("test_name", test_name)
                exposures = await _recent(
                    session, EventName.AB_TEST_EXPOSURE, _AB_TEST_WINDOW, same_test
                )
                conversions = await _recent(
                    session, EventName.AB_TEST_CONVERSION, _AB_TEST_WINDOW, same_test
                )

            exposed: dict[str, set[str]] = {arm: set() for arm in _ARMS}
            converted: dict[str, set[str]] = {arm: set() for arm in _ARMS}
            for events, bucket in ((exposures, exposed), (conversions, converted)):
                for e in events:
                    arm = e.attributes.get("variant")
                    if arm in bucket and not is_anonymous(e.subject_id):
                        bucket[arm].add(e.subject_id)

            control = _arm("control", exposed["control"], converted["control"])
            variant = _arm("variant", exposed["variant"], converted["variant"])
            lift = _ratio(variant.conversion_rate - control.conversion_rate, control.conversion_rate)
            results = ABTestResults(
                test_name=test_name,
                control=control,
                variant=variant,
                is_significant=variant.ci_lower > control.ci_upper,
                improvement_pct=round(lift * 100, 2),
            )
            return _result(results, bool(control.exposed or variant.exposed))

        return await self._guard(
            "ab_test_results", compute, lambda: fallbacks.ab_test_results(test_name)
        )

    # -----------------------------------------------------------------------
    # Real-time counters
    # -----------------------------------------------------------------------

    async def get_user_stats(self) -> MetricResult[UserStats]:
        total = await counters.get_user_stats(self.redis)
        return _result(UserStats(total_users=total), total > 0)
