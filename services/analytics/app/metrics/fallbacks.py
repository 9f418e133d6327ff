"""Constant placeholder data served when an aggregation query fails.

The dashboard renders these so a store outage never blanks a panel; the
accompanying MetricResult.status is "fallback".
"""

from app.metrics.schemas import (
    ABTestResults,
    ArmResult,
    DietaryTrend,
    IngredientCombination,
    PerformanceSummary,
    PopularRecipe,
    UserEngagement,
)

POPULAR_RECIPES: tuple[PopularRecipe, ...] = (
    PopularRecipe(recipe_name="Vegetarian Pasta", view_count=1243, save_count=432),
    PopularRecipe(recipe_name="Keto Chicken Bowl", view_count=1120, save_count=387),
    PopularRecipe(recipe_name="Gluten-Free Pancakes", view_count=980, save_count=350),
    PopularRecipe(recipe_name="Mediterranean Salad", view_count=876, save_count=289),
    PopularRecipe(recipe_name="Low-Carb Pizza", view_count=750, save_count=231),
)

DIETARY_TRENDS: tuple[DietaryTrend, ...] = (
    DietaryTrend(preference="Low-Carb", count=342, percentage=34),
    DietaryTrend(preference="Gluten-Free", count=280, percentage=28),
    DietaryTrend(preference="Vegetarian", count=220, percentage=22),
    DietaryTrend(preference="Vegan", count=150, percentage=15),
)

USER_ENGAGEMENT = UserEngagement(total_users=15487, active_users=8934, avg_session_time_s=272)

PERFORMANCE = PerformanceSummary(
    metrics={"api_latency": 120, "app_load_time": 1800, "search_latency": 87},
    api_latency=120,
    app_load_time=1800,
    search_latency=87,
    error_rate=0.4,
)

INGREDIENT_COMBINATIONS: tuple[IngredientCombination, ...] = (
    IngredientCombination(combination="basil + mozzarella + tomato", occurrences=342),
    IngredientCombination(combination="chicken + garlic + lemon", occurrences=287),
    IngredientCombination(combination="avocado + cilantro + lime", occurrences=253),
    IngredientCombination(combination="dill + lemon + salmon", occurrences=198),
)


def popular_recipes(limit: int) -> list[PopularRecipe]:
    return list(POPULAR_RECIPES[:limit])


def ab_test_results(test_name: str) -> ABTestResults:
    return ABTestResults(
        test_name=test_name,
        control=ArmResult(name="control"),
        variant=ArmResult(name="variant"),
    )
