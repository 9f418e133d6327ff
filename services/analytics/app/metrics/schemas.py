"""Pydantic V2 schemas for dashboard metrics.

Every aggregator operation returns a MetricResult wrapper:
  status="ok"        computed from events
  status="empty"     query succeeded, no matching events (data is zeroed)
  status="fallback"  query failed; data is the constant placeholder set
"""

from __future__ import annotations

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

MetricStatus = Literal["ok", "empty", "fallback"]


class MetricResult(BaseModel, Generic[T]):
    status: MetricStatus
    data: T


class PopularRecipe(BaseModel):
    recipe_name: str
    view_count: int
    save_count: int


class DietaryTrend(BaseModel):
    preference: str
    count: int
    percentage: int = Field(..., description="round(100 * count / total add-toggles).")


class UserEngagement(BaseModel):
    total_users: int = Field(0, description="Distinct signed-in subjects seen in recent logins.")
    active_users: int = Field(0, description="Subset with a login in the trailing 30 days.")
    avg_session_time_s: int = Field(0, description="Mean screen time per screen view, seconds.")


class PerformanceSummary(BaseModel):
    metrics: dict[str, int] = Field(
        default_factory=dict, description="Mean duration (ms) per metric name."
    )
    api_latency: int = 0
    app_load_time: int = 0
    search_latency: int = 0
    error_rate: float = Field(
        0.0,
        description=(
            "Mean of reported `error_rate` samples when any exist; otherwise the "
            "percentage of timed operations recorded as `<name>_error`."
        ),
    )


class IngredientCombination(BaseModel):
    combination: str = Field(..., description='Normalised ingredients joined with " + ".')
    occurrences: int


class ArmResult(BaseModel):
    """Conversion figures for one arm of an A/B test."""

    name: str
    exposed: int = Field(0, description="Distinct subjects exposed to this arm.")
    converted: int = Field(0, description="Distinct exposed subjects with a conversion.")
    conversion_rate: float = 0.0
    ci_lower: float = Field(0.0, description="95% Wilson CI lower bound.")
    ci_upper: float = Field(0.0, description="95% Wilson CI upper bound.")


class ABTestResults(BaseModel):
    test_name: str
    control: ArmResult
    variant: ArmResult
    is_significant: bool = Field(
        False,
        description="True when the variant CI lower bound is above the control CI upper bound.",
    )
    improvement_pct: float = Field(0.0, description="Relative lift of variant over control, %.")


class UserStats(BaseModel):
    total_users: int = Field(0, description="Signup counter from the real-time counter store.")
