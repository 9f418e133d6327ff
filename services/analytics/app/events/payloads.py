"""Typed event payloads.

Known event names map to a pydantic model describing their `attributes`; any
other name (custom events, or a known event whose payload fails validation)
falls back to CustomPayload, an open string-keyed mapping. Every payload model
allows extra keys so the stored document keeps whatever the client sent.

    parse_payload("view_recipe", {"recipe_name": "Pasta"})  -> ViewRecipePayload
    parse_payload("my_custom_event", {"foo": 1})              -> CustomPayload
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.models.enums import EventName

Scalar = str | int | float | bool | None


class EventPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    def to_attributes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CustomPayload(EventPayload):
    """Open payload for custom event names."""


class ViewRecipePayload(EventPayload):
    recipe_name: str
    difficulty: str | None = None
    time_estimate: int | str | None = None
    extra_ingredients_cost: float | str | None = None
    total_ingredients: int | None = None
    has_nutrition_info: bool | None = None
    has_dietary_info: bool | None = None


class SaveRecipePayload(EventPayload):
    recipe_name: str
    action: Literal["save", "unsave"] = "save"
    difficulty: str | None = None
    time_estimate: int | str | None = None


class RecipeDeletePayload(EventPayload):
    recipe_name: str
    difficulty: str | None = None


class DietaryTogglePayload(EventPayload):
    preference: str
    category: Literal["restriction", "allergy", "diet_plan"] | None = None
    action: Literal["add", "remove"]


class ScreenViewPayload(EventPayload):
    screen_name: str
    time_spent_ms: int = Field(0, ge=0)


class ScreenTimePayload(EventPayload):
    screen: str
    timeSpentSeconds: int = Field(0, ge=0)
    hasRecipes: bool = False


class AuthPayload(EventPayload):
    auth_method: str


class PerformanceMetricPayload(EventPayload):
    metric_name: str
    value_ms: float = Field(0, ge=0)


class RecipeErrorPayload(EventPayload):
    error_type: str
    error_message: str


class RecipeRatingPayload(EventPayload):
    recipe_name: str
    rating: int = Field(..., ge=1, le=5)


class RecipeSharePayload(EventPayload):
    recipe_name: str
    share_method: str


class IngredientSearchPayload(EventPayload):
    ingredients: list[str]
    count: int | None = None


class RecipeGenerationPayload(EventPayload):
    ingredients_count: int = 0
    ingredients: list[str] = Field(default_factory=list)
    dietary_restrictions: list[str] = Field(default_factory=list)
    recipes_count: int = 0
    latency_ms: float = 0


class FlagEvaluationPayload(EventPayload):
    flag_name: str
    enabled: bool
    platform: str | None = None


class ExposurePayload(EventPayload):
    test_name: str
    variant: Literal["control", "variant"]


class ConversionPayload(EventPayload):
    test_name: str
    metric_name: str
    value: Scalar = None
    variant: Literal["control", "variant"] | None = None


PAYLOAD_TYPES: dict[str, type[EventPayload]] = {
    EventName.VIEW_RECIPE.value: ViewRecipePayload,
    EventName.SAVE_RECIPE.value: SaveRecipePayload,
    EventName.RECIPE_DELETE.value: RecipeDeletePayload,
    EventName.DIETARY_TOGGLE.value: DietaryTogglePayload,
    EventName.SCREEN_VIEW.value: ScreenViewPayload,
    EventName.SCREEN_TIME.value: ScreenTimePayload,
    EventName.USER_LOGIN.value: AuthPayload,
    EventName.USER_SIGNUP.value: AuthPayload,
    EventName.PERFORMANCE_METRIC.value: PerformanceMetricPayload,
    EventName.RECIPE_ERROR.value: RecipeErrorPayload,
    EventName.RECIPE_RATING.value: RecipeRatingPayload,
    EventName.RECIPE_SHARE.value: RecipeSharePayload,
    EventName.SEARCH_INGREDIENTS.value: IngredientSearchPayload,
    EventName.GENERATE_RECIPE.value: RecipeGenerationPayload,
    EventName.FEATURE_FLAG_EVALUATED.value: FlagEvaluationPayload,
    EventName.AB_TEST_EXPOSURE.value: ExposurePayload,
    EventName.AB_TEST_CONVERSION.value: ConversionPayload,
}


def parse_payload(event_name: str, attributes: dict[str, Any] | None) -> EventPayload:
    """Return the typed payload for ``event_name``; never raises."""
    attributes = attributes or {}
    model = PAYLOAD_TYPES.get(event_name)
    if model is not None:
        try:
            return model.model_validate(attributes)
        except ValidationError:
            pass
    return CustomPayload.model_validate(attributes)
