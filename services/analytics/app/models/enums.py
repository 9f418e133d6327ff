import enum

from sqlalchemy import Enum as SAEnum


class Platform(str, enum.Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


# Wildcard accepted in FeatureFlag.platforms alongside Platform values.
ALL_PLATFORMS = "all"


class FeatureFlagStatus(str, enum.Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"
    PERCENTAGE_ROLLOUT = "percentage_rollout"  # gated by rollout_percentage


class ABTestStatus(str, enum.Enum):
    ACTIVE = "active"        # Eligible for assignment
    PAUSED = "paused"        # Temporarily halted, assignment returns None
    COMPLETED = "completed"  # Concluded, terminal


class EventName(str, enum.Enum):
    VIEW_RECIPE = "view_recipe"
    SAVE_RECIPE = "save_recipe"
    RECIPE_DELETE = "recipe_delete"
    GENERATE_RECIPE = "generate_recipe"
    SEARCH_INGREDIENTS = "search_ingredients"
    DIETARY_TOGGLE = "dietary_toggle"
    SCREEN_VIEW = "screen_view"
    SCREEN_TIME = "screen_time"        # legacy twin of screen_view (seconds)
    USER_LOGIN = "user_login"
    USER_SIGNUP = "user_signup"
    PERFORMANCE_METRIC = "performance_metric"
    RECIPE_ERROR = "recipe_error"
    RECIPE_RATING = "recipe_rating"
    RECIPE_SHARE = "recipe_share"
    # Reserved for gating decisions recorded by the assignment engine
    FEATURE_FLAG_EVALUATED = "feature_flag_evaluated"
    AB_TEST_EXPOSURE = "ab_test_exposure"
    AB_TEST_CONVERSION = "ab_test_conversion"


RESERVED_EVENT_NAMES = frozenset({
    EventName.FEATURE_FLAG_EVALUATED.value,
    EventName.AB_TEST_EXPOSURE.value,
    EventName.AB_TEST_CONVERSION.value,
})


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# Stored by value ("ios", "enabled", ...) so rows stay readable across dialects.
platform_enum = SAEnum(Platform, name="platform", values_callable=_values)
feature_flag_status_enum = SAEnum(
    FeatureFlagStatus, name="feature_flag_status", values_callable=_values
)
ab_test_status_enum = SAEnum(ABTestStatus, name="ab_test_status", values_callable=_values)
