from app.models.event import AnalyticsEvent
from app.models.gating import ABTest, FeatureFlag

__all__ = [
    "AnalyticsEvent",
    "FeatureFlag",
    "ABTest",
]
