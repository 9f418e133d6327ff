"""Request-scoped accessors for the long-lived objects built in the lifespan."""

from fastapi import Depends, Request

from app.config import Settings
from app.events.service import EventLogger
from app.gating.engine import AssignmentEngine
from app.metrics.service import MetricsAggregator
from app.models.event import ANONYMOUS_SUBJECT
from shared.auth.dependencies import get_current_user_optional
from shared.models.user import CurrentUser


def get_settings() -> Settings:
    return Settings()


def get_event_logger(request: Request) -> EventLogger:
    return request.app.state.event_logger


def get_assignment_engine(request: Request) -> AssignmentEngine:
    return request.app.state.assignment_engine


def get_metrics_aggregator(request: Request) -> MetricsAggregator:
    return request.app.state.metrics_aggregator


def resolve_subject(user: CurrentUser | None, claimed: str | None) -> str:
    """A verified token subject wins over a client-supplied id."""
    if user is not None:
        return user.subject_id
    return claimed or ANONYMOUS_SUBJECT


async def get_subject_id(
    subject_id: str | None = None,
    user: CurrentUser | None = Depends(get_current_user_optional),
) -> str:
    """Query-string subject (``?subject_id=``) unless a bearer token is present."""
    return resolve_subject(user, subject_id)
