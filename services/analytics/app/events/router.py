"""Events router — client telemetry ingestion."""

from fastapi import APIRouter, Depends, Request, status

from app.dependencies import get_event_logger
from app.events import controller
from app.events.schemas import EventAcceptedResponse, EventBatchIngest, EventIngest
from app.events.service import EventLogger
from app.rate_limit import BATCH_RATE_LIMIT, EVENT_RATE_LIMIT, limiter
from shared.auth.dependencies import get_current_user_optional
from shared.models.user import CurrentUser

router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record one analytics event",
    description=(
        "Appends the event to the event log and bumps any real-time counter it feeds "
        "(e.g. `user_signup` → total users). Always accepted: storage failures are "
        "logged server-side and never surface to the client. "
        "The subject is the bearer token's user when present, else `subject_id`, else anonymous. "
        "Gating events (`feature_flag_evaluated`, `ab_test_exposure`, `ab_test_conversion`) "
        "are recorded by the server and rejected here with 422. "
        "Rate limited per client IP (429 when exceeded)."
    ),
)
@limiter.limit(EVENT_RATE_LIMIT)
async def ingest_event(
    request: Request,
    body: EventIngest,
    user: CurrentUser | None = Depends(get_current_user_optional),
    event_logger: EventLogger = Depends(get_event_logger),
) -> EventAcceptedResponse:
    return await controller.ingest_event(body, user, event_logger)


@router.post(
    "/batch",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record up to 100 analytics events",
    description="Same semantics as `POST /events`, applied to each event in order.",
)
@limiter.limit(BATCH_RATE_LIMIT)
async def ingest_batch(
    request: Request,
    body: EventBatchIngest,
    user: CurrentUser | None = Depends(get_current_user_optional),
    event_logger: EventLogger = Depends(get_event_logger),
) -> EventAcceptedResponse:
    return await controller.ingest_batch(body, user, event_logger)
