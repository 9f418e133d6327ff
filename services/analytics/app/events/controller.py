"""Events controller — turns client submissions into EventLogger calls.

Each submission carries the client's own session / platform / app version, so
a per-request AnalyticsContext replaces the logger's process context.
"""

from __future__ import annotations

from app.context import AnalyticsContext
from app.dependencies import resolve_subject
from app.events.schemas import EventAcceptedResponse, EventBatchIngest, EventIngest
from app.events.service import EventLogger
from shared.models.user import CurrentUser


async def _record(body: EventIngest, user: CurrentUser | None, event_logger: EventLogger) -> None:
    context = AnalyticsContext(
        platform=body.platform,
        app_version=body.app_version,
        session_id=body.session_id,
    )
    await event_logger.record(
        body.event_name,
        resolve_subject(user, body.subject_id),
        body.attributes,
        context=context,
        client_timestamp=body.client_timestamp,
    )


async def ingest_event(
    body: EventIngest, user: CurrentUser | None, event_logger: EventLogger
) -> EventAcceptedResponse:
    await _record(body, user, event_logger)
    return EventAcceptedResponse(accepted=1)


async def ingest_batch(
    body: EventBatchIngest, user: CurrentUser | None, event_logger: EventLogger
) -> EventAcceptedResponse:
    for event in body.events:
        await _record(event, user, event_logger)
    return EventAcceptedResponse(accepted=len(body.events))
