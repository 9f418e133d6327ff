"""AnalyticsEvent ORM model — the append-only event log.

One row per recorded EventRecord. Rows are written once by the EventLogger and
never updated or deleted; the mapper hooks below refuse any UPDATE or DELETE
flush so the guarantee holds for every caller sharing this metadata.

`attributes` holds the event-specific payload (recipe_name, preference,
time_spent_ms, metric_name/value_ms, ...). Aggregation queries filter on
`event_name` and order by `occurred_at` DESC with a LIMIT, which is what
`ix_analytics_events_name_time` serves.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Index, String, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from app.models.enums import Platform, platform_enum
from app.models.types import JSONDocument, UTCDateTime, utcnow
from shared.database.postgres import Base

ANONYMOUS_SUBJECT = "anonymous"


def is_anonymous(subject_id: str | None) -> bool:
    return not subject_id or subject_id == ANONYMOUS_SUBJECT


class AppendOnlyViolation(RuntimeError):
    """Raised when code attempts to mutate or delete a recorded event."""


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    event_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_name: Mapped[str] = mapped_column(String(100), nullable=False)
    subject_id: Mapped[str] = mapped_column(
        String(128), nullable=False, default=ANONYMOUS_SUBJECT
    )
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform: Mapped[Platform] = mapped_column(platform_enum, nullable=False)
    app_version: Mapped[str] = mapped_column(String(32), nullable=False)
    attributes: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    # Client wall clock, display only. May be skewed or missing.
    client_timestamp: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Write time assigned on insert. Authoritative for ordering.
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_analytics_events_name_time", "event_name", "occurred_at"),
        Index("ix_analytics_events_subject_id", "subject_id"),
        Index("ix_analytics_events_session_id", "session_id"),
    )


@event.listens_for(AnalyticsEvent, "before_update")
def _refuse_update(mapper, connection, target: AnalyticsEvent) -> None:
    raise AppendOnlyViolation(f"analytics event {target.event_id} is immutable")


@event.listens_for(AnalyticsEvent, "before_delete")
def _refuse_delete(mapper, connection, target: AnalyticsEvent) -> None:
    raise AppendOnlyViolation(f"analytics event {target.event_id} cannot be deleted")
