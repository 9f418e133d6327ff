"""Pydantic V2 schemas for the events domain.

EventRecord is the canonical, immutable shape of one analytics fact.
Input schemas:  EventIngest, EventBatchIngest
Output schemas: EventAcceptedResponse
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.events.payloads import EventPayload, parse_payload
from app.models.enums import RESERVED_EVENT_NAMES, Platform
from app.models.event import ANONYMOUS_SUBJECT, is_anonymous


class EventRecord(BaseModel):
    """One analytics event. Frozen: created once, never mutated."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    event_name: str = Field(..., min_length=1, max_length=100)
    subject_id: str = ANONYMOUS_SUBJECT
    session_id: str
    platform: Platform
    app_version: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    client_timestamp: datetime | None = None
    # Assigned by the store at write time; None until persisted.
    occurred_at: datetime | None = None

    @property
    def payload(self) -> EventPayload:
        return parse_payload(self.event_name, self.attributes)

    @property
    def is_anonymous(self) -> bool:
        return is_anonymous(self.subject_id)


class EventIngest(BaseModel):
    """Event submitted by a client.

    `subject_id` is ignored when the request carries a valid bearer token;
    the token subject wins.
    """

    event_name: str = Field(..., min_length=1, max_length=100)
    subject_id: str | None = Field(None, max_length=128)
    session_id: str = Field(..., min_length=1, max_length=64, description="Generated once per app launch.")
    platform: Platform
    app_version: str = Field("1.0.0", max_length=32)
    attributes: dict[str, Any] = Field(default_factory=dict)
    client_timestamp: datetime | None = Field(None, description="Client wall clock, display only.")

    @field_validator("event_name")
    @classmethod
    def reject_reserved(cls, v: str) -> str:
        if v in RESERVED_EVENT_NAMES:
            raise ValueError(f"'{v}' is recorded by the server and cannot be submitted.")
        return v


class EventBatchIngest(BaseModel):
    events: list[EventIngest] = Field(..., min_length=1, max_length=100)


class EventAcceptedResponse(BaseModel):
    accepted: int = Field(..., description="Events handed to the logger. Storage is best-effort.")
