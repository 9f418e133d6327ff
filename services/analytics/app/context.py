"""Per-process / per-client analytics context.

A context is built once per app launch (mobile client) or once per process
(this service) and handed to the EventLogger, instead of living in module
globals. Every record written through a logger carries the context's session
id, platform and app version.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

from app.models.enums import Platform


def new_session_id() -> str:
    """``session_<epoch-ms>_<8 hex chars>`` — unique per launch, sortable by start."""
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class AnalyticsContext:
    platform: Platform
    app_version: str
    session_id: str = field(default_factory=new_session_id)

    @classmethod
    def for_process(cls, platform: str | Platform, app_version: str) -> AnalyticsContext:
        return cls(platform=Platform(platform), app_version=app_version)
