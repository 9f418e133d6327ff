"""FeatureFlag and ABTest ORM models (dashboard-managed configuration).

FeatureFlag:
  status=percentage_rollout gates on `rollout_percentage` (0..100); the value is
  ignored for any other status. `platforms` holds platform names or "all".
  `anonymous_safe` lets an `enabled` flag apply to signed-out subjects.

ABTest:
  Two arms stored as JSON documents:
    control_group = {"name": "Current Layout", "description": "...", "percentage": 50}
    variant_group = {"name": "New Layout",     "description": "...", "percentage": 50}
  Percentages must sum to 100 (validated at application layer).
  Assignment is computed on demand from a hash of (subject, test_id) and never
  stored per user.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Index, SmallInteger, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.enums import (
    ABTestStatus,
    FeatureFlagStatus,
    ab_test_status_enum,
    feature_flag_status_enum,
)
from app.models.types import JSONDocument, UTCDateTime, utcnow
from shared.database.postgres import Base


class FeatureFlag(Base):
    __tablename__ = "feature_flags"

    flag_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[FeatureFlagStatus] = mapped_column(
        feature_flag_status_enum, nullable=False, default=FeatureFlagStatus.DISABLED
    )
    rollout_percentage: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    platforms: Mapped[list[str]] = mapped_column(
        JSONDocument, nullable=False, default=lambda: ["all"]
    )
    anonymous_safe: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("ix_feature_flags_status", "status"),)


class ABTest(Base):
    __tablename__ = "ab_tests"

    test_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[ABTestStatus] = mapped_column(
        ab_test_status_enum, nullable=False, default=ABTestStatus.ACTIVE
    )
    control_group: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    variant_group: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    # Names of the conversion metrics tracked for this test.
    metrics: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("ix_ab_tests_status", "status"),)
