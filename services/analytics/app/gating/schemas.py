"""Pydantic V2 schemas for the gating domain (feature flags + A/B tests).

Definitions:    FlagDefinition, ABTestDefinition (immutable snapshots the
                AssignmentEngine caches and evaluates)
Input schemas:  FeatureFlagCreate, FeatureFlagUpdate, ABTestCreate, ABTestUpdate,
                ConversionIngest
Output schemas: FeatureFlagResponse, ABTestResponse, FlagEvaluationResponse,
                VariantResponse
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.enums import ALL_PLATFORMS, ABTestStatus, FeatureFlagStatus, Platform

Variant = Literal["control", "variant"]

_PLATFORM_NAMES = frozenset({p.value for p in Platform} | {ALL_PLATFORMS})


def _check_platforms(platforms: list[str]) -> list[str]:
    cleaned = [p.strip().lower() for p in platforms]
    unknown = sorted(set(cleaned) - _PLATFORM_NAMES)
    if unknown:
        raise ValueError(f"Unknown platform(s): {', '.join(unknown)}.")
    return cleaned


def _check_allocation(control: GroupDefinition, variant: GroupDefinition) -> None:
    total = control.percentage + variant.percentage
    if total != 100:
        raise ValueError(f"control_group + variant_group percentages must sum to 100, got {total}.")


# ---------------------------------------------------------------------------
# Shared sub-schemas
# ---------------------------------------------------------------------------


class GroupDefinition(BaseModel):
    """One arm of an A/B test.

    Example:
      {"name": "Current Layout", "description": "Image on top", "percentage": 50}
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=100, description="Display name of the arm.")
    description: str = ""
    percentage: int = Field(..., ge=0, le=100, description="Share of traffic for this arm.")


class FlagDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    flag_id: uuid.UUID
    name: str
    status: FeatureFlagStatus
    rollout_percentage: int = 0
    platforms: tuple[str, ...] = (ALL_PLATFORMS,)
    anonymous_safe: bool = False

    def supports(self, platform: str | Platform) -> bool:
        value = platform.value if isinstance(platform, Platform) else str(platform).lower()
        return ALL_PLATFORMS in self.platforms or value in self.platforms


class ABTestDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    test_id: uuid.UUID
    name: str
    status: ABTestStatus
    control_group: GroupDefinition
    variant_group: GroupDefinition
    metrics: tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status == ABTestStatus.ACTIVE


# ---------------------------------------------------------------------------
# Feature flag schemas
# ---------------------------------------------------------------------------


class FeatureFlagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150, description="Unique flag name.")
    description: str = ""
    status: FeatureFlagStatus = FeatureFlagStatus.DISABLED
    rollout_percentage: int = Field(
        0, ge=0, le=100, description="Only used when status=percentage_rollout."
    )
    platforms: list[str] = Field(
        default_factory=lambda: [ALL_PLATFORMS],
        min_length=1,
        description="Platforms the flag applies to: ios, android, web, or all.",
    )
    anonymous_safe: bool = Field(
        False, description="Allow an enabled flag to apply to signed-out subjects."
    )

    @field_validator("platforms")
    @classmethod
    def check_platforms(cls, v: list[str]) -> list[str]:
        return _check_platforms(v)


class FeatureFlagUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=150)
    description: str | None = None
    status: FeatureFlagStatus | None = None
    rollout_percentage: int | None = Field(None, ge=0, le=100)
    platforms: list[str] | None = Field(None, min_length=1)
    anonymous_safe: bool | None = None

    @field_validator("platforms")
    @classmethod
    def check_platforms(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _check_platforms(v)


class FeatureFlagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    flag_id: uuid.UUID
    name: str
    description: str
    status: FeatureFlagStatus
    rollout_percentage: int
    platforms: list[str]
    anonymous_safe: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# A/B test schemas
# ---------------------------------------------------------------------------


class ABTestCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Unique test name.")
    description: str = ""
    status: ABTestStatus = ABTestStatus.ACTIVE
    control_group: GroupDefinition
    variant_group: GroupDefinition
    metrics: list[str] = Field(default_factory=list, description="Conversion metrics tracked.")
    start_date: datetime | None = None
    end_date: datetime | None = None

    @model_validator(mode="after")
    def check_allocation(self) -> "ABTestCreate":
        _check_allocation(self.control_group, self.variant_group)
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date.")
        return self


class ABTestUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    control_group: GroupDefinition | None = None
    variant_group: GroupDefinition | None = None
    metrics: list[str] | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class ABTestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    test_id: uuid.UUID
    name: str
    description: str
    status: ABTestStatus
    control_group: GroupDefinition
    variant_group: GroupDefinition
    metrics: list[str]
    start_date: datetime | None
    end_date: datetime | None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Client-facing gating schemas
# ---------------------------------------------------------------------------


class FlagEvaluationResponse(BaseModel):
    flag_name: str
    platform: Platform
    enabled: bool


class VariantResponse(BaseModel):
    test_name: str
    variant: Variant | None = Field(None, description="null when the test is missing or not active.")


class ConversionIngest(BaseModel):
    metric_name: str = Field(..., min_length=1, max_length=100)
    value: str | int | float | bool | None = None
