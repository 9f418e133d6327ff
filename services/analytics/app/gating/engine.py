"""AssignmentEngine — feature-flag evaluation and A/B variant assignment.

Definitions are read by name from the config tables and cached per process
(TTLCache, default 300s). Decisions are computed on demand from
app.gating.hashing and never stored per subject.

Nothing here raises to the caller: a missing definition or a failed read
degrades to "off" (False for flags, None for tests).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.events.service import EventLogger
from app.gating import service
from app.gating.cache import TTLCache
from app.gating.hashing import in_rollout, two_arm_variant
from app.gating.schemas import ABTestDefinition, FlagDefinition, Variant
from app.models.enums import EventName, FeatureFlagStatus, Platform
from app.models.event import is_anonymous

logger = logging.getLogger(__name__)


class AssignmentEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        cache_ttl_s: float = 300.0,
        event_logger: EventLogger | None = None,
        log_decisions: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_factory = session_factory
        self.event_logger = event_logger
        self.log_decisions = log_decisions
        self._flags: TTLCache[FlagDefinition] = TTLCache(cache_ttl_s, clock)
        self._tests: TTLCache[ABTestDefinition] = TTLCache(cache_ttl_s, clock)

    # -----------------------------------------------------------------------
    # Definition loading
    # -----------------------------------------------------------------------

    async def load_flag(self, flag_name: str) -> FlagDefinition | None:
        cached = self._flags.get(flag_name)
        if cached is not None:
            return cached
        try:
            async with self.session_factory() as session:
                row = await service.get_flag_by_name(flag_name, session)
                definition = FlagDefinition.model_validate(row) if row is not None else None
        except Exception as exc:
            logger.warning("Feature flag read failed for %r, treating as disabled: %s", flag_name, exc)
            return None
        if definition is None:
            logger.info("Feature flag %r not found, treating as disabled", flag_name)
            return None
        self._flags.put(flag_name, definition)
        return definition

    async def load_test(self, test_name: str) -> ABTestDefinition | None:
        cached = self._tests.get(test_name)
        if cached is not None:
            return cached
        try:
            async with self.session_factory() as session:
                row = await service.get_ab_test_by_name(test_name, session)
                definition = ABTestDefinition.model_validate(row) if row is not None else None
        except Exception as exc:
            logger.warning("A/B test read failed for %r, no variant assigned: %s", test_name, exc)
            return None
        if definition is None:
            logger.info("A/B test %r not found, no variant assigned", test_name)
            return None
        self._tests.put(test_name, definition)
        return definition

    def invalidate_flag(self, flag_name: str) -> None:
        self._flags.invalidate(flag_name)

    def invalidate_test(self, test_name: str) -> None:
        self._tests.invalidate(test_name)

    def clear(self) -> None:
        self._flags.clear()
        self._tests.clear()

    # -----------------------------------------------------------------------
    # Decisions
    # -----------------------------------------------------------------------

    @staticmethod
    def evaluate_flag(
        flag: FlagDefinition, subject_id: str | None, platform: str | Platform
    ) -> bool:
        if not flag.supports(platform):
            return False
        if is_anonymous(subject_id):
            # No stable id to bucket on.
            return flag.anonymous_safe and flag.status == FeatureFlagStatus.ENABLED
        if flag.status == FeatureFlagStatus.ENABLED:
            return True
        if flag.status == FeatureFlagStatus.PERCENTAGE_ROLLOUT:
            return in_rollout(subject_id, str(flag.flag_id), flag.rollout_percentage)
        return False

    @staticmethod
    def assign(test: ABTestDefinition, subject_id: str | None) -> Variant | None:
        if not test.is_active:
            return None
        if is_anonymous(subject_id):
            return "control"
        return two_arm_variant(subject_id, str(test.test_id))

    async def is_feature_enabled(
        self, flag_name: str, subject_id: str | None, platform: str | Platform
    ) -> bool:
        flag = await self.load_flag(flag_name)
        if flag is None:
            return False
        enabled = self.evaluate_flag(flag, subject_id, platform)
        platform_value = platform.value if isinstance(platform, Platform) else str(platform)
        await self._log(
            EventName.FEATURE_FLAG_EVALUATED,
            subject_id,
            {"flag_name": flag_name, "enabled": enabled, "platform": platform_value},
        )
        return enabled

    async def get_variant(self, test_name: str, subject_id: str | None) -> Variant | None:
        test = await self.load_test(test_name)
        if test is None:
            return None
        variant = self.assign(test, subject_id)
        if variant is None:
            logger.info("A/B test %r is %s, no variant assigned", test_name, test.status.value)
            return None
        await self._log(
            EventName.AB_TEST_EXPOSURE, subject_id, {"test_name": test_name, "variant": variant}
        )
        return variant

    async def track_conversion(
        self,
        test_name: str,
        metric_name: str,
        value: str | int | float | bool | None,
        subject_id: str | None,
    ) -> None:
        """Record an ab_test_conversion tagged with the subject's current variant."""
        if self.event_logger is None:
            return
        test = await self.load_test(test_name)
        variant = self.assign(test, subject_id) if test is not None else None
        await self.event_logger.record(
            EventName.AB_TEST_CONVERSION.value,
            subject_id,
            {
                "test_name": test_name,
                "metric_name": metric_name,
                "value": value,
                "variant": variant,
            },
        )

    async def _log(self, event_name: EventName, subject_id: str | None, attributes: dict) -> None:
        if self.event_logger is None or not self.log_decisions:
            return
        await self.event_logger.record(event_name.value, subject_id, attributes)
