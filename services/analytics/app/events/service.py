"""Event logging service — dual write of analytics events, no FastAPI imports.

Every record() call:
  1. builds an EventRecord stamped with the session id / platform / app version
     of the active AnalyticsContext and a client timestamp taken at call time;
  2. appends it to the analytics_events table (primary, queryable);
  3. bumps the matching Redis counter when the event is counter-eligible
     (currently only user_signup).

The two writes are independent: a failed counter bump never undoes the append
and vice versa. A failed append is dropped (no retry) and logged. record()
never raises — analytics must not interrupt the user action that triggered it.

With batching enabled, records are buffered in memory and written in one
transaction by flush() (on size, on interval via run_flush_loop(), or on
shutdown via aclose()).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.context import AnalyticsContext
from app.events.counters import counter_for, increment_counter
from app.events.payloads import (
    AuthPayload,
    DietaryTogglePayload,
    EventPayload,
    IngredientSearchPayload,
    PerformanceMetricPayload,
    RecipeDeletePayload,
    RecipeErrorPayload,
    RecipeGenerationPayload,
    RecipeRatingPayload,
    RecipeSharePayload,
    SaveRecipePayload,
    ScreenTimePayload,
    ScreenViewPayload,
    ViewRecipePayload,
)
from app.events.schemas import EventRecord
from app.models.enums import EventName
from app.models.event import ANONYMOUS_SUBJECT, AnalyticsEvent
from app.models.types import utcnow

logger = logging.getLogger(__name__)


def _to_row(record: EventRecord, occurred_at: datetime) -> AnalyticsEvent:
    return AnalyticsEvent(
        event_name=record.event_name,
        subject_id=record.subject_id,
        session_id=record.session_id,
        platform=record.platform,
        app_version=record.app_version,
        attributes=dict(record.attributes),
        client_timestamp=record.client_timestamp,
        occurred_at=occurred_at,
    )


class EventLogger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Redis | None,
        context: AnalyticsContext,
        *,
        batch_enabled: bool = False,
        batch_max_size: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.redis = redis
        self.context = context
        self.batch_enabled = batch_enabled
        self.batch_max_size = max(1, batch_max_size)
        self._clock = clock
        self._buffer: list[tuple[EventRecord, datetime]] = []

    # -----------------------------------------------------------------------
    # Core
    # -----------------------------------------------------------------------

    def build_record(
        self,
        event_name: str,
        subject_id: str | None = None,
        attributes: dict[str, Any] | None = None,
        *,
        context: AnalyticsContext | None = None,
        client_timestamp: datetime | None = None,
    ) -> EventRecord:
        ctx = context or self.context
        return EventRecord(
            event_name=event_name,
            subject_id=subject_id or ANONYMOUS_SUBJECT,
            session_id=ctx.session_id,
            platform=ctx.platform,
            app_version=ctx.app_version,
            attributes=attributes or {},
            client_timestamp=client_timestamp or self._clock(),
        )

    async def record(
        self,
        event_name: str,
        subject_id: str | None = None,
        attributes: dict[str, Any] | None = None,
        *,
        context: AnalyticsContext | None = None,
        client_timestamp: datetime | None = None,
    ) -> None:
        """Record one event. Never raises."""
        try:
            record = self.build_record(
                event_name,
                subject_id,
                attributes,
                context=context,
                client_timestamp=client_timestamp,
            )
        except ValidationError as exc:
            logger.warning("Dropping malformed analytics event %r: %s", event_name, exc)
            return

        occurred_at = self._clock()
        if self.batch_enabled:
            self._buffer.append((record, occurred_at))
            if len(self._buffer) >= self.batch_max_size:
                await self.flush()
        else:
            await self._append([(record, occurred_at)])

        counter = counter_for(record.event_name)
        if counter is not None and self.redis is not None:
            key, field = counter
            await increment_counter(self.redis, key, field)

    async def _append(self, records: Sequence[tuple[EventRecord, datetime]]) -> bool:
        try:
            async with self.session_factory() as session:
                session.add_all([_to_row(r, at) for r, at in records])
                await session.commit()
        except Exception as exc:
            names = ", ".join(sorted({r.event_name for r, _ in records}))
            logger.warning(
                "Analytics event write failed, dropping %d event(s) [%s]: %s",
                len(records),
                names,
                exc,
            )
            return False
        return True

    # -----------------------------------------------------------------------
    # Batching
    # -----------------------------------------------------------------------

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def flush(self) -> int:
        """Write buffered records in one transaction. Returns the count written."""
        if not self._buffer:
            return 0
        batch, self._buffer = self._buffer, []
        return len(batch) if await self._append(batch) else 0

    async def run_flush_loop(self, interval_s: float) -> None:
        """Flush on an interval until cancelled."""
        try:
            while True:
                await asyncio.sleep(interval_s)
                await self.flush()
        except asyncio.CancelledError:
            await self.flush()
            raise

    async def aclose(self) -> None:
        await self.flush()

    # -----------------------------------------------------------------------
    # Trackers for the known event vocabulary
    # -----------------------------------------------------------------------

    async def _track(
        self,
        event_name: EventName,
        subject_id: str | None,
        payload_type: type[EventPayload],
        fields: dict[str, Any],
    ) -> None:
        try:
            payload = payload_type.model_validate(fields)
        except ValidationError as exc:
            logger.warning("Dropping invalid %s payload: %s", event_name.value, exc)
            return
        await self.record(event_name.value, subject_id, payload.to_attributes())

    async def track_recipe_view(
        self,
        recipe_name: str,
        subject_id: str | None = None,
        *,
        difficulty: str | None = None,
        time_estimate: int | str | None = None,
        total_ingredients: int | None = None,
        has_nutrition_info: bool | None = None,
        has_dietary_info: bool | None = None,
    ) -> None:
        await self._track(
            EventName.VIEW_RECIPE,
            subject_id,
            ViewRecipePayload,
            {
                "recipe_name": recipe_name,
                "difficulty": difficulty,
                "time_estimate": time_estimate,
                "total_ingredients": total_ingredients,
                "has_nutrition_info": has_nutrition_info,
                "has_dietary_info": has_dietary_info,
            },
        )

    async def track_recipe_save(
        self,
        recipe_name: str,
        is_saving: bool,
        subject_id: str | None = None,
        *,
        difficulty: str | None = None,
        time_estimate: int | str | None = None,
    ) -> None:
        await self._track(
            EventName.SAVE_RECIPE,
            subject_id,
            SaveRecipePayload,
            {
                "recipe_name": recipe_name,
                "action": "save" if is_saving else "unsave",
                "difficulty": difficulty,
                "time_estimate": time_estimate,
            },
        )

    async def track_recipe_delete(
        self, recipe_name: str, subject_id: str | None = None, *, difficulty: str | None = None
    ) -> None:
        await self._track(
            EventName.RECIPE_DELETE,
            subject_id,
            RecipeDeletePayload,
            {"recipe_name": recipe_name, "difficulty": difficulty},
        )

    async def track_dietary_toggle(
        self,
        preference: str,
        category: str,
        is_enabled: bool,
        subject_id: str | None = None,
    ) -> None:
        await self._track(
            EventName.DIETARY_TOGGLE,
            subject_id,
            DietaryTogglePayload,
            {
                "preference": preference,
                "category": category,
                "action": "add" if is_enabled else "remove",
            },
        )

    async def track_screen_view(
        self, screen_name: str, time_spent_ms: int, subject_id: str | None = None
    ) -> None:
        """Emit screen_view plus the legacy screen_time event (seconds)."""
        await self._track(
            EventName.SCREEN_VIEW,
            subject_id,
            ScreenViewPayload,
            {"screen_name": screen_name, "time_spent_ms": time_spent_ms},
        )
        await self._track(
            EventName.SCREEN_TIME,
            subject_id,
            ScreenTimePayload,
            {
                "screen": screen_name,
                "timeSpentSeconds": round(time_spent_ms / 1000),
                "hasRecipes": False,
            },
        )

    async def track_ingredient_search(
        self, ingredients: list[str], subject_id: str | None = None
    ) -> None:
        await self._track(
            EventName.SEARCH_INGREDIENTS,
            subject_id,
            IngredientSearchPayload,
            {"ingredients": ingredients, "count": len(ingredients)},
        )

    async def track_login(self, method: str, subject_id: str | None = None) -> None:
        await self._track(EventName.USER_LOGIN, subject_id, AuthPayload, {"auth_method": method})

    async def track_signup(self, method: str, subject_id: str | None = None) -> None:
        """Signup event; record() also bumps the dashboard user counter."""
        await self._track(EventName.USER_SIGNUP, subject_id, AuthPayload, {"auth_method": method})

    async def track_performance_metric(
        self, metric_name: str, value_ms: float, subject_id: str | None = None
    ) -> None:
        await self._track(
            EventName.PERFORMANCE_METRIC,
            subject_id,
            PerformanceMetricPayload,
            {"metric_name": metric_name, "value_ms": max(0.0, value_ms)},
        )

    async def track_recipe_rating(
        self, recipe_name: str, rating: int, subject_id: str | None = None
    ) -> None:
        await self._track(
            EventName.RECIPE_RATING,
            subject_id,
            RecipeRatingPayload,
            {"recipe_name": recipe_name, "rating": rating},
        )

    async def track_recipe_share(
        self, recipe_name: str, share_method: str, subject_id: str | None = None
    ) -> None:
        await self._track(
            EventName.RECIPE_SHARE,
            subject_id,
            RecipeSharePayload,
            {"recipe_name": recipe_name, "share_method": share_method},
        )

    async def track_error(
        self,
        error_type: str,
        error_message: str,
        subject_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        await self._track(
            EventName.RECIPE_ERROR,
            subject_id,
            RecipeErrorPayload,
            {**(context or {}), "error_type": error_type, "error_message": error_message},
        )

    async def track_recipe_generation(
        self,
        ingredients: list[str],
        dietary_restrictions: list[str],
        recipes_count: int,
        latency_ms: float,
        subject_id: str | None = None,
    ) -> None:
        await self._track(
            EventName.GENERATE_RECIPE,
            subject_id,
            RecipeGenerationPayload,
            {
                "ingredients_count": len(ingredients),
                "ingredients": ingredients,
                "dietary_restrictions": dietary_restrictions,
                "recipes_count": recipes_count,
                "latency_ms": latency_ms,
            },
        )
