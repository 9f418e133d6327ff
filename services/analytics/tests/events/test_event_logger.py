import asyncio

import pytest
from sqlalchemy import select

from app.context import AnalyticsContext
from app.events.counters import TOTAL_USERS_FIELD, USER_STATS_KEY
from app.events.service import EventLogger
from app.models.enums import Platform
from app.models.event import ANONYMOUS_SUBJECT, AnalyticsEvent, AppendOnlyViolation


async def _stored(session_factory) -> list[AnalyticsEvent]:
    async with session_factory() as session:
        result = await session.execute(select(AnalyticsEvent).order_by(AnalyticsEvent.occurred_at))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_record_appends_event_stamped_with_context(event_logger, session_factory, context) -> None:
    await event_logger.record("view_recipe", "user-1", {"recipe_name": "Pasta"})

    rows = await _stored(session_factory)
    assert len(rows) == 1
    row = rows[0]
    assert row.event_name == "view_recipe"
    assert row.subject_id == "user-1"
    assert row.session_id == context.session_id
    assert row.platform == Platform.IOS
    assert row.app_version == "2.1.0"
    assert row.attributes == {"recipe_name": "Pasta"}
    assert row.client_timestamp is not None
    assert row.occurred_at.tzinfo is not None


@pytest.mark.asyncio
async def test_missing_subject_is_recorded_as_anonymous(event_logger, session_factory) -> None:
    await event_logger.record("screen_view", attributes={"screen_name": "home"})
    rows = await _stored(session_factory)
    assert rows[0].subject_id == ANONYMOUS_SUBJECT


@pytest.mark.asyncio
async def test_per_call_context_overrides_logger_context(event_logger, session_factory) -> None:
    android = AnalyticsContext(platform=Platform.ANDROID, app_version="3.0.0", session_id="session_x")
    await event_logger.record("user_login", "user-2", {"auth_method": "email"}, context=android)
    row = (await _stored(session_factory))[0]
    assert row.platform == Platform.ANDROID
    assert row.app_version == "3.0.0"
    assert row.session_id == "session_x"


@pytest.mark.asyncio
async def test_signup_writes_event_and_bumps_counter(event_logger, session_factory, fake_redis) -> None:
    await event_logger.record("user_signup", "user-3", {"auth_method": "google"})
    await event_logger.record("user_signup", "user-4", {"auth_method": "email"})

    assert len(await _stored(session_factory)) == 2
    assert fake_redis.hashes[USER_STATS_KEY][TOTAL_USERS_FIELD] == "2"


@pytest.mark.asyncio
async def test_non_counter_events_do_not_touch_redis(event_logger, fake_redis) -> None:
    await event_logger.record("view_recipe", "user-1", {"recipe_name": "Soup"})
    assert fake_redis.calls == []


@pytest.mark.asyncio
async def test_store_outage_does_not_raise_and_counter_still_moves(
    broken_session_factory, fake_redis, context
) -> None:
    logger = EventLogger(broken_session_factory, fake_redis, context)

    await logger.record("user_signup", "user-5", {"auth_method": "email"})

    assert broken_session_factory.attempts == 1
    assert fake_redis.hashes[USER_STATS_KEY][TOTAL_USERS_FIELD] == "1"


@pytest.mark.asyncio
async def test_counter_outage_does_not_block_append(event_logger, session_factory, fake_redis) -> None:
    fake_redis.fail = True
    await event_logger.record("user_signup", "user-6", {"auth_method": "apple"})

    rows = await _stored(session_factory)
    assert [r.event_name for r in rows] == ["user_signup"]
    assert len([c for c in fake_redis.calls if c[0] == "hincrby"]) == 1


@pytest.mark.asyncio
async def test_malformed_event_is_dropped_without_raising(event_logger, session_factory) -> None:
    await event_logger.record("", "user-1")
    assert await _stored(session_factory) == []


@pytest.mark.asyncio
async def test_stored_events_cannot_be_updated(event_logger, session_factory) -> None:
    await event_logger.record("view_recipe", "user-1", {"recipe_name": "Pasta"})
    async with session_factory() as session:
        row = (await session.execute(select(AnalyticsEvent))).scalar_one()
        row.app_version = "9.9.9"
        with pytest.raises(AppendOnlyViolation):
            await session.commit()


@pytest.mark.asyncio
async def test_stored_events_cannot_be_deleted(event_logger, session_factory) -> None:
    await event_logger.record("view_recipe", "user-1", {"recipe_name": "Pasta"})
    async with session_factory() as session:
        row = (await session.execute(select(AnalyticsEvent))).scalar_one()
        await session.delete(row)
        with pytest.raises(AppendOnlyViolation):
            await session.commit()


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_batch_buffers_until_max_size(session_factory, fake_redis, context) -> None:
    logger = EventLogger(session_factory, fake_redis, context, batch_enabled=True, batch_max_size=3)

    await logger.record("view_recipe", "u1", {"recipe_name": "A"})
    await logger.record("view_recipe", "u2", {"recipe_name": "B"})
    assert logger.pending == 2
    assert await _stored(session_factory) == []

    await logger.record("view_recipe", "u3", {"recipe_name": "C"})
    assert logger.pending == 0
    assert len(await _stored(session_factory)) == 3


@pytest.mark.asyncio
async def test_batch_counter_is_not_deferred(session_factory, fake_redis, context) -> None:
    logger = EventLogger(session_factory, fake_redis, context, batch_enabled=True, batch_max_size=10)
    await logger.record("user_signup", "u1", {"auth_method": "email"})
    assert logger.pending == 1
    assert fake_redis.hashes[USER_STATS_KEY][TOTAL_USERS_FIELD] == "1"


@pytest.mark.asyncio
async def test_flush_failure_drops_batch(broken_session_factory, fake_redis, context) -> None:
    logger = EventLogger(broken_session_factory, fake_redis, context, batch_enabled=True)
    await logger.record("view_recipe", "u1", {"recipe_name": "A"})

    assert await logger.flush() == 0
    assert logger.pending == 0


@pytest.mark.asyncio
async def test_flush_loop_flushes_remaining_on_cancel(session_factory, fake_redis, context) -> None:
    logger = EventLogger(session_factory, fake_redis, context, batch_enabled=True, batch_max_size=50)
    task = asyncio.create_task(logger.run_flush_loop(3600))
    await asyncio.sleep(0)
    await logger.record("view_recipe", "u1", {"recipe_name": "A"})

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert logger.pending == 0
    assert len(await _stored(session_factory)) == 1


# ---------------------------------------------------------------------------
# Trackers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_track_screen_view_emits_legacy_screen_time(event_logger, session_factory) -> None:
    await event_logger.track_screen_view("recipe_detail", 4600, "user-1")

    rows = await _stored(session_factory)
    by_name = {r.event_name: r.attributes for r in rows}
    assert by_name["screen_view"] == {"screen_name": "recipe_detail", "time_spent_ms": 4600}
    assert by_name["screen_time"] == {
        "screen": "recipe_detail",
        "timeSpentSeconds": 5,
        "hasRecipes": False,
    }


@pytest.mark.asyncio
async def test_track_recipe_save_records_unsave_action(event_logger, session_factory) -> None:
    await event_logger.track_recipe_save("Pasta", is_saving=False, subject_id="user-1")
    row = (await _stored(session_factory))[0]
    assert row.event_name == "save_recipe"
    assert row.attributes["action"] == "unsave"


@pytest.mark.asyncio
async def test_track_dietary_toggle_maps_enabled_to_add(event_logger, session_factory) -> None:
    await event_logger.track_dietary_toggle("Vegan", "diet_plan", True, "user-1")
    row = (await _stored(session_factory))[0]
    assert row.attributes == {"preference": "Vegan", "category": "diet_plan", "action": "add"}


@pytest.mark.asyncio
async def test_invalid_tracker_payload_is_dropped(event_logger, session_factory) -> None:
    await event_logger.track_recipe_rating("Pasta", rating=9, subject_id="user-1")
    assert await _stored(session_factory) == []


@pytest.mark.asyncio
async def test_track_error_keeps_caller_context(event_logger, session_factory) -> None:
    await event_logger.track_error(
        "llm_timeout", "generation took too long", "user-1", context={"model": "fast"}
    )
    row = (await _stored(session_factory))[0]
    assert row.event_name == "recipe_error"
    assert row.attributes == {
        "model": "fast",
        "error_type": "llm_timeout",
        "error_message": "generation took too long",
    }


@pytest.mark.asyncio
async def test_track_ingredient_search_counts_ingredients(event_logger, session_factory) -> None:
    await event_logger.track_ingredient_search(["tomato", "basil"], "user-1")
    row = (await _stored(session_factory))[0]
    assert row.attributes == {"ingredients": ["tomato", "basil"], "count": 2}
