import pytest

from app.events.counters import (
    TOTAL_USERS_FIELD,
    USER_STATS_KEY,
    counter_for,
    get_user_stats,
    increment_counter,
)


def test_only_signups_are_counter_eligible() -> None:
    assert counter_for("user_signup") == (USER_STATS_KEY, TOTAL_USERS_FIELD)
    assert counter_for("user_login") is None
    assert counter_for("view_recipe") is None


@pytest.mark.asyncio
async def test_increment_and_read_back(fake_redis) -> None:
    assert await increment_counter(fake_redis, USER_STATS_KEY, TOTAL_USERS_FIELD) is True
    assert await increment_counter(fake_redis, USER_STATS_KEY, TOTAL_USERS_FIELD, 4) is True
    assert await get_user_stats(fake_redis) == 5


@pytest.mark.asyncio
async def test_counter_failures_are_reported_not_raised(fake_redis) -> None:
    fake_redis.fail = True
    assert await increment_counter(fake_redis, USER_STATS_KEY, TOTAL_USERS_FIELD) is False
    assert await get_user_stats(fake_redis) == 0


@pytest.mark.asyncio
async def test_user_stats_without_redis_is_zero() -> None:
    assert await get_user_stats(None) == 0


@pytest.mark.asyncio
async def test_corrupt_counter_value_reads_as_zero(fake_redis) -> None:
    fake_redis.hashes[USER_STATS_KEY][TOTAL_USERS_FIELD] = "not-a-number"
    assert await get_user_stats(fake_redis) == 0
