"""Timing helpers that report durations as performance_metric events.

    async with measure(event_logger, "api_call_suggest_recipes"):
        await suggest_recipes(...)

On success the elapsed milliseconds are recorded under ``metric_name``; when
the block raises, under ``<metric_name>_error`` and the exception propagates.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from app.events.service import EventLogger

T = TypeVar("T")


def _elapsed_ms(started: float) -> int:
    return round((time.perf_counter() - started) * 1000)


@asynccontextmanager
async def measure(
    event_logger: EventLogger,
    metric_name: str,
    subject_id: str | None = None,
) -> AsyncIterator[None]:
    started = time.perf_counter()
    try:
        yield
    except Exception:
        await event_logger.track_performance_metric(
            f"{metric_name}_error", _elapsed_ms(started), subject_id
        )
        raise
    await event_logger.track_performance_metric(metric_name, _elapsed_ms(started), subject_id)


async def measure_async(
    event_logger: EventLogger,
    metric_name: str,
    fn: Callable[[], Awaitable[T]],
    subject_id: str | None = None,
) -> T:
    async with measure(event_logger, metric_name, subject_id):
        return await fn()


async def track_api_performance(
    event_logger: EventLogger, api_name: str, fn: Callable[[], Awaitable[T]]
) -> T:
    return await measure_async(event_logger, f"api_call_{api_name}", fn)


async def track_llm_performance(
    event_logger: EventLogger, model: str, fn: Callable[[], Awaitable[T]]
) -> T:
    return await measure_async(event_logger, f"llm_generate_{model}", fn)
