import pytest
from sqlalchemy import select

from app.events.performance import measure, track_api_performance, track_llm_performance
from app.models.event import AnalyticsEvent


async def _metric_names(session_factory) -> list[str]:
    async with session_factory() as session:
        rows = (await session.execute(select(AnalyticsEvent))).scalars().all()
    return sorted(r.attributes["metric_name"] for r in rows if r.event_name == "performance_metric")


@pytest.mark.asyncio
async def test_measure_records_elapsed_time(event_logger, session_factory) -> None:
    async with measure(event_logger, "search_latency", "user-1"):
        pass

    async with session_factory() as session:
        row = (await session.execute(select(AnalyticsEvent))).scalar_one()
    assert row.event_name == "performance_metric"
    assert row.attributes["metric_name"] == "search_latency"
    assert row.attributes["value_ms"] >= 0


@pytest.mark.asyncio
async def test_measure_records_error_metric_and_reraises(event_logger, session_factory) -> None:
    with pytest.raises(RuntimeError, match="boom"):
        async with measure(event_logger, "api_call_suggest"):
            raise RuntimeError("boom")

    assert await _metric_names(session_factory) == ["api_call_suggest_error"]


@pytest.mark.asyncio
async def test_api_and_llm_helpers_prefix_metric_names(event_logger, session_factory) -> None:
    async def fetch() -> str:
        return "ok"

    assert await track_api_performance(event_logger, "suggest_recipes", fetch) == "ok"
    assert await track_llm_performance(event_logger, "fast", fetch) == "ok"

    assert await _metric_names(session_factory) == [
        "api_call_suggest_recipes",
        "llm_generate_fast",
    ]
