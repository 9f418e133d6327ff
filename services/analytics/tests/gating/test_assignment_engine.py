import pytest
from sqlalchemy import select

from app.gating import service
from app.gating.engine import AssignmentEngine
from app.gating.hashing import in_rollout, two_arm_variant
from app.models.enums import FeatureFlagStatus, Platform
from app.models.event import AnalyticsEvent

CONTROL = {"name": "Current Layout", "description": "", "percentage": 50}
VARIANT = {"name": "New Layout", "description": "", "percentage": 50}


async def _create_flag(session_factory, name: str, **fields):
    async with session_factory() as session:
        flag = await service.create_flag(name, session, **fields)
        await session.commit()
        return flag


async def _create_test(session_factory, name: str):
    async with session_factory() as session:
        test = await service.create_ab_test(name, CONTROL, VARIANT, session)
        await session.commit()
        return test


async def _events(session_factory, event_name: str) -> list[AnalyticsEvent]:
    async with session_factory() as session:
        result = await session.execute(
            select(AnalyticsEvent).where(AnalyticsEvent.event_name == event_name)
        )
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Feature flags
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_flag_is_disabled(assignment_engine, session_factory) -> None:
    assert await assignment_engine.is_feature_enabled("ghost", "user-1", Platform.IOS) is False
    assert await _events(session_factory, "feature_flag_evaluated") == []


@pytest.mark.asyncio
async def test_enabled_and_disabled_flags(assignment_engine, session_factory) -> None:
    await _create_flag(session_factory, "on_flag", status=FeatureFlagStatus.ENABLED)
    await _create_flag(session_factory, "off_flag", status=FeatureFlagStatus.DISABLED)

    assert await assignment_engine.is_feature_enabled("on_flag", "user-1", Platform.WEB) is True
    assert await assignment_engine.is_feature_enabled("off_flag", "user-1", Platform.WEB) is False


@pytest.mark.asyncio
async def test_decision_is_recorded_as_event(assignment_engine, session_factory) -> None:
    await _create_flag(session_factory, "on_flag", status=FeatureFlagStatus.ENABLED)
    await assignment_engine.is_feature_enabled("on_flag", "user-1", Platform.ANDROID)

    [event] = await _events(session_factory, "feature_flag_evaluated")
    assert event.subject_id == "user-1"
    assert event.attributes == {"flag_name": "on_flag", "enabled": True, "platform": "android"}


@pytest.mark.asyncio
async def test_decision_logging_can_be_disabled(session_factory, event_logger) -> None:
    engine = AssignmentEngine(session_factory, event_logger=event_logger, log_decisions=False)
    await _create_flag(session_factory, "on_flag", status=FeatureFlagStatus.ENABLED)
    assert await engine.is_feature_enabled("on_flag", "user-1", Platform.IOS) is True
    assert await _events(session_factory, "feature_flag_evaluated") == []


@pytest.mark.asyncio
async def test_platform_outside_flag_platforms_is_disabled(assignment_engine, session_factory) -> None:
    await _create_flag(
        session_factory, "ios_only", status=FeatureFlagStatus.ENABLED, platforms=["ios"]
    )
    assert await assignment_engine.is_feature_enabled("ios_only", "user-1", Platform.IOS) is True
    assert await assignment_engine.is_feature_enabled("ios_only", "user-1", "android") is False


@pytest.mark.asyncio
async def test_percentage_rollout_uses_flag_id_bucket(assignment_engine, session_factory) -> None:
    flag = await _create_flag(
        session_factory,
        "gradual",
        status=FeatureFlagStatus.PERCENTAGE_ROLLOUT,
        rollout_percentage=50,
    )
    for i in range(50):
        subject = f"user-{i}"
        expected = in_rollout(subject, str(flag.flag_id), 50)
        assert await assignment_engine.is_feature_enabled("gradual", subject, Platform.WEB) is expected


@pytest.mark.asyncio
async def test_anonymous_subjects(assignment_engine, session_factory) -> None:
    await _create_flag(session_factory, "signed_in_only", status=FeatureFlagStatus.ENABLED)
    await _create_flag(
        session_factory, "public", status=FeatureFlagStatus.ENABLED, anonymous_safe=True
    )
    await _create_flag(
        session_factory,
        "public_rollout",
        status=FeatureFlagStatus.PERCENTAGE_ROLLOUT,
        rollout_percentage=100,
        anonymous_safe=True,
    )

    for subject in (None, "", "anonymous"):
        assert await assignment_engine.is_feature_enabled("signed_in_only", subject, Platform.IOS) is False
        assert await assignment_engine.is_feature_enabled("public", subject, Platform.IOS) is True
        assert await assignment_engine.is_feature_enabled("public_rollout", subject, Platform.IOS) is False


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cached_definition_is_used_until_ttl(assignment_engine, session_factory, fake_clock) -> None:
    flag = await _create_flag(session_factory, "cached", status=FeatureFlagStatus.ENABLED)
    assert await assignment_engine.is_feature_enabled("cached", "user-1", Platform.IOS) is True

    async with session_factory() as session:
        await service.update_flag(flag.flag_id, {"status": FeatureFlagStatus.DISABLED}, session)
        await session.commit()

    fake_clock.advance(299)
    assert await assignment_engine.is_feature_enabled("cached", "user-1", Platform.IOS) is True

    fake_clock.advance(1)
    assert await assignment_engine.is_feature_enabled("cached", "user-1", Platform.IOS) is False


@pytest.mark.asyncio
async def test_invalidate_forces_fresh_read(assignment_engine, session_factory) -> None:
    flag = await _create_flag(session_factory, "toggled", status=FeatureFlagStatus.ENABLED)
    assert await assignment_engine.is_feature_enabled("toggled", "user-1", Platform.IOS) is True

    async with session_factory() as session:
        await service.update_flag(flag.flag_id, {"status": FeatureFlagStatus.DISABLED}, session)
        await session.commit()
    assignment_engine.invalidate_flag("toggled")

    assert await assignment_engine.is_feature_enabled("toggled", "user-1", Platform.IOS) is False


@pytest.mark.asyncio
async def test_missing_flag_is_not_cached(assignment_engine, session_factory) -> None:
    assert await assignment_engine.is_feature_enabled("late", "user-1", Platform.IOS) is False
    await _create_flag(session_factory, "late", status=FeatureFlagStatus.ENABLED)
    assert await assignment_engine.is_feature_enabled("late", "user-1", Platform.IOS) is True


@pytest.mark.asyncio
async def test_config_store_outage_degrades_to_defaults(broken_session_factory) -> None:
    engine = AssignmentEngine(broken_session_factory)
    assert await engine.is_feature_enabled("any", "user-1", Platform.IOS) is False
    assert await engine.get_variant("any", "user-1") is None
    await engine.track_conversion("any", "recipe_saves", 1, "user-1")


# ---------------------------------------------------------------------------
# A/B tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_test_has_no_variant(assignment_engine) -> None:
    assert await assignment_engine.get_variant("ghost_test", "user-1") is None


@pytest.mark.asyncio
async def test_variant_matches_hash_and_is_stable(assignment_engine, session_factory) -> None:
    test = await _create_test(session_factory, "recipe_card_layout")
    for i in range(20):
        subject = f"user-{i}"
        expected = two_arm_variant(subject, str(test.test_id))
        assert await assignment_engine.get_variant("recipe_card_layout", subject) == expected
        assert await assignment_engine.get_variant("recipe_card_layout", subject) == expected


@pytest.mark.asyncio
async def test_paused_test_has_no_variant(assignment_engine, session_factory) -> None:
    test = await _create_test(session_factory, "paused_test")
    async with session_factory() as session:
        await service.pause_ab_test(test.test_id, session)
        await session.commit()
    assert await assignment_engine.get_variant("paused_test", "user-1") is None


@pytest.mark.asyncio
async def test_anonymous_subject_gets_control(assignment_engine, session_factory) -> None:
    await _create_test(session_factory, "layout")
    assert await assignment_engine.get_variant("layout", None) == "control"
    assert await assignment_engine.get_variant("layout", "anonymous") == "control"


@pytest.mark.asyncio
async def test_exposure_and_conversion_are_recorded(assignment_engine, session_factory) -> None:
    test = await _create_test(session_factory, "layout")
    variant = await assignment_engine.get_variant("layout", "user-7")
    await assignment_engine.track_conversion("layout", "recipe_saves", 1, "user-7")

    [exposure] = await _events(session_factory, "ab_test_exposure")
    assert exposure.attributes == {"test_name": "layout", "variant": variant}

    [conversion] = await _events(session_factory, "ab_test_conversion")
    assert conversion.subject_id == "user-7"
    assert conversion.attributes == {
        "test_name": "layout",
        "metric_name": "recipe_saves",
        "value": 1,
        "variant": two_arm_variant("user-7", str(test.test_id)),
    }
