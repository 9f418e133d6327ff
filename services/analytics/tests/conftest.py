from collections import defaultdict
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401 - register with Base
from app.context import AnalyticsContext
from app.database import set_session_factory
from app.events.service import EventLogger
from app.gating.engine import AssignmentEngine
from app.main import create_app
from app.metrics.service import MetricsAggregator
from app.models.enums import Platform
from app.rate_limit import limiter
from shared.auth.config import AuthSettings
from shared.constants import Role
from shared.database.postgres import Base, session_factory_for

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeRedis:
    """In-memory stand-in for the two hash commands the counter store uses."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = defaultdict(dict)
        self.fail = False
        self.calls: list[tuple] = []

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        self.calls.append(("hincrby", key, field, amount))
        if self.fail:
            raise ConnectionError("redis unavailable")
        value = int(self.hashes[key].get(field, 0)) + amount
        self.hashes[key][field] = str(value)
        return value

    async def hget(self, key: str, field: str) -> str | None:
        self.calls.append(("hget", key, field))
        if self.fail:
            raise ConnectionError("redis unavailable")
        return self.hashes.get(key, {}).get(field)

    async def aclose(self) -> None:
        return None


class BrokenSessionFactory:
    """Session factory whose every session fails, simulating a store outage."""

    def __init__(self) -> None:
        self.attempts = 0

    def __call__(self) -> AsyncSession:
        self.attempts += 1
        raise ConnectionError("event store unavailable")


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return session_factory_for(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def broken_session_factory() -> BrokenSessionFactory:
    return BrokenSessionFactory()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def context() -> AnalyticsContext:
    return AnalyticsContext(
        platform=Platform.IOS, app_version="2.1.0", session_id="session_1700000000000_abcd1234"
    )


@pytest.fixture
def event_logger(session_factory, fake_redis, context) -> EventLogger:
    return EventLogger(session_factory, fake_redis, context)


@pytest.fixture
def assignment_engine(session_factory, event_logger, fake_clock) -> AssignmentEngine:
    return AssignmentEngine(
        session_factory, cache_ttl_s=300, event_logger=event_logger, clock=fake_clock
    )


@pytest.fixture
def aggregator(session_factory, fake_redis) -> MetricsAggregator:
    return MetricsAggregator(session_factory, redis=fake_redis)


@pytest.fixture
def make_token() -> Callable[..., str]:
    settings = AuthSettings()

    def _make(*roles: Role, sub: str | None = None) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": sub or str(uuid4()),
            "email": "operator@mealfix.test",
            "roles": [r.value for r in roles],
            "iss": settings.issuer,
            "aud": settings.audience,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=15)).timestamp()),
        }
        return jwt.encode(claims, settings.secret, algorithm=settings.algorithm)

    return _make


@pytest.fixture
def admin_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(Role.ADMIN)}"}


@pytest_asyncio.fixture
async def async_client(
    session_factory, fake_redis, event_logger, assignment_engine, aggregator
) -> AsyncGenerator[AsyncClient, None]:
    # ASGITransport does not run the lifespan; install its objects directly.
    set_session_factory(session_factory)
    limiter.reset()
    app = create_app()
    app.state.redis = fake_redis
    app.state.event_logger = event_logger
    app.state.assignment_engine = assignment_engine
    app.state.metrics_aggregator = aggregator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
