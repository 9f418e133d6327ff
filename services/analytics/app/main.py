import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.context import AnalyticsContext
from app.database import get_session_factory, init_db
from app.dependencies import get_settings
from app.events.router import router as events_router
from app.events.service import EventLogger
from app.gating.engine import AssignmentEngine
from app.gating.router import ab_tests_router, flags_router
from app.metrics.router import router as metrics_router
from app.metrics.service import MetricsAggregator
from app.rate_limit import limiter
from shared.database.redis_client import get_redis_client
from shared.middleware import error_envelope_middleware, request_id_middleware

logger = logging.getLogger(__name__)

# Swagger tag groups displayed in the OpenAPI docs sidebar
_OPENAPI_TAGS = [
    {
        "name": "Events",
        "description": (
            "Client telemetry ingestion. Every event is appended to the event log and, "
            "for counter-eligible events, mirrored into the Redis real-time counters. "
            "Ingestion is best-effort and never fails the caller."
        ),
    },
    {
        "name": "Feature Flags",
        "description": (
            "Flag evaluation for mobile/web clients and dashboard CRUD. "
            "Percentage rollouts bucket subjects with a deterministic FNV-1a hash; "
            "definitions are cached per process for up to FLAG_CACHE_TTL_S seconds."
        ),
    },
    {
        "name": "A/B Tests",
        "description": (
            "Two-arm tests: deterministic control/variant assignment, conversion tracking, "
            "and dashboard CRUD with pause / resume / complete transitions."
        ),
    },
    {
        "name": "Metrics",
        "description": (
            "Dashboard summaries computed from recent events: popular recipes, dietary trends, "
            "engagement, performance, ingredient combinations, A/B test results. "
            "Each result carries status ok / empty / fallback."
        ),
    },
    {
        "name": "Health",
        "description": "Liveness and readiness probes.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    init_db(settings.analytics_database_url)
    session_factory = get_session_factory()

    redis_client = get_redis_client(settings.redis_url)
    app.state.redis = redis_client

    event_logger = EventLogger(
        session_factory,
        redis_client,
        AnalyticsContext.for_process(settings.server_platform, settings.app_version),
        batch_enabled=settings.event_batch_enabled,
        batch_max_size=settings.event_batch_max_size,
    )
    app.state.event_logger = event_logger
    app.state.assignment_engine = AssignmentEngine(
        session_factory,
        cache_ttl_s=settings.flag_cache_ttl_s,
        event_logger=event_logger,
        log_decisions=settings.log_gating_decisions,
    )
    app.state.metrics_aggregator = MetricsAggregator(session_factory, redis=redis_client)

    flush_task: asyncio.Task | None = None
    if settings.event_batch_enabled:
        flush_task = asyncio.create_task(
            event_logger.run_flush_loop(settings.event_batch_flush_interval_s)
        )
        logger.info(
            "Event batching enabled (max %d, every %.1fs)",
            settings.event_batch_max_size,
            settings.event_batch_flush_interval_s,
        )

    yield

    if flush_task is not None:
        flush_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await flush_task
    await event_logger.aclose()
    await redis_client.aclose()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="MealFix Analytics Service",
        description=(
            "Event logging, feature flags, A/B tests and dashboard metrics for the "
            "MealFix recipe app."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=_OPENAPI_TAGS,
        lifespan=lifespan,
    )

    # Attach rate limiter state before middleware
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS must be registered first (runs last in middleware stack)
    # so that preflight OPTIONS requests get CORS headers before any auth check.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(error_envelope_middleware)

    app.include_router(events_router, prefix="/api/v1")
    app.include_router(flags_router, prefix="/api/v1")
    app.include_router(ab_tests_router, prefix="/api/v1")
    app.include_router(metrics_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health() -> dict:
        """Lightweight liveness probe. Does not hit the database."""
        return {"status": "ok", "service": "analytics"}

    return app


app = create_app()
