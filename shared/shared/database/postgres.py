import os
import ssl
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _build_ssl_connect_args() -> dict[str, Any]:
    """Return asyncpg ``connect_args`` for SSL when DATABASE_SSL is set."""
    mode = os.environ.get("DATABASE_SSL", "").lower()
    if not mode or mode == "disable":
        return {}

    cert_path = os.environ.get("RDS_SSL_CERT", "")
    if cert_path and Path(cert_path).exists():
        ctx = ssl.create_default_context(cafile=cert_path)
        return {"connect_args": {"ssl": ctx}}

    # Fall back to simple 'require' (encrypted, no cert verification)
    return {"connect_args": {"ssl": "require"}}


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _pool_kwargs() -> dict[str, Any]:
    """Pool sizing for the event write path, overridable per deployment."""
    return {
        "pool_pre_ping": True,
        "pool_size": int(os.environ.get("DATABASE_POOL_SIZE", "10")),
        "max_overflow": int(os.environ.get("DATABASE_MAX_OVERFLOW", "20")),
        "pool_recycle": int(os.environ.get("DATABASE_POOL_RECYCLE_S", "1800")),
    }


def get_async_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    # SQLite (local dev / tests) takes neither pool sizing nor asyncpg SSL args.
    if _is_sqlite(database_url):
        return create_async_engine(database_url, **kwargs)
    merged = {**_pool_kwargs(), **_build_ssl_connect_args(), **kwargs}
    return create_async_engine(database_url, **merged)


def get_async_session_factory(
    database_url: str,
    *,
    expire_on_commit: bool = False,
    **engine_kwargs: Any,
) -> async_sessionmaker[AsyncSession]:
    engine = get_async_engine(database_url, **engine_kwargs)
    return session_factory_for(engine, expire_on_commit=expire_on_commit)


def session_factory_for(
    engine: AsyncEngine, *, expire_on_commit: bool = False
) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=expire_on_commit,
        autoflush=False,
        autocommit=False,
    )

