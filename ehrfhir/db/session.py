"""Database engine and request-scoped sessions.

One request is one transaction: the compare-and-swap on resource_versions, the
resource_history append and the resource row write commit together, and any
failure rolls all three back. get_async_session is the only place that commits.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ehrfhir.config.settings import LogLevel, get_settings


class Base(DeclarativeBase):
    """Declarative base for the version, history and resource tables."""

    pass


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Async engine for *url*; connection pre-ping only for server databases."""
    options: dict[str, Any] = {"echo": echo}
    if not url.startswith("sqlite"):
        options["pool_pre_ping"] = True
    return create_async_engine(url, **options)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows stay readable after commit; routers render responses from them
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


_settings = get_settings()

engine = build_engine(_settings.DATABASE_URL, echo=_settings.LOG_LEVEL == LogLevel.DEBUG)
async_session_factory = make_session_factory(engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield the request's session; commit on success, roll back on any error.

    Repositories and the version tracker only add(), flush() and execute().
    A ConflictError raised mid-request therefore leaves no partial version
    bump or orphan history entry behind.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
