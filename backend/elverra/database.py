"""Async SQLAlchemy engine, session factory, and declarative base."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from elverra.config import settings

# SQLite (local runs, tests) uses a static pool that rejects sizing arguments.
_pool_options = (
    {}
    if settings.async_database_url.startswith("sqlite")
    else {"pool_size": 10, "max_overflow": 20}
)

engine = create_async_engine(
    settings.async_database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    **_pool_options,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )


class UUIDPrimaryKeyMixin:
    """Mixin that adds a UUID primary key column."""

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the columns' server defaults."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async database session for FastAPI dependency injection.

    Usage::

        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
