"""
Async engine, session factory and the request-scoped session dependency.

Sessions keep attributes loaded after commit (expire_on_commit=False) because
the booking engine commits several times per request: once for the ledger
write and once for the attempt log.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from interview_booking.core.config import get_settings

settings = get_settings()


def build_engine(url: str, **overrides):
    if url.startswith("sqlite"):
        # 15s busy timeout so concurrent writers wait instead of failing outright.
        kwargs = {"connect_args": {"timeout": 15}}
    else:
        kwargs = {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": settings.DB_POOL_TIMEOUT,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
    kwargs.update(overrides)
    return create_async_engine(url, echo=settings.DEBUG, **kwargs)


def build_session_factory(bind) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; commit on success, roll back on any error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
