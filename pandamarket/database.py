from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from pandamarket.cache import cache
from pandamarket.config import settings
from pandamarket.middleware import install_query_counter

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG and not settings.is_production,
    pool_pre_ping=True,
)
install_query_counter(engine)

# Serialised responses are built after commits (price fan-out), so loaded
# attributes must survive them.
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    # Load server-generated timestamps with RETURNING on flush; lazy loads
    # of expired attributes are not possible under AsyncSession.
    __mapper_args__ = {"eager_defaults": True}


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    One session per request, committed when the handler returns.

    Services may commit earlier themselves (a price change commits before
    its notification fan-out); the final commit is then a no-op.  List
    caches queued with ``cache.invalidate_after_commit`` are dropped once
    the commit succeeds.  Any exception rolls back whatever is still
    pending and propagates.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            cache.discard_pending(session)
            raise
        await cache.flush_pending(session)
