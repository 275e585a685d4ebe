from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from flashgen.core.config import settings
from flashgen.core.logging import get_logger

from datetime import datetime, timezone
from typing import AsyncIterator


Base = declarative_base()


def build_engine(connection_string: str, *, echo: bool = False) -> AsyncEngine:
    if connection_string.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them
        return create_async_engine(connection_string, echo=echo, poolclass=NullPool)
    return create_async_engine(connection_string, echo=echo, pool_pre_ping=True)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False)


connection_string = str(settings.database.connection_string)

engine = build_engine(connection_string, echo=settings.database.echo)

async_session_maker = build_session_maker(engine)


logger = get_logger(__name__)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Session rolled back due to error: {e}")
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives a request (streams, jobs)."""
    return async_session_maker


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
