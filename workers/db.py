"""Database access from synchronous Celery tasks."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from core.config import settings

T = TypeVar("T")


def run_with_session(fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """
    Run ``fn(session)`` on a fresh event loop and return its result.

    Each call gets its own engine without pooling: prefork workers must not
    share connections bound to another process or event loop.
    """

    async def _runner() -> T:
        engine = create_async_engine(settings.database_url, poolclass=NullPool)
        try:
            session_factory = async_sessionmaker(engine, expire_on_commit=False)
            async with session_factory() as session:
                return await fn(session)
        finally:
            await engine.dispose()

    return asyncio.run(_runner())
