"""
Base service class for the battle arena.

Provides async database session management for the SQL stores and retry
with exponential backoff for database writes and calls out to external
collaborators (rewards sink, scoring feed).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Tuple, Type

from sqlalchemy.ext.asyncio import AsyncSession

from arena.utils.exceptions import ArenaError

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY = 0.1


class BaseService:
    """Base class for services that own sessions or call flaky collaborators."""

    def __init__(self, session_factory=None):
        """
        Args:
            session_factory: Async session factory from ``Database``, or None
                for services that never touch the database
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Transactional scope: commit on success, roll back on any error."""
        if self.session_factory is None:
            raise RuntimeError(f"{type(self).__name__} has no session factory")
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(
        self,
        func: Callable[[], Awaitable[Any]],
        max_retries: int = 3,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    ) -> Any:
        """
        Await ``func()`` up to ``max_retries`` times, sleeping 0.1s, 0.2s, ...
        between attempts.

        Arena domain errors are never retried; the same call would fail the
        same way.
        """
        name = getattr(func, '__name__', repr(func))
        for attempt in range(max_retries):
            try:
                return await func()
            except ArenaError:
                raise
            except retry_on as e:
                if attempt == max_retries - 1:
                    logger.error(f"{name} failed after {max_retries} attempts: {e}")
                    raise
                delay = RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(f"Retry attempt {attempt + 1} for {name} in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
