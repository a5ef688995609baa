from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from arena.config import Config
from arena.database.models import Base
from arena.utils.logger import setup_logger


def to_async_url(database_url: str) -> str:
    """Convert a plain sqlite URL to its aiosqlite form"""
    if database_url.startswith('sqlite:///'):
        return database_url.replace('sqlite:///', 'sqlite+aiosqlite:///', 1)
    return database_url


class Database:
    """
    Owns the async engine and the session factory handed to the SQL stores.

    Call ``initialize()`` once before building stores; ``close()`` disposes
    the engine's connection pool.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = to_async_url(database_url or Config.DATABASE_URL)
        self.engine: Optional[AsyncEngine] = None
        self.async_session: Optional[async_sessionmaker] = None

    @property
    def safe_url(self) -> str:
        return make_url(self.database_url).render_as_string(hide_password=True)

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    async def initialize(self):
        """Create the engine, the session factory and any missing tables"""
        if self.is_initialized:
            return
        self.logger.info(f"Initializing database at {self.safe_url}...")

        self.engine = create_async_engine(self.database_url, echo=Config.DEBUG)
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info(f"Database ready: {', '.join(sorted(Base.metadata.tables))}")

    async def close(self):
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self.async_session = None
        self.logger.info("Database connection closed")
