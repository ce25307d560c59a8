"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)

from .config import Settings, settings as default_settings
from .logging import get_logger

logger = get_logger(__name__)


def get_database_url(url: str) -> str:
    """Get database URL with an async driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("mysql://"):
        return url.replace("mysql://", "mysql+aiomysql://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def get_engine_config(url: str, config: Settings) -> dict:
    """Get SQLAlchemy engine configuration."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": config.database_pool_size,
        "max_overflow": config.database_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


class Database:
    """Owns one async engine and its session maker."""

    def __init__(self, url: Optional[str] = None, config: Optional[Settings] = None):
        config = config or default_settings
        self.url = get_database_url(url or config.database_url)
        self.engine: AsyncEngine = create_async_engine(
            self.url,
            **get_engine_config(self.url, config),
            echo=config.debug
        )
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        logger.info("Database engine created", url=self.engine.url.render_as_string(hide_password=True))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session with automatic cleanup.

        Usage:
            async with database.session() as session:
                # Use session here
                pass
        """
        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")


class DatabaseManager:
    """Database manager for administrative operations."""

    @staticmethod
    async def create_tables(database: Database) -> None:
        """Create all tables in the database."""
        from aleo_rewards.models.base import Base

        logger.info("Creating database tables")
        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    @staticmethod
    async def drop_tables(database: Database) -> None:
        """Drop all tables in the database."""
        from aleo_rewards.models.base import Base

        logger.warning("Dropping all database tables")
        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped")

    @staticmethod
    async def health_check(database: Database) -> bool:
        """Check database connectivity."""
        try:
            async with database.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False
