"""
Database connection and session management for Identity Reconciliation API
This module sets up the SQLAlchemy async engine with proper session management.
Supports local PostgreSQL and AWS RDS deployments with connection pooling
and error handling.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from models import Base

# Configure logging
logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Database connection manager that handles the SQLAlchemy async engine,
    session creation, and connection lifecycle management.
    The engine is created lazily on first use.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.get_active_database_url()
        self.engine: Optional[AsyncEngine] = None
        self.SessionLocal: Optional[async_sessionmaker] = None

    @property
    def dialect_name(self) -> str:
        """Backend name of the configured URL, e.g. 'postgresql' or 'sqlite'"""
        return make_url(self.database_url).get_backend_name()

    def _engine_options(self) -> dict:
        """Pool settings for the current environment"""
        options = {
            "echo": settings.DEBUG,
            "pool_pre_ping": True,
        }

        if self.dialect_name == "sqlite":
            return options

        if settings.is_lambda_environment():
            # A Lambda container serves one request at a time
            options.update(
                pool_size=1,
                max_overflow=0,
                pool_recycle=3600,
                pool_timeout=10,
                connect_args={
                    "command_timeout": 10,
                    "server_settings": {"application_name": "identity-reconciliation-lambda"},
                },
            )
        else:
            options.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                connect_args={
                    "server_settings": {"application_name": "identity-reconciliation"},
                },
            )
        return options

    def _initialize_database(self):
        """Initialize database engine and session factory"""
        try:
            logger.info(f"Initializing database connection to: {self.database_url.split('@')[-1]}")

            self.engine = create_async_engine(self.database_url, **self._engine_options())

            self.SessionLocal = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,  # Contacts are read after commit to build responses
                autoflush=False
            )

            logger.info("Database connection initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise

    def get_engine(self) -> AsyncEngine:
        """Get database engine, creating it if necessary"""
        if self.engine is None:
            self._initialize_database()
        return self.engine

    def get_session_factory(self) -> async_sessionmaker:
        """Get session factory, creating it if necessary"""
        if self.SessionLocal is None:
            self._initialize_database()
        return self.SessionLocal

    async def create_tables(self):
        """Create all database tables defined in models"""
        try:
            logger.info("Creating database tables...")
            async with self.get_engine().begin() as connection:
                await connection.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create database tables: {e}")
            raise

    async def test_connection(self) -> bool:
        """Test database connection"""
        try:
            async with self.get_engine().connect() as connection:
                await connection.execute(text("SELECT 1"))
            logger.info("Database connection test successful")
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Context manager for database sessions with automatic cleanup
        Commits when the block exits cleanly, rolls back otherwise.
        Usage:
            async with db_manager.get_session() as session:
                # database operations
        """
        session = self.get_session_factory()()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            await session.close()

    async def dispose(self):
        """Close all pooled connections"""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.SessionLocal = None

# Global database manager instance
db_manager = DatabaseManager()
