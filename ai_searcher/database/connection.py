# ai_searcher/database/connection.py
import asyncio
import logging
from pathlib import Path
from typing import Optional, AsyncGenerator
from contextlib import asynccontextmanager
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from ai_searcher.config.settings import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

PROJECT_ROOT = Path(__file__).resolve().parents[2]

def to_async_url(database_url: str) -> str:
    """Map plain sqlite/postgresql URLs onto their async drivers"""
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url

class DatabaseManager:
    def __init__(self, database_url: Optional[str] = None):
        self.database_url = to_async_url(database_url or settings.DATABASE_URL)
        self.async_engine = None
        self.session_factory = None
        self.is_available = False
        self._initialize_engine()

    def _initialize_engine(self):
        """Initialize the async engine; the app runs without a database on failure"""
        try:
            if not self.database_url:
                logger.warning("Database URL not configured, running without database")
                return

            if self.database_url.startswith("sqlite"):
                self.async_engine = create_async_engine(
                    self.database_url,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                    echo=settings.DEBUG
                )

                @event.listens_for(self.async_engine.sync_engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

            elif self.database_url.startswith("postgresql"):
                self.async_engine = create_async_engine(
                    self.database_url,
                    pool_pre_ping=True,
                    echo=settings.DEBUG
                )
            else:
                logger.error(f"Unsupported database URL: {self.database_url.split('@')[-1]}")
                return

            self.session_factory = async_sessionmaker(
                self.async_engine,
                class_=AsyncSession,
                expire_on_commit=False
            )
            self.is_available = True
            logger.info("Database engine initialized")

        except Exception as e:
            logger.warning(f"Database initialization failed: {e}")
            logger.warning("Application will run without database functionality")
            self.is_available = False

    @asynccontextmanager
    async def get_session_context(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error"""
        if not self.is_available or not self.session_factory:
            raise RuntimeError("Database is not available")

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self):
        """Close database connections"""
        if self.async_engine:
            await self.async_engine.dispose()

db_manager = DatabaseManager()

def _run_migrations(database_url: str):
    from alembic import command
    from alembic.config import Config

    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url)
    config.attributes["url_from_app"] = True
    config.attributes["configure_logger"] = False
    command.upgrade(config, "head")

async def init_database(run_migrations: bool = True):
    """Apply migrations, falling back to create_all"""
    if not db_manager.is_available:
        logger.warning("Skipping database initialization - database not available")
        return

    from ai_searcher.database import models  # noqa: F401

    if run_migrations and (PROJECT_ROOT / "alembic.ini").exists():
        try:
            await asyncio.to_thread(_run_migrations, db_manager.database_url)
            logger.info("Database migrations applied successfully")
            return
        except Exception as e:
            logger.info(f"Migration attempt failed: {e}; using create_all")

    try:
        async with db_manager.async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
        logger.info("Database tables initialized with create_all")
    except Exception as e:
        logger.error(f"Database table creation failed: {e}")

async def close_database():
    """Close database connections"""
    try:
        await db_manager.close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}")

async def check_database_health() -> str:
    if not db_manager.is_available:
        return "degraded"

    try:
        async with db_manager.get_session_context() as session:
            await session.execute(text("SELECT 1"))
        return "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return "unhealthy"
