import asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
import logging

from panelhub.core.config import settings
from panelhub.core.exceptions import UpstreamError
from .unified_models import Base

logger = logging.getLogger(__name__)


async def _test_connection(engine) -> bool:
    """Probe the pool with SELECT 1, backing off between attempts"""
    max_retries = 3
    retry_delays = [1, 2, 4]

    for attempt in range(max_retries):
        try:
            async with engine.begin() as conn:
                result = await asyncio.wait_for(conn.execute(text("SELECT 1")), timeout=5)
                if result.scalar() == 1:
                    logger.info(f"Connection test successful on attempt {attempt + 1}")
                    return True
        except Exception as e:
            logger.warning(f"Connection test attempt {attempt + 1} failed: {e}")

        if attempt < max_retries - 1:
            await asyncio.sleep(retry_delays[attempt])

    logger.error("All connection test attempts failed")
    return False

# Database instances
async_engine = None
SessionLocal = None


async def init_database():
    """Initialize the async connection pool"""
    global async_engine, SessionLocal

    # Single connection pool per process
    if async_engine is not None and SessionLocal is not None:
        logger.info("Database already initialized - reusing existing connection pool")
        return

    if not settings.DATABASE_URL or "[YOUR-PASSWORD]" in settings.DATABASE_URL:
        logger.warning("WARNING: Database URL not configured. Skipping database initialization.")
        return

    try:
        logger.info("Initializing database connections...")
        async_url = settings.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

        async_engine = create_async_engine(
            async_url,
            pool_pre_ping=True,
            pool_recycle=1800,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=30,
            echo=False,
            connect_args={
                "command_timeout": 60,
                "server_settings": {
                    "application_name": "panelhub_backend",
                    "statement_timeout": "60s"
                }
            }
        )

        SessionLocal = sessionmaker(
            bind=async_engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        try:
            if await asyncio.wait_for(_test_connection(async_engine), timeout=30.0):
                logger.info("SUCCESS: Database connection test passed")
            else:
                logger.warning("WARNING: Database connection test failed - continuing with pool")
        except asyncio.TimeoutError:
            logger.warning("WARNING: Connection test timed out after 30s - continuing with pool")

        logger.info("SUCCESS: Database initialization completed")

    except Exception as e:
        logger.error(f"ERROR: Database initialization failed: {str(e)}")
        raise Exception(f"Database initialization failed: {str(e)}. Application cannot start without database.")


async def close_database():
    """Close database connections and reset global state"""
    global async_engine, SessionLocal

    try:
        if async_engine:
            await async_engine.dispose()
            logger.info("Database connection pool closed")

        async_engine = None
        SessionLocal = None

        logger.info("All database connections closed and state reset")

    except Exception as e:
        logger.error(f"Error closing database connections: {e}")


async def create_tables():
    """Create all panel tables (auth schema is managed by Supabase)"""
    if not async_engine:
        logger.warning("WARNING: Database not initialized. Skipping table creation.")
        return

    try:
        def create_filtered_tables(conn):
            tables_to_create = [
                table for table in Base.metadata.tables.values()
                if table.schema != 'auth'
            ]
            Base.metadata.create_all(conn, tables=tables_to_create, checkfirst=True)

        async with async_engine.begin() as conn:
            await conn.run_sync(create_filtered_tables)
        logger.info("SUCCESS: Database tables created successfully (excluding auth schema)")
    except Exception as e:
        logger.error(f"ERROR: Failed to create tables: {str(e)}")
        raise


def get_session() -> AsyncSession:
    """Get database session context manager"""
    if not SessionLocal:
        raise UpstreamError("Database not initialized")
    return SessionLocal()


# Database dependency for FastAPI
async def get_db():
    """One session per request"""
    if not SessionLocal:
        logger.error("DATABASE: Database not initialized - application should not have started")
        raise UpstreamError("Database not initialized")

    async with get_session() as session:
        yield session
