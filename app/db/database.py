import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from fastapi import HTTPException
from app.core import tracing as logger
from app.core.config import settings

# Configure logging for SQLAlchemy (ORM logs only)
logging.basicConfig()
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _engine_options() -> dict:
    if settings.is_sqlite:
        # A single shared connection keeps in-memory databases alive across sessions
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": {
            "server_settings": {"application_name": settings.SERVICE_NAME},
            "command_timeout": 5,
        },
    }


# SQLAlchemy Engine
engine = create_async_engine(settings.DATABASE_URL, echo=False, **_engine_options())

if settings.is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Async session factory
AsyncSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Declarative base class
Base = declarative_base()


async def init_db():
    """Initialize database tables with trace-aware logging."""
    # Registers every model on Base.metadata
    from app.db import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error("Database initialization failed", error=str(e), type=type(e).__name__)
        raise


async def get_db():
    """Async session dependency with trace-aware error logging."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            if isinstance(e, HTTPException):
                logger.debug(
                    "Request failed inside database session",
                    error=e.detail,
                    type=type(e).__name__,
                    status_code=e.status_code
                )
            else:
                logger.error(
                    "Database session error",
                    error=str(e),
                    type=type(e).__name__
                )
            await session.rollback()
            raise
        finally:
            await session.close()
