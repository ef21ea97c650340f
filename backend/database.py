"""
Database engine and session management for the Storefront Order Service.

Uses SQLAlchemy async engine (aiosqlite for SQLite URLs). The relational store
is optional: with no DATABASE_URL the engine is never built and orders fall
back to process memory. Tables are auto-created on startup via init_db().
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings
from domain.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──────────────────────────────────────────────────────────

def to_async_url(raw_url: str) -> str:
    """Convert sqlite:///... → sqlite+aiosqlite:///... for the async driver."""
    if raw_url.startswith("sqlite:///"):
        return raw_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return raw_url


def build_engine(raw_url: str) -> AsyncEngine:
    return create_async_engine(
        to_async_url(raw_url),
        echo=False,
        future=True,
    )


engine: AsyncEngine | None = build_engine(settings.database_url) if settings.database_url else None

async_session = (
    async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    if engine is not None
    else None
)


# ── Helpers ─────────────────────────────────────────────────────────

async def init_db() -> bool:
    """
    Create all tables. Called once on server startup.

    Returns False when the database is configured but unreachable; the order
    store then serves from memory until the database comes back.
    """
    if engine is None:
        logger.info("No DATABASE_URL configured, skipping table creation")
        return False

    # Import models so Base.metadata knows about them
    import db_models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database unreachable at startup, orders fall back to memory: {e}")
        return False

    logger.info("Database tables created (or already exist)")
    return True


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async session."""
    if async_session is None:
        raise ConfigurationError("Database is not configured. Set DATABASE_URL.")
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
