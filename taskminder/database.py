import logging
from typing import Any, Dict, cast

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from taskminder.config import get_settings

logger = logging.getLogger("database")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_settings = get_settings()
_CURRENT_DB_URL: str | None = None


def _detect_driver(url: str) -> str:
    try:
        return make_url(url).drivername
    except Exception:
        return url.split(":", 1)[0]


# ---------------------------------------------------------------------------
# Engine Setup
# ---------------------------------------------------------------------------

def _make_engine(url: str) -> AsyncEngine:
    url = (url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is required")

    driver = _detect_driver(url)
    engine_kwargs: Dict[str, Any] = {
        "echo": False,
        "future": True,
    }
    if driver.startswith("postgresql+"):
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = 10
        engine_kwargs["max_overflow"] = 5
    elif driver.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them; the
        # scheduler, request handlers and tests may each run on their own.
        engine_kwargs["poolclass"] = NullPool

    global _CURRENT_DB_URL
    _CURRENT_DB_URL = url

    return create_async_engine(url, **engine_kwargs)


try:
    async_engine: AsyncEngine = _make_engine(_settings.database_url)
except Exception as e:
    logger.critical("Failed to initialize async engine: %s", e)
    raise RuntimeError("Database engine initialization failed") from e

AsyncSessionLocal = async_sessionmaker(bind=async_engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------

def get_database_dsn(hide_password: bool = True) -> str:
    """Return the configured DB DSN string with the password masked."""
    url_str = _CURRENT_DB_URL or ""
    try:
        url = make_url(cast(str, url_str))
        return url.render_as_string(hide_password=hide_password)
    except Exception:
        return url_str


async def init_db_async():
    """Create database tables on startup."""
    from taskminder.models import models

    try:
        async with async_engine.begin() as conn:
            await conn.run_sync(models.Base.metadata.create_all)
        logger.info("Database initialized successfully.")
    except Exception as e:
        logger.critical("Database initialization failed: %s", e)
        raise RuntimeError("Failed to initialize database") from e


async def reset_db_async():
    """Drop and recreate every table. Used by the test suite."""
    from taskminder.models import models

    async with async_engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.drop_all)
        await conn.run_sync(models.Base.metadata.create_all)
    logger.info("Database reset.")


async def shutdown_db_async():
    """Dispose the async engine cleanly."""
    try:
        await async_engine.dispose()
        logger.info("Database connection pool closed.")
    except Exception as e:
        logger.error("Error shutting down database engine: %s", e)
        raise
