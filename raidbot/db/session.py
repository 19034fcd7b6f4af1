"""Engine and session management for the raid store.

SQLite databases get their tables from the model metadata.  Anything else is
brought to the latest Alembic revision before the async engine is created.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from . import models  # noqa: F401
from .base import Base

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
SYNC_DRIVERS = {"sqlite+aiosqlite": "sqlite", "mysql+aiomysql": "mysql+pymysql"}

_engine: AsyncEngine | None = None
_Session: async_sessionmaker[AsyncSession] | None = None
_init_lock = asyncio.Lock()
_echo = os.getenv("RAIDBOT_DEBUG_SQLALCHEMY", "").lower() in {"1", "true", "yes"}


def _sync_url(url: str) -> str:
    """Same database, but through the blocking driver Alembic runs on."""

    sa_url = make_url(url)
    driver = SYNC_DRIVERS.get(sa_url.drivername, sa_url.drivername)
    return sa_url.set(drivername=driver).render_as_string(hide_password=False)


def _open(url: str) -> AsyncEngine:
    global _engine, _Session
    _engine = create_async_engine(url, echo=_echo, future=True)
    _Session = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def _migrate(url: str) -> None:
    sa_url = make_url(url)
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    # configparser interpolation would eat url-encoded credentials
    config.set_main_option("sqlalchemy.url", _sync_url(url).replace("%", "%%"))
    try:
        await asyncio.to_thread(command.upgrade, config, "head")
    except OperationalError as exc:  # pragma: no cover - requires real DB
        logger.error(
            "Could not migrate %s on %s:%s: %s",
            sa_url.database,
            sa_url.host,
            sa_url.port,
            exc,
        )
        raise


async def init_db(url: str) -> AsyncEngine:
    """Open the database at ``url``, creating or upgrading its schema once."""

    if _engine is not None:
        return _engine

    async with _init_lock:
        if _engine is not None:
            return _engine

        sa_url = make_url(url)
        logger.debug("Opening database %r", sa_url)
        if sa_url.get_backend_name() == "sqlite":
            engine = _open(url)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return engine

        await _migrate(url)
        return _open(url)


async def dispose_db() -> None:
    global _engine, _Session
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _Session = None


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    if _Session is None:
        raise RuntimeError("Database not initialised, call init_db() first")
    async with _Session() as session:
        yield session
