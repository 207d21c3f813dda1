from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, TypeVar

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from todosync_backend.config import settings
from todosync_backend.db_urls import ensure_sqlite_parent_dir, normalize_database_url_for_async
from todosync_backend.domain.errors import SchemaVersionError
from todosync_backend.models import SCHEMA_VERSION, SyncMeta

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION_KEY = "schemaVersion"


def _create_async_engine(database_url: str) -> AsyncEngine:
    ensure_sqlite_parent_dir(database_url)
    url = normalize_database_url_for_async(database_url)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


@lru_cache(maxsize=4)
def get_engine() -> AsyncEngine:
    # Tests and deployments may swap settings.database_url, then call reset_engine_cache().
    return _create_async_engine(settings.database_url)


def reset_engine_cache() -> None:
    get_engine.cache_clear()


async def dispose_engine() -> None:
    """Close pooled connections of the cached engine (if any) and forget it."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_engine.cache_clear()


def _session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    async with _session_maker()() as session:
        yield session


async def transact(fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Run ``fn`` inside one transaction.

    Commits when ``fn`` returns, rolls back and re-raises when it throws.
    """
    async with session_scope() as session:
        async with session.begin():
            return await fn(session)


async def get_schema_version(session: AsyncSession) -> int:
    row = (await session.exec(select(SyncMeta).where(SyncMeta.key == SCHEMA_VERSION_KEY))).first()
    if row is None or row.value is None:
        return 0
    return int(row.value)


async def ensure_schema_version(session: AsyncSession) -> int:
    """Gate startup on the recorded schema version; stamp a fresh database."""
    version = await get_schema_version(session)
    if version < 0 or version > SCHEMA_VERSION:
        raise SchemaVersionError(f"unexpected schema version: {version}")
    if version == 0:
        logger.info("stamping schema version %s", SCHEMA_VERSION)
        session.add(SyncMeta(key=SCHEMA_VERSION_KEY, value=SCHEMA_VERSION))
        version = SCHEMA_VERSION
    return version


async def init_db() -> None:
    # Local/test fallback; production schema is managed by Alembic.
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    await transact(ensure_schema_version)
