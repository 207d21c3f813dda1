from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest

from todosync_backend.config import settings
from todosync_backend.db import dispose_engine


@pytest.fixture(autouse=True)
async def _dispose_engine_per_test(  # pyright: ignore[reportUnusedFunction]
    anyio_backend: object,  # noqa: ARG001
) -> AsyncGenerator[None, None]:
    # Dispose the cached AsyncEngine (aiosqlite worker thread) while the
    # per-test event loop is still alive; the next test builds a fresh one.
    _ = anyio_backend
    database_url = settings.database_url
    yield
    await dispose_engine()
    settings.database_url = database_url


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
