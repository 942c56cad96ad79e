"""Database engine and helpers.

This module configures the async SQLAlchemy engine from
`settings.DATABASE_URL` and hands out one `UnitOfWork` per logical
operation (one per request in a web layer). By default the database is
a local SQLite file at the backend root, `app.db`.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from . import models  # noqa: F401  registers the tables on SQLModel.metadata
from .config import settings
from .unit_of_work import UnitOfWork

logger = logging.getLogger("educms.database")


def build_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    return create_async_engine(url, echo=settings.DB_ECHO if echo is None else echo)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # objects stay usable after commit; callers read them once saved
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=True)


engine = build_engine()
session_factory = build_session_factory(engine)


async def create_db_and_tables(bind: Optional[AsyncEngine] = None) -> None:
    """Create database tables using SQLModel metadata.

    Intended for local development, scripts and tests; production
    deployments should manage the schema with a migration tool.
    """
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables ensured on %s", bind.url.render_as_string(hide_password=True))


@asynccontextmanager
async def unit_of_work(factory: Optional[async_sessionmaker] = None) -> AsyncIterator[UnitOfWork]:
    """Open a fresh session wrapped in a `UnitOfWork` and dispose it on exit."""
    factory = factory or session_factory
    async with UnitOfWork(factory()) as uow:
        yield uow


async def get_unit_of_work() -> AsyncIterator[UnitOfWork]:
    """Yield a request-scoped `UnitOfWork` for dependency injection.

    The unit of work is disposed when the request scope finishes, on
    success, failure or cancellation.
    """
    async with unit_of_work() as uow:
        yield uow
