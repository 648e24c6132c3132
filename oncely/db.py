"""
Database setup — declarative base and async session factory.

Every table (ledger and organization rows) hangs off one Base so a single
create_all() provisions the whole schema.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
    **engine_kwargs: Any,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create engine + schema and return (session_factory, engine)."""
    # Import for side effect: registers the mapped tables on Base.metadata.
    from oncely.ledger import _sqlalchemy  # noqa: F401
    from oncely.checkout import _tables  # noqa: F401

    engine = create_async_engine(url, echo=False, **engine_kwargs)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = ("Base", "create_database")
