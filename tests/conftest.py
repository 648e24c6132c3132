"""
Shared fixtures: in-memory doubles and a throwaway SQLite file database.

A file (not :memory:) so concurrent sessions get their own connections.
"""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from oncely.checkout import CheckoutService, OrganizationRepository, PriceCatalog
from oncely.claim import ClaimPolicy
from oncely.db import create_database
from oncely.gateway import MemoryGateway
from oncely.ledger import Ledger, MemoryLedger, SQLAlchemyLedger


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    factory, engine = await create_database(
        f"sqlite+aiosqlite:///{tmp_path / 'oncely.db'}",
        connect_args={"timeout": 30},
    )
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture(params=["memory", "sqlalchemy"])
async def ledger(request, tmp_path) -> AsyncIterator[Ledger]:
    """Every ledger test runs against both backends."""
    if request.param == "memory":
        yield MemoryLedger()
        return

    factory, engine = await create_database(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    try:
        yield SQLAlchemyLedger(factory)
    finally:
        await engine.dispose()


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def catalog() -> PriceCatalog:
    return PriceCatalog(
        base={"month": "price_base_month", "year": "price_base_year"},
        alumni={"0-250:month": "price_alumni_250_month", "0-250:year": "price_alumni_250_year"},
    )


@pytest.fixture
def fast_policy() -> ClaimPolicy:
    return (
        ClaimPolicy()
        .with_wait_budget(seconds=2)
        .with_poll_backoff(initial=0.02, max_delay=0.1)
    )


@pytest.fixture
def repository(session_factory) -> OrganizationRepository:
    return OrganizationRepository(session_factory)


@pytest.fixture
def service(session_factory, repository, gateway, catalog, fast_policy) -> CheckoutService:
    return CheckoutService(
        ledger=SQLAlchemyLedger(session_factory),
        gateway=gateway,
        organizations=repository,
        catalog=catalog,
        origin="https://app.example/",
        policy=fast_policy,
    )
