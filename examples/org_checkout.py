"""
Organization checkout — retries, double submits and a sales-led account.

Run: uv run python examples/org_checkout.py
"""

import asyncio
import tempfile
import uuid
from pathlib import Path

from combinators import batch, lift as L
from kungfu import Ok, Error

from oncely.checkout import (
    CheckoutService,
    CheckoutStarted,
    CreateOrganizationCheckout,
    OrganizationRepository,
    PriceCatalog,
    SalesLedCreated,
)
from oncely.claim import ClaimPolicy
from oncely.config import configure_logging
from oncely.db import create_database
from oncely.gateway import MemoryGateway
from oncely.ledger import SQLAlchemyLedger


def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def show(result: object) -> None:
    match result:
        case Ok(CheckoutStarted(url=url, attempt_id=attempt_id, replayed=replayed)):
            print(f"   url={url} attempt={attempt_id[:8]} replayed={replayed}")
        case Ok(SalesLedCreated(organization_slug=slug)):
            print(f"   sales-led organization: {slug}")
        case Error(e):
            print(f"   {e.kind.name}: {e.message}")


async def main() -> None:
    configure_logging("WARNING")
    banner("Organization checkout")

    workdir = tempfile.TemporaryDirectory()
    db_path = Path(workdir.name) / "oncely.db"
    session_factory, engine = await create_database(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"timeout": 30},
    )
    gateway = MemoryGateway(delay=0.2)
    service = CheckoutService(
        ledger=SQLAlchemyLedger(session_factory),
        gateway=gateway,
        organizations=OrganizationRepository(session_factory),
        catalog=PriceCatalog(
            base={"month": "price_base_month", "year": "price_base_year"},
            alumni={"0-250:month": "price_alumni_250_month"},
        ),
        origin="https://app.example",
        policy=ClaimPolicy().with_wait_budget(seconds=2),
    )

    try:
        request = CreateOrganizationCheckout(
            user_id="user_1",
            user_email="founder@example.com",
            name="Acme Alumni",
            slug=f"acme-{uuid.uuid4().hex[:6]}",
            billing_interval="month",
            alumni_bucket="0-250",
            idempotency_key=f"org_{uuid.uuid4().hex[:8]}",
        )

        # 1. First request
        print("1. First request:")
        show(await service.create_organization_checkout(request))
        print(f"   provider calls: {gateway.invocations}\n")

        # 2. Retry with the same key
        print("2. Retry (replayed):")
        show(await service.create_organization_checkout(request))
        print(f"   provider calls: {gateway.invocations} (no new call)\n")

        # 3. Five tabs submit at once
        print("3. Concurrent (5 requests, fresh key):")
        raced = CreateOrganizationCheckout(
            user_id="user_2",
            name="Beta Club",
            slug=f"beta-{uuid.uuid4().hex[:6]}",
            billing_interval="year",
            alumni_bucket="none",
            idempotency_key=f"org_{uuid.uuid4().hex[:8]}",
        )
        before = gateway.invocations
        await batch(
            range(5),
            handler=lambda _: L.catching_async(
                lambda: service.create_organization_checkout(raced),
                on_error=str,
            ),
            concurrency=5,
        )
        print(f"   provider calls: {gateway.invocations - before} (only 1)\n")

        # 4. Same key, different request
        print("4. Same key, different name:")
        show(await service.create_organization_checkout(
            CreateOrganizationCheckout(
                user_id=request.user_id,
                name="Someone Else",
                slug=request.slug,
                billing_interval=request.billing_interval,
                alumni_bucket=request.alumni_bucket,
                idempotency_key=request.idempotency_key,
            )
        ))

        # 5. Sales-led bucket: no checkout, organization saga instead
        print("\n5. Sales-led:")
        show(await service.create_organization_checkout(
            CreateOrganizationCheckout(
                user_id="user_3",
                name="Huge University",
                slug=f"huge-{uuid.uuid4().hex[:6]}",
                billing_interval="year",
                alumni_bucket="5000+",
            )
        ))

    finally:
        await engine.dispose()
        workdir.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
