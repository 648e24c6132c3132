"""
Organization checkout service — one entry point, two creation paths.

    service = CheckoutService(
        ledger=SQLAlchemyLedger(session_factory),
        gateway=StripeGateway(api_key=settings.stripe_api_key),
        organizations=OrganizationRepository(session_factory),
        catalog=PriceCatalog(base={"month": "price_m", "year": "price_y"}),
        origin="https://app.example",
    )

    match await service.create_organization_checkout(request):
        case Ok(CheckoutStarted(url=url)):     # redirect to hosted checkout
        case Ok(SalesLedCreated(organization_slug=slug)):
        case Error(CheckoutError(kind=kind)):
"""

from __future__ import annotations

import logging
import uuid

from kungfu import Result, Ok, Error

from oncely import saga as S
from oncely.claim import (
    ClaimPolicy,
    ClaimRequest,
    ExternalResource,
    claiming,
)
from oncely.fingerprint import normalize_idempotency_key
from oncely.gateway import (
    CheckoutSessionRequest,
    Gateway,
    LineItem,
    ProviderError,
)
from oncely.ledger import Attempt, Ledger
from oncely.checkout._catalog import PriceCatalog, classify
from oncely.checkout._sales import organization_saga
from oncely.checkout._tables import OrganizationRepository
from oncely.checkout._types import (
    FLOW_SUBSCRIPTION_CHECKOUT,
    PROVIDER_DESCRIPTION_MAX,
    CheckoutErrorKind,
    CheckoutError,
    CreateOrganizationCheckout,
    PaidCheckout,
    SalesLedCreation,
    CheckoutStarted,
    SalesLedCreated,
    CheckoutResponse,
)

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(
        self,
        *,
        ledger: Ledger,
        gateway: Gateway,
        organizations: OrganizationRepository,
        catalog: PriceCatalog,
        origin: str,
        policy: ClaimPolicy | None = None,
    ) -> None:
        self._ledger = ledger
        self._gateway = gateway
        self._organizations = organizations
        self._catalog = catalog
        self._origin = origin.rstrip("/")
        self._policy = policy or ClaimPolicy()

    async def create_organization_checkout(
        self,
        request: CreateOrganizationCheckout,
    ) -> Result[CheckoutResponse, CheckoutError]:
        match request.validate():
            case Error(err):
                return Error(err)
            case Ok(_):
                pass

        try:
            taken = await self._organizations.slug_taken(request.slug)
        except Exception as e:
            logger.exception("Slug lookup failed for %s", request.slug)
            return Error(CheckoutError(CheckoutErrorKind.STORE, str(e), cause=e))
        if taken:
            return Error(CheckoutError.slug_taken())

        match classify(request, self._catalog):
            case Error(err):
                return Error(err)
            case Ok(PaidCheckout() as plan):
                return await self._start_paid(plan)
            case Ok(SalesLedCreation() as plan):
                return await self._create_sales_led(plan)

    # ───────────────────────────────────────────────────────────────────────────
    # Paid: claim-guarded checkout session
    # ───────────────────────────────────────────────────────────────────────────

    async def _start_paid(self, plan: PaidCheckout) -> Result[CheckoutResponse, CheckoutError]:
        request = plan.request
        pending_org_id_seed = str(uuid.uuid4())

        claim_request = ClaimRequest(
            idempotency_key=normalize_idempotency_key(request.idempotency_key, request.attempt_id),
            flow_type=FLOW_SUBSCRIPTION_CHECKOUT,
            amount_cents=0,
            currency="usd",
            owner_id=request.user_id,
            params=request.fingerprint_params(),
            metadata={
                "pending_org_id": pending_org_id_seed,
                "slug": request.slug,
                "alumni_bucket": request.alumni_bucket,
                "billing_interval": request.billing_interval,
            },
            attempt_id=request.attempt_id,
        )

        gateway = self._gateway
        line_items = tuple(
            LineItem(price=price)
            for price in (plan.prices.base, plan.prices.alumni)
            if price is not None
        )
        success_url = f"{self._origin}/app?org={request.slug}&checkout=success"
        cancel_url = f"{self._origin}/app?org={request.slug}&checkout=cancel"

        async def create_session(attempt: Attempt) -> Result[ExternalResource, ProviderError]:
            # Retries reference the provisional org minted on the first try.
            pending_org_id = str(attempt.metadata.get("pending_org_id") or pending_org_id_seed)
            session_request = CheckoutSessionRequest(
                idempotency_key=attempt.idempotency_key,
                line_items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=request.user_email,
                metadata={
                    "organization_id": pending_org_id,
                    "organization_slug": request.slug,
                    "organization_name": request.name,
                    "organization_description": (request.description or "")[:PROVIDER_DESCRIPTION_MAX],
                    "organization_color": request.color,
                    "alumni_bucket": request.alumni_bucket,
                    "created_by": request.user_id,
                    "base_interval": request.billing_interval,
                    "payment_attempt_id": attempt.id,
                },
            )
            match await gateway.create_checkout_session(session_request):
                case Ok(session):
                    return Ok(ExternalResource(id=session.id, url=session.url))
                case Error(err):
                    return Error(err)

        executor = (
            claiming(create_session)
            .ledger(self._ledger)
            .policy(self._policy)
            .build()
        )

        match await executor.run(claim_request):
            case Ok(resource):
                return Ok(CheckoutStarted(
                    url=resource.url,
                    idempotency_key=resource.idempotency_key,
                    attempt_id=resource.attempt_id,
                    replayed=resource.replayed,
                ))
            case Error(err):
                return Error(CheckoutError.from_claim(err))

    # ───────────────────────────────────────────────────────────────────────────
    # Sales-led: compensated organization saga
    # ───────────────────────────────────────────────────────────────────────────

    async def _create_sales_led(
        self,
        plan: SalesLedCreation,
    ) -> Result[CheckoutResponse, CheckoutError]:
        request = plan.request

        match await S.run_chain(organization_saga(self._organizations, request)):
            case Ok(result):
                logger.info("Created sales-led organization %s", request.slug)
                return Ok(SalesLedCreated(
                    organization_id=result.value.organization_id,
                    organization_slug=request.slug,
                ))
            case Error(saga_error):
                if not saga_error.rollback_complete:
                    logger.error(
                        "Sales-led creation of %s left %d step(s) un-compensated",
                        request.slug,
                        saga_error.compensators_failed,
                    )
                return Error(saga_error.error)


__all__ = ("CheckoutService",)
