"""
HTTP adapter — POST /checkout/organizations.

    app = create_app()                    # wires everything from Settings
    app = create_app(service=service)     # tests: bring your own service

Caller identity arrives in X-User-Id / X-User-Email headers set by the
upstream auth layer.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from kungfu import Ok, Error
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from oncely.checkout import (
    CheckoutErrorKind,
    CheckoutError,
    CheckoutService,
    CheckoutStarted,
    CreateOrganizationCheckout,
    OrganizationRepository,
    SalesLedCreated,
)
from oncely.config import Settings, configure_logging, get_settings
from oncely.db import create_database
from oncely.gateway import StripeGateway
from oncely.ledger import SQLAlchemyLedger

logger = logging.getLogger(__name__)

router = APIRouter()


# ═══════════════════════════════════════════════════════════════════════════════
# Wire models
# ═══════════════════════════════════════════════════════════════════════════════


class CreateOrganizationBody(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    name: str
    slug: str
    description: str | None = None
    primary_color: str | None = None
    billing_interval: Literal["month", "year"]
    alumni_bucket: Literal["none", "0-250", "251-500", "501-1000", "1001-2500", "2500-5000", "5000+"]
    idempotency_key: str | None = None
    attempt_id: str | None = None


class Caller(BaseModel):
    user_id: str
    email: str | None = None


class Unauthorized(Exception):
    pass


def get_caller(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
) -> Caller:
    if not x_user_id:
        raise Unauthorized()
    return Caller(user_id=x_user_id, email=x_user_email)


def get_service(request: Request) -> CheckoutService:
    return request.app.state.checkout_service


# ═══════════════════════════════════════════════════════════════════════════════
# Error → HTTP mapping
# ═══════════════════════════════════════════════════════════════════════════════

STATUS_BY_KIND: dict[CheckoutErrorKind, int] = {
    CheckoutErrorKind.VALIDATION: 400,
    CheckoutErrorKind.PROVIDER: 400,
    CheckoutErrorKind.CREATION: 400,
    CheckoutErrorKind.NOT_FOUND: 404,
    CheckoutErrorKind.CONFLICT: 409,
    CheckoutErrorKind.PROCESSING: 409,
    CheckoutErrorKind.SLUG_TAKEN: 409,
    CheckoutErrorKind.STORE: 500,
}


def error_response(error: CheckoutError) -> JSONResponse:
    body: dict[str, Any] = {"error": error.message}
    if error.idempotency_key is not None:
        body["idempotencyKey"] = error.idempotency_key
    if error.attempt_id is not None:
        body["attemptId"] = error.attempt_id
    return JSONResponse(body, status_code=STATUS_BY_KIND[error.kind])


# ═══════════════════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════════════════


@router.post("/checkout/organizations")
async def create_organization_checkout(
    body: CreateOrganizationBody,
    caller: Annotated[Caller, Depends(get_caller)],
    service: Annotated[CheckoutService, Depends(get_service)],
) -> JSONResponse:
    request = CreateOrganizationCheckout(
        user_id=caller.user_id,
        user_email=caller.email,
        name=body.name,
        slug=body.slug,
        description=body.description,
        primary_color=body.primary_color,
        billing_interval=body.billing_interval,
        alumni_bucket=body.alumni_bucket,
        idempotency_key=body.idempotency_key,
        attempt_id=body.attempt_id,
    )

    match await service.create_organization_checkout(request):
        case Ok(CheckoutStarted(url=url, idempotency_key=key, attempt_id=attempt_id)):
            return JSONResponse({"url": url, "idempotencyKey": key, "attemptId": attempt_id})
        case Ok(SalesLedCreated(organization_slug=slug)):
            return JSONResponse({"mode": "sales", "organizationSlug": slug})
        case Error(err):
            if err.kind is CheckoutErrorKind.STORE:
                logger.error("Checkout store failure: %s", err.message)
            return error_response(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Application
# ═══════════════════════════════════════════════════════════════════════════════


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


async def _unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


def create_app(
    service: CheckoutService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Without a service, the lifespan wires the SQL ledger, Stripe gateway
    and organization repository from settings.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if service is not None:
            yield
            return

        configure_logging(settings.log_level)
        session_factory, engine = await create_database(settings.database_url)
        app.state.checkout_service = CheckoutService(
            ledger=SQLAlchemyLedger(session_factory),
            gateway=StripeGateway(
                api_key=settings.stripe_api_key,
                api_version=settings.stripe_api_version or None,
            ),
            organizations=OrganizationRepository(session_factory),
            catalog=settings.price_catalog(),
            origin=settings.checkout_origin,
            policy=settings.claim_policy(),
        )
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    if service is not None:
        app.state.checkout_service = service

    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Unauthorized, _unauthorized_handler)
    app.include_router(router)
    return app


__all__ = (
    "router",
    "CreateOrganizationBody",
    "Caller",
    "get_caller",
    "get_service",
    "STATUS_BY_KIND",
    "error_response",
    "create_app",
)
