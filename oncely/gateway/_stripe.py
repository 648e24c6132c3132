"""
Stripe gateway — hosted checkout sessions via the Stripe SDK.

The SDK is synchronous; calls run in a worker thread so the event loop
keeps serving other requests while Stripe answers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import stripe
from combinators import lift as L
from kungfu import Result, Ok, Error

from oncely.gateway._types import CheckoutSessionRequest, CheckoutSession, ProviderError

logger = logging.getLogger(__name__)


def to_provider_error(exc: Exception) -> ProviderError:
    if isinstance(exc, stripe.StripeError):
        return ProviderError(
            message=exc.user_message or str(exc) or "checkout_failed",
            code=exc.code,
            status=exc.http_status,
            cause=exc,
        )
    return ProviderError(message=str(exc) or "checkout_failed", cause=exc)


class StripeGateway:
    """
    Gateway backed by stripe.checkout.Session.create.

    Usage:
        gateway = StripeGateway(api_key=settings.stripe_api_key)
        match await gateway.create_checkout_session(request):
            case Ok(session):
                ...
    """

    def __init__(self, api_key: str, *, api_version: str | None = None) -> None:
        self._api_key = api_key
        self._api_version = api_version

    async def create_checkout_session(
        self,
        request: CheckoutSessionRequest,
    ) -> Result[CheckoutSession, ProviderError]:
        params = request.to_params()
        params["api_key"] = self._api_key
        params["idempotency_key"] = request.idempotency_key
        if self._api_version:
            params["stripe_version"] = self._api_version

        async def create() -> Any:
            return await asyncio.to_thread(stripe.checkout.Session.create, **params)

        match await L.catching_async(create, on_error=to_provider_error):
            case Ok(session):
                if not session.url:
                    return Error(ProviderError(
                        message=f"Checkout session {session.id} has no url",
                        code="missing_url",
                    ))
                logger.info(
                    "Created checkout session %s for key %s",
                    session.id,
                    request.idempotency_key,
                )
                return Ok(CheckoutSession(id=session.id, url=session.url))
            case Error(err):
                logger.warning(
                    "Stripe rejected checkout for key %s: %s (code=%s, status=%s)",
                    request.idempotency_key,
                    err.message,
                    err.code,
                    err.status,
                )
                return Error(err)


__all__ = ("to_provider_error", "StripeGateway")
