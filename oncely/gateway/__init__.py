"""
Gateway — the external checkout provider.

    from oncely import gateway as GW

    gateway = GW.StripeGateway(api_key="sk_test_...")
    result = await gateway.create_checkout_session(GW.CheckoutSessionRequest(
        idempotency_key=attempt.idempotency_key,
        line_items=(GW.LineItem(price="price_base_month"),),
        success_url="https://app.example/app?org=acme&checkout=success",
        cancel_url="https://app.example/app?org=acme&checkout=cancel",
    ))

The idempotency key doubles as the provider's dedup token, a second
line of defence behind the ledger claim.
"""

from oncely.gateway._types import (
    LineItem,
    CheckoutSessionRequest,
    CheckoutSession,
    ProviderError,
    Gateway,
)
from oncely.gateway._memory import MemoryGateway
from oncely.gateway._stripe import StripeGateway, to_provider_error

__all__ = (
    "LineItem",
    "CheckoutSessionRequest",
    "CheckoutSession",
    "ProviderError",
    "Gateway",
    "MemoryGateway",
    "StripeGateway",
    "to_provider_error",
)
