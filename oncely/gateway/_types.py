"""
Gateway types — checkout session requests and provider errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from kungfu import Result


@dataclass(frozen=True, slots=True)
class LineItem:
    price: str
    quantity: int = 1


@dataclass(frozen=True, slots=True)
class CheckoutSessionRequest:
    """
    Hosted checkout session to create.

    idempotency_key is handed to the provider as its own dedup token:
    the same key always yields the same session.
    """

    idempotency_key: str
    line_items: tuple[LineItem, ...]
    success_url: str
    cancel_url: str
    mode: str = "subscription"
    customer_email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def to_params(self) -> dict[str, Any]:
        """Provider call parameters (without the dedup token)."""
        params: dict[str, Any] = {
            "mode": self.mode,
            "line_items": [
                {"price": item.price, "quantity": item.quantity}
                for item in self.line_items
            ],
            "metadata": dict(self.metadata),
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
        }
        if self.mode == "subscription":
            params["subscription_data"] = {"metadata": dict(self.metadata)}
        if self.customer_email:
            params["customer_email"] = self.customer_email
        return params


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True, slots=True)
class ProviderError:
    """Provider call failed. message is what gets persisted as last_error."""

    message: str
    code: str | None = None
    status: int | None = None
    cause: Exception | None = None


class Gateway(Protocol):
    """Checkout provider. Implementations must honour the dedup token."""

    async def create_checkout_session(
        self,
        request: CheckoutSessionRequest,
    ) -> Result[CheckoutSession, ProviderError]:
        ...


__all__ = (
    "LineItem",
    "CheckoutSessionRequest",
    "CheckoutSession",
    "ProviderError",
    "Gateway",
)
