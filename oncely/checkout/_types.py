"""
Checkout types — the create-organization request, its plans and results.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from kungfu import Result, Ok, Error

from oncely.claim import ClaimError

BILLING_INTERVALS = ("month", "year")
ALUMNI_BUCKETS = ("none", "0-250", "251-500", "501-1000", "1001-2500", "2500-5000", "5000+")
DEFAULT_PRIMARY_COLOR = "#1e3a5f"

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,48}[a-z0-9]$")
HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

NAME_MAX = 120
DESCRIPTION_MAX = 800
PROVIDER_DESCRIPTION_MAX = 500

FLOW_SUBSCRIPTION_CHECKOUT = "subscription_checkout"
FLOW_SALES_LED = "sales_led"


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout Error
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutErrorKind(Enum):
    VALIDATION = auto()
    CONFLICT = auto()
    NOT_FOUND = auto()
    PROVIDER = auto()
    PROCESSING = auto()
    STORE = auto()
    SLUG_TAKEN = auto()
    CREATION = auto()  # sales-led saga failed and was rolled back


@dataclass(frozen=True, slots=True)
class CheckoutError:
    kind: CheckoutErrorKind
    message: str
    idempotency_key: str | None = None
    attempt_id: str | None = None
    cause: Any | None = None

    @classmethod
    def validation(cls, message: str) -> CheckoutError:
        return cls(CheckoutErrorKind.VALIDATION, message)

    @classmethod
    def slug_taken(cls) -> CheckoutError:
        return cls(CheckoutErrorKind.SLUG_TAKEN, "Slug is already taken")

    @classmethod
    def from_claim(cls, error: ClaimError) -> CheckoutError:
        return cls(
            kind=CheckoutErrorKind[error.kind.name],
            message=error.message,
            idempotency_key=error.idempotency_key,
            attempt_id=error.attempt_id,
            cause=error.cause,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Request
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CreateOrganizationCheckout:
    """
    Create an organization, either through a paid checkout or, for the
    largest alumni buckets, directly as a sales-led account.
    """

    user_id: str
    name: str
    slug: str
    billing_interval: str
    alumni_bucket: str
    user_email: str | None = None
    description: str | None = None
    primary_color: str | None = None
    idempotency_key: str | None = None
    attempt_id: str | None = None

    @property
    def color(self) -> str:
        return self.primary_color or DEFAULT_PRIMARY_COLOR

    def validate(self) -> Result[CreateOrganizationCheckout, CheckoutError]:
        name = self.name.strip()
        if not name or len(name) > NAME_MAX:
            return Error(CheckoutError.validation(f"name must be 1-{NAME_MAX} characters"))
        if not SLUG_PATTERN.match(self.slug):
            return Error(CheckoutError.validation(
                "slug must be 3-50 lowercase letters, digits or hyphens"
            ))
        if self.description is not None and len(self.description) > DESCRIPTION_MAX:
            return Error(CheckoutError.validation(
                f"description must be at most {DESCRIPTION_MAX} characters"
            ))
        if self.primary_color is not None and not HEX_COLOR_PATTERN.match(self.primary_color):
            return Error(CheckoutError.validation("primaryColor must be a hex colour like #1e3a5f"))
        if self.billing_interval not in BILLING_INTERVALS:
            return Error(CheckoutError.validation("billingInterval must be month or year"))
        if self.alumni_bucket not in ALUMNI_BUCKETS:
            return Error(CheckoutError.validation(f"unknown alumniBucket: {self.alumni_bucket}"))
        if self.idempotency_key is not None and len(self.idempotency_key.strip()) > 255:
            return Error(CheckoutError.validation("idempotencyKey must be at most 255 characters"))
        return Ok(self)

    def fingerprint_params(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name.strip(),
            "slug": self.slug,
            "interval": self.billing_interval,
            "bucket": self.alumni_bucket,
            "primary_color": self.primary_color,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Plans — chosen once by classify()
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Prices:
    base: str
    alumni: str | None = None


@dataclass(frozen=True, slots=True)
class PaidCheckout:
    request: CreateOrganizationCheckout
    prices: Prices


@dataclass(frozen=True, slots=True)
class SalesLedCreation:
    request: CreateOrganizationCheckout


type CheckoutPlan = PaidCheckout | SalesLedCreation


# ═══════════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutStarted:
    url: str
    idempotency_key: str
    attempt_id: str
    replayed: bool = False


@dataclass(frozen=True, slots=True)
class SalesLedCreated:
    organization_id: str
    organization_slug: str


type CheckoutResponse = CheckoutStarted | SalesLedCreated


__all__ = (
    "BILLING_INTERVALS",
    "ALUMNI_BUCKETS",
    "DEFAULT_PRIMARY_COLOR",
    "SLUG_PATTERN",
    "HEX_COLOR_PATTERN",
    "FLOW_SUBSCRIPTION_CHECKOUT",
    "FLOW_SALES_LED",
    "PROVIDER_DESCRIPTION_MAX",
    "CheckoutErrorKind",
    "CheckoutError",
    "CreateOrganizationCheckout",
    "Prices",
    "PaidCheckout",
    "SalesLedCreation",
    "CheckoutPlan",
    "CheckoutStarted",
    "SalesLedCreated",
    "CheckoutResponse",
)
