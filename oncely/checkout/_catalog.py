"""
Price catalog and plan classification.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from kungfu import Result, Ok, Error

from oncely.checkout._types import (
    CheckoutError,
    CreateOrganizationCheckout,
    Prices,
    PaidCheckout,
    SalesLedCreation,
    CheckoutPlan,
)


@dataclass(frozen=True, slots=True)
class PriceCatalog:
    """
    Provider price ids.

    base maps billing interval → price id. alumni maps "bucket:interval"
    → price id; the "none" bucket needs no alumni price.
    """

    base: Mapping[str, str]
    alumni: Mapping[str, str] = field(default_factory=dict)
    sales_led_buckets: frozenset[str] = frozenset({"5000+"})

    def is_sales_led(self, bucket: str) -> bool:
        return bucket in self.sales_led_buckets

    def prices_for(self, interval: str, bucket: str) -> Result[Prices, CheckoutError]:
        base = self.base.get(interval)
        if base is None:
            return Error(CheckoutError.validation(f"No base price configured for {interval}"))
        if bucket == "none":
            return Ok(Prices(base=base))
        alumni = self.alumni.get(f"{bucket}:{interval}")
        if alumni is None:
            return Error(CheckoutError.validation(
                f"No alumni price configured for {bucket} ({interval})"
            ))
        return Ok(Prices(base=base, alumni=alumni))


def classify(
    request: CreateOrganizationCheckout,
    catalog: PriceCatalog,
) -> Result[CheckoutPlan, CheckoutError]:
    """Decide once whether the request is billed or sales-led."""
    if catalog.is_sales_led(request.alumni_bucket):
        return Ok(SalesLedCreation(request))

    match catalog.prices_for(request.billing_interval, request.alumni_bucket):
        case Ok(prices):
            return Ok(PaidCheckout(request, prices))
        case Error(err):
            return Error(err)


__all__ = ("PriceCatalog", "classify")
