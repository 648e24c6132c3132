"""
Process configuration, read from ONCELY_* environment variables (or .env).
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from oncely.claim import ClaimPolicy
from oncely.checkout import PriceCatalog


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ONCELY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "oncely"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./oncely.db"

    stripe_api_key: str = ""
    # Pin the Stripe API version; empty uses the account default.
    stripe_api_version: str = ""
    # Origin used to build checkout success/cancel URLs.
    checkout_origin: str = "http://localhost:3000"

    # How long a duplicate request waits for the in-flight one.
    claim_wait_budget_s: float = 3.0
    claim_poll_initial_s: float = Field(default=0.15, gt=0)
    claim_poll_max_s: float = Field(default=1.0, gt=0)
    # A processing attempt older than this is reclaimable; 0 disables.
    claim_stale_after_s: int = 600

    # Interval → provider price id.
    base_prices: dict[str, str] = {
        "month": "price_base_month",
        "year": "price_base_year",
    }
    # "bucket:interval" → provider price id.
    alumni_prices: dict[str, str] = {}
    sales_led_buckets: list[str] = ["5000+"]

    def claim_policy(self) -> ClaimPolicy:
        policy = (
            ClaimPolicy()
            .with_wait_budget(seconds=self.claim_wait_budget_s)
            .with_poll_backoff(initial=self.claim_poll_initial_s, max_delay=self.claim_poll_max_s)
        )
        if self.claim_stale_after_s <= 0:
            return policy.with_stale_after(disabled=True)
        return policy.with_stale_after(delta=timedelta(seconds=self.claim_stale_after_s))

    def price_catalog(self) -> PriceCatalog:
        return PriceCatalog(
            base=dict(self.base_prices),
            alumni=dict(self.alumni_prices),
            sales_led_buckets=frozenset(self.sales_led_buckets),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ("Settings", "get_settings", "configure_logging")
