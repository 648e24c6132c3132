"""
Memory gateway — in-process provider double.

Honours the dedup-token contract: the same idempotency key always yields
the same session. Every invocation is recorded, so tests can count real
provider calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from kungfu import Result, Ok, Error

from oncely.gateway._types import CheckoutSessionRequest, CheckoutSession, ProviderError


type UrlFactory = Callable[[CheckoutSessionRequest, int], str]


def _default_url(request: CheckoutSessionRequest, n: int) -> str:
    return f"https://checkout.example/c/cs_test_{n}"


class MemoryGateway:
    """
    In-memory gateway for tests.

    delay: seconds to sleep inside every call (simulates a slow provider).
    fail_with: when set, the next calls fail with this error until cleared.
    """

    def __init__(
        self,
        *,
        delay: float = 0.0,
        url_factory: UrlFactory = _default_url,
    ) -> None:
        self.delay = delay
        self.fail_with: ProviderError | None = None
        self.calls: list[CheckoutSessionRequest] = []
        self._sessions: dict[str, CheckoutSession] = {}
        self._url_factory = url_factory

    @property
    def invocations(self) -> int:
        return len(self.calls)

    @property
    def sessions_created(self) -> int:
        return len(self._sessions)

    async def create_checkout_session(
        self,
        request: CheckoutSessionRequest,
    ) -> Result[CheckoutSession, ProviderError]:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.fail_with is not None:
            return Error(self.fail_with)

        existing = self._sessions.get(request.idempotency_key)
        if existing is not None:
            return Ok(existing)

        n = len(self._sessions) + 1
        session = CheckoutSession(id=f"cs_test_{n}", url=self._url_factory(request, n))
        self._sessions[request.idempotency_key] = session
        return Ok(session)


__all__ = ("MemoryGateway",)
