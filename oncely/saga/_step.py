"""
Building saga steps.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from combinators import lift as L
from kungfu import LazyCoroResult

from oncely.saga._types import SagaStep, Undo


def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: Undo[T] | None = None,
    *,
    name: str | None = None,
) -> SagaStep[T, E]:
    """Wrap an action that already returns a Result."""
    return SagaStep(action=action, compensate=compensate, name=name)


def from_async[T, E](
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Undo[T] | None = None,
    *,
    name: str | None = None,
) -> SagaStep[T, E]:
    """
    Wrap a plain coroutine function; whatever it raises becomes on_error(exc).

        S.from_async(
            lambda: repo.create_organization(new),
            on_error=lambda e: CheckoutError(CheckoutErrorKind.CREATION, str(e)),
            compensate=lambda org: repo.delete_organization(org.id),
            name="create_organization",
        )
    """
    return step(L.catching_async(action, on_error=on_error), compensate, name=name)


__all__ = ("step", "from_async")
