"""
Saga data: steps, chains and their outcomes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from kungfu import LazyCoroResult

type Undo[T] = Callable[[T], Awaitable[None]]
"""Reverts a finished step, given the value that step produced."""


# ═══════════════════════════════════════════════════════════════════════════════
# Steps
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    """
    One forward action and, optionally, how to take it back.

    The undo is only remembered once the action has produced a value.
    """

    action: LazyCoroResult[T, E]
    compensate: Undo[T] | None
    name: str | None = None

    def then[U, E2](self, f: Callable[[T], SagaStep[U, E2]]) -> Then[U, E | E2]:
        return Then(self, (f,))


@dataclass(frozen=True, slots=True)
class Then[T, E]:
    """
    A first step plus continuations.

    Each continuation is called with the previous step's value and returns
    the next step, so later steps can use earlier results (the org id, say).
    """

    inner: SagaStep[Any, Any]
    fs: tuple[Callable[[Any], SagaStep[Any, Any]], ...]

    def then[U, E2](self, f: Callable[[T], SagaStep[U, E2]]) -> Then[U, E | E2]:
        return Then(self.inner, (*self.fs, f))

    def __len__(self) -> int:
        return 1 + len(self.fs)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """
    Failure of one step plus what the rollback managed to undo.

    step_failed is 1-based. If a continuation raised while building that
    step, error is the exception itself. rollback_complete is False when any compensator
    raised; the leftovers then need manual cleanup.
    """

    error: E
    step_failed: int
    compensators_run: int
    compensators_failed: int
    rollback_complete: bool


__all__ = (
    "Undo",
    "SagaStep",
    "Then",
    "SagaResult",
    "SagaError",
)
