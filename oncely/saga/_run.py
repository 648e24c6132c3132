"""
Saga execution: run forward, and on the first failure undo what succeeded.

    match await S.run_chain(create_org.then(assign_admin).then(create_sub)):
        case Ok(SagaResult(value=subscription)):
            ...
        case Error(SagaError(step_failed=n, rollback_complete=clean)):
            ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from kungfu import Result, Ok, Error

from oncely.saga._types import SagaStep, SagaResult, SagaError, Then, Undo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Done:
    """A finished step whose effect can still be reverted."""

    label: str
    value: Any
    undo: Undo[Any]


async def run_step[T, E](step: SagaStep[T, E], done: list[_Done], index: int = 1) -> Result[T, E]:
    """Run one step; on success remember how to undo it."""
    label = step.name or f"step {index}"

    match await step.action:
        case Ok(value):
            if step.compensate is not None:
                done.append(_Done(label, value, step.compensate))
            logger.debug("Saga step %s done", label)
            return Ok(value)
        case Error(e):
            logger.warning("Saga step %s failed: %s", label, e)
            return Error(e)


async def run_compensators(done: list[_Done]) -> tuple[int, int]:
    """
    Undo finished steps newest first. Returns (undone, failed).

    A failing compensator is logged and counted; the remaining ones still run.
    """
    undone = failed = 0
    for entry in reversed(done):
        try:
            await entry.undo(entry.value)
        except Exception:
            logger.exception("Could not undo saga step %s", entry.label)
            failed += 1
        else:
            undone += 1
    return undone, failed


async def _roll_back[E](error: E, step_failed: int, done: list[_Done]) -> SagaError[E]:
    undone, failed = await run_compensators(done)
    if failed:
        logger.error(
            "Saga rollback after step %d left %d of %d step(s) in place",
            step_failed,
            failed,
            undone + failed,
        )
    return SagaError(
        error=error,
        step_failed=step_failed,
        compensators_run=undone,
        compensators_failed=failed,
        rollback_complete=failed == 0,
    )


async def run[T, E](saga: SagaStep[T, E]) -> Result[SagaResult[T], SagaError[E]]:
    """Run a single step as a saga of one."""
    return await run_chain(Then(saga, ()))


async def run_chain[T, E](chain: Then[T, E]) -> Result[SagaResult[T], SagaError[E]]:
    """Run every step in order, feeding each value into the next continuation."""
    done: list[_Done] = []
    current: SagaStep[Any, Any] = chain.inner

    for index in range(1, len(chain) + 1):
        match await run_step(current, done, index):
            case Error(error):
                return Error(await _roll_back(error, index, done))
            case Ok(value):
                if index == len(chain):
                    return Ok(SagaResult(
                        value=value,
                        steps_executed=index,
                        compensators_recorded=len(done),
                    ))
                try:
                    current = chain.fs[index - 1](value)
                except Exception as e:
                    logger.exception("Could not build saga step %d", index + 1)
                    return Error(await _roll_back(e, index + 1, done))

    raise AssertionError("unreachable: a chain always has at least one step")


__all__ = ("run_step", "run_compensators", "run", "run_chain")
