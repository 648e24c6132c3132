"""
Bounded wait for a concurrent holder to publish its resource.

    match await wait_for_resource(ledger, attempt.id, budget=3.0):
        case Ok(Attempt() as done):   # holder finished, replay done
        case Ok(None):                # budget spent, or the holder failed
        case Error(ledger_error):     # storage broke while polling

Polling is combinators.retry with exponential backoff, bounded by
combinators.timeout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto

import combinators
from combinators import RetryPolicy
from kungfu import LazyCoroResult, Result, Ok, Error

from oncely._types import Lazy
from oncely.ledger._store import Ledger
from oncely.ledger._types import Attempt, LedgerError

logger = logging.getLogger(__name__)


class _Probe(Enum):
    PENDING = auto()  # still processing, poll again
    ABANDONED = auto()  # failed or vanished, stop polling


@dataclass(frozen=True, slots=True)
class _Stop:
    probe: _Probe
    error: LedgerError | None = None


def _keep_polling(stop: _Stop) -> bool:
    return stop.probe is _Probe.PENDING and stop.error is None


def wait_for_resource(
    ledger: Ledger,
    attempt_id: str,
    *,
    budget: float = 3.0,
    initial: float = 0.15,
    max_delay: float = 1.0,
) -> Lazy[Attempt | None, LedgerError]:
    """
    Re-read the attempt until it carries a resource.

    Gives up early (Ok(None)) once the row turns FAILED or disappears,
    and after `budget` seconds in any case.
    """
    if initial <= 0:
        raise ValueError("poll interval must be positive")

    async def probe() -> Result[Attempt, _Stop]:
        match await ledger.get(attempt_id):
            case Error(err):
                return Error(_Stop(_Probe.ABANDONED, err))
            case Ok(None):
                return Error(_Stop(_Probe.ABANDONED))
            case Ok(attempt):
                if attempt.has_resource:
                    return Ok(attempt)
                if attempt.is_failed:
                    return Error(_Stop(_Probe.ABANDONED))
                return Error(_Stop(_Probe.PENDING))

    # Enough attempts to outlast the budget; the timeout is the real bound.
    times = max(1, int(budget / initial) + 2)

    polled = combinators.timeout(
        combinators.retry(
            LazyCoroResult(probe),
            policy=RetryPolicy.exponential(
                times=times,
                initial=initial,
                multiplier=2.0,
                max_delay=max(max_delay, initial),
                retry_on=_keep_polling,
            ),
        ),
        seconds=budget,
    )

    async def run() -> Result[Attempt | None, LedgerError]:
        match await polled:
            case Ok(attempt):
                return Ok(attempt)
            case Error(_Stop(error=LedgerError() as err)):
                return Error(err)
            case Error(combinators.TimeoutError()):
                logger.info("Gave up waiting for attempt %s after %.2fs", attempt_id, budget)
                return Ok(None)
            case Error(_):
                return Ok(None)

    return LazyCoroResult(run)


__all__ = ("wait_for_resource",)
