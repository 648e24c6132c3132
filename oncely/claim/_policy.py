"""
Claim policy — behavior configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class ClaimPolicy:
    """
    Claim coordinator configuration.

    Example:
        policy = (
            ClaimPolicy()
            .with_wait_budget(seconds=5)
            .with_poll_backoff(initial=0.1, max_delay=0.5)
            .with_stale_after(minutes=15)
        )

    Immutable: each method returns a new ClaimPolicy.

    wait_budget: how long a losing request waits for the holder's resource
    before answering "still processing".
    stale_after: age after which a PROCESSING row without a resource is
    presumed abandoned and may be claimed again. None disables reclaiming.
    """

    wait_budget: timedelta = timedelta(seconds=3)
    poll_initial: timedelta = timedelta(milliseconds=150)
    poll_max: timedelta = timedelta(seconds=1)
    stale_after: timedelta | None = timedelta(minutes=10)

    def with_wait_budget(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> ClaimPolicy:
        """
        Set the loser's total wait.

        Example:
            .with_wait_budget(seconds=3)
        """
        budget = delta if delta is not None else timedelta(seconds=seconds or 0)
        return ClaimPolicy(
            wait_budget=budget,
            poll_initial=self.poll_initial,
            poll_max=self.poll_max,
            stale_after=self.stale_after,
        )

    def with_poll_backoff(self, *, initial: float, max_delay: float) -> ClaimPolicy:
        """Set first pause and cap (seconds) of the capped-exponential poll."""
        if initial <= 0 or max_delay < initial:
            raise ValueError("poll backoff needs 0 < initial <= max_delay")
        return ClaimPolicy(
            wait_budget=self.wait_budget,
            poll_initial=timedelta(seconds=initial),
            poll_max=timedelta(seconds=max_delay),
            stale_after=self.stale_after,
        )

    def with_stale_after(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        delta: timedelta | None = None,
        disabled: bool = False,
    ) -> ClaimPolicy:
        """
        Set when an abandoned PROCESSING claim becomes reclaimable.

        Example:
            .with_stale_after(minutes=10)
            .with_stale_after(disabled=True)
        """
        if disabled:
            stale: timedelta | None = None
        elif delta is not None:
            stale = delta
        else:
            stale = timedelta(seconds=(seconds or 0) + (minutes or 0) * 60)
        return ClaimPolicy(
            wait_budget=self.wait_budget,
            poll_initial=self.poll_initial,
            poll_max=self.poll_max,
            stale_after=stale,
        )


__all__ = ("ClaimPolicy",)
