"""
Claim builder — fluent API over the claim graph.
"""

from __future__ import annotations

from dataclasses import dataclass

from kungfu import LazyCoroResult, Result

from oncely._types import Lazy
from oncely.ledger import Ledger, MemoryLedger
from oncely.claim._types import ClaimRequest, ClaimedResource, ClaimError
from oncely.claim._policy import ClaimPolicy
from oncely.claim._graph import ClaimSpec, Operation, run_claim


# ═══════════════════════════════════════════════════════════════════════════════
# Claiming Builder
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class Claiming:
    """
    Fluent claim builder.
    """
    _operation: Operation
    _ledger: Ledger | None
    _policy: ClaimPolicy

    def ledger(self, ledger: Ledger) -> Claiming:
        """Set ledger backend."""
        return Claiming(
            _operation=self._operation,
            _ledger=ledger,
            _policy=self._policy,
        )

    def policy(self, p: ClaimPolicy) -> Claiming:
        """Set claim policy."""
        return Claiming(
            _operation=self._operation,
            _ledger=self._ledger,
            _policy=p,
        )

    def build(self) -> ClaimExecutor:
        """Build executable."""
        ledger: Ledger = self._ledger if self._ledger is not None else MemoryLedger()
        return ClaimExecutor(
            operation=self._operation,
            ledger=ledger,
            policy=self._policy,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Claim Executor
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class ClaimExecutor:
    """
    Compiled claim executor.

    Thin wrapper: creates ClaimSpec and runs the graph. Safe to share
    between concurrent requests; all per-request state lives in the graph run.
    """
    operation: Operation
    ledger: Ledger
    policy: ClaimPolicy

    def run(self, request: ClaimRequest) -> Lazy[ClaimedResource, ClaimError]:
        """Execute request under its idempotency key."""
        spec = ClaimSpec(
            request=request,
            operation=self.operation,
            ledger=self.ledger,
            policy=self.policy,
        )

        async def execute() -> Result[ClaimedResource, ClaimError]:
            return await run_claim(spec)

        return LazyCoroResult(execute)


# ═══════════════════════════════════════════════════════════════════════════════
# claiming() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════

def claiming(operation: Operation) -> Claiming:
    """
    Guard an operation with the attempt claim protocol.

    Example:
        executor = (
            C.claiming(create_session)
            .ledger(SQLAlchemyLedger(session_factory))
            .policy(C.ClaimPolicy().with_wait_budget(seconds=3))
            .build()
        )

        match await executor.run(request):
            case Ok(resource):
                return {"url": resource.url}
            case Error(C.ClaimError(kind=C.ClaimErrorKind.PROCESSING)):
                return 409
    """
    return Claiming(
        _operation=operation,
        _ledger=None,
        _policy=ClaimPolicy(),
    )


__all__ = (
    "Claiming",
    "ClaimExecutor",
    "claiming",
)
