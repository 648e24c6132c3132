"""
Claim graph — the claim protocol as nodnod nodes.

Architecture:
    ClaimSpec (injected)
         │
         ▼
    SpecNode → EnsureNode → ClaimNode
                                │
         ┌──────────────┬───────┴──────┬────────────────┐
         ▼              ▼              ▼                ▼
    RejectedNode   ClaimedNode    ReplayNode      ContendedNode
         │              │              │                │
         └──────────────┴──────┬───────┴────────────────┘
                               ▼
                    ClaimOutcome (@polymorphic)
                               │
                               ▼
                        FinalResultNode

Exactly one state node validates for any ClaimNode; the polymorphic router
picks the case whose dependency composed.

Note: no 'from __future__ import annotations' here; nodnod reads the
__compose__ hints at runtime to wire dependencies.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from nodnod import NodeError, polymorphic, case

from kungfu import Result, Ok, Error

from oncely import graph as G
from oncely.ledger import (
    Attempt,
    AttemptUpdate,
    Claim,
    Ledger,
    wait_for_resource,
)
from oncely.claim._types import (
    ClaimRequest,
    ExternalResource,
    ClaimedResource,
    ClaimErrorKind,
    ClaimError,
)
from oncely.claim._policy import ClaimPolicy

logger = logging.getLogger(__name__)

type Operation = Callable[[Attempt], Awaitable[Result[ExternalResource, Any]]]


# ═══════════════════════════════════════════════════════════════════════════════
# Input — Spec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ClaimSpec:
    """
    Everything one claim run needs.

    operation receives the claimed attempt (its id, key and stored metadata)
    and must forward attempt.idempotency_key to the provider as its own
    dedup token.
    """

    request: ClaimRequest
    operation: Operation
    ledger: Ledger
    policy: ClaimPolicy


# ═══════════════════════════════════════════════════════════════════════════════
# Entry Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SpecNode:
    """Wraps ClaimSpec for graph."""

    def __init__(self, spec: ClaimSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: ClaimSpec) -> "SpecNode":
        return cls(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Ensure → Claim
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class EnsureNode:
    """Get-or-create the attempt row (or look it up by id)."""

    def __init__(
        self,
        spec: ClaimSpec,
        attempt: Attempt | None,
        error: ClaimError | None = None,
    ) -> None:
        self.spec = spec
        self.attempt = attempt
        self.error = error

    @classmethod
    async def __compose__(cls, spec_node: SpecNode) -> "EnsureNode":
        spec = spec_node.spec
        request = spec.request
        result = await spec.ledger.ensure(request.to_new_attempt(), request.attempt_id)

        match result:
            case Ok(attempt):
                return cls(spec, attempt)
            case Error(err):
                logger.info("Ensure rejected key %s: %s", request.idempotency_key, err.message)
                return cls(
                    spec,
                    None,
                    ClaimError.from_ledger(err, request.idempotency_key, request.attempt_id),
                )


@G.node
class ClaimNode:
    """
    The single compare-and-swap.

    Never raises: a failed ensure is carried through as an error so that
    RejectedNode can pick it up.
    """

    def __init__(
        self,
        spec: ClaimSpec,
        claim: Claim | None,
        error: ClaimError | None = None,
    ) -> None:
        self.spec = spec
        self.claim = claim
        self.error = error

    @classmethod
    async def __compose__(cls, ensure: EnsureNode) -> "ClaimNode":
        spec = ensure.spec
        if ensure.attempt is None:
            return cls(spec, None, ensure.error)

        request = spec.request
        result = await spec.ledger.claim(
            ensure.attempt,
            amount_cents=request.amount_cents,
            currency=request.normalized_currency,
            fingerprint=request.fingerprint,
            stale_after=spec.policy.stale_after,
        )

        match result:
            case Ok(claim):
                return cls(spec, claim)
            case Error(err):
                return cls(
                    spec,
                    None,
                    ClaimError.from_ledger(err, request.idempotency_key, ensure.attempt.id),
                )


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes — Each validates one claim outcome
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class RejectedNode:
    """Validates: ensure or claim failed."""

    def __init__(self, error: ClaimError) -> None:
        self.error = error

    @classmethod
    def __compose__(cls, claim: ClaimNode) -> "RejectedNode":
        if claim.error is None:
            raise NodeError("Not rejected")
        return cls(claim.error)


@G.node
class ClaimedNode:
    """Validates: this request won the claim."""

    def __init__(self, attempt: Attempt, spec: ClaimSpec) -> None:
        self.attempt = attempt
        self.spec = spec

    @classmethod
    def __compose__(cls, claim: ClaimNode) -> "ClaimedNode":
        if claim.claim is None or not claim.claim.claimed:
            raise NodeError("Not claimed")
        return cls(claim.claim.attempt, claim.spec)


@G.node
class ReplayNode:
    """Validates: lost the claim, but the resource already exists."""

    def __init__(self, attempt: Attempt) -> None:
        self.attempt = attempt

    @classmethod
    def __compose__(cls, claim: ClaimNode) -> "ReplayNode":
        if claim.claim is None or claim.claim.claimed:
            raise NodeError("Not a lost claim")
        if not claim.claim.attempt.has_resource:
            raise NodeError("No resource yet")
        return cls(claim.claim.attempt)


@G.node
class ContendedNode:
    """Validates: lost the claim and the holder is still working."""

    def __init__(self, attempt: Attempt, spec: ClaimSpec) -> None:
        self.attempt = attempt
        self.spec = spec

    @classmethod
    def __compose__(cls, claim: ClaimNode) -> "ContendedNode":
        if claim.claim is None or claim.claim.claimed:
            raise NodeError("Not a lost claim")
        if claim.claim.attempt.has_resource:
            raise NodeError("Resource exists")
        return cls(claim.claim.attempt, claim.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OutcomeOk:
    resource: ClaimedResource


@dataclass(frozen=True)
class OutcomeError:
    error: ClaimError


type Outcome = OutcomeOk | OutcomeError


def _describe(error: Any) -> str:
    message = getattr(error, "message", None)
    return str(message if message else error) or type(error).__name__


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Outcome]
class ClaimOutcome:
    """Routes to exactly one of reject / execute / replay / wait."""

    @case
    def rejected(cls, node: RejectedNode) -> Outcome:
        return OutcomeError(node.error)

    @case
    async def execute(cls, node: ClaimedNode) -> Outcome:
        """Winner: perform the side effect, then record it."""
        spec = node.spec
        attempt = node.attempt
        ledger = spec.ledger
        token = attempt.claim_token or ""
        logger.info("Claimed attempt %s for key %s", attempt.id, attempt.idempotency_key)

        try:
            result = await spec.operation(attempt)
        except Exception as e:
            logger.exception("Operation raised for attempt %s", attempt.id)
            result = Error(e)

        match result:
            case Ok(ExternalResource(id=resource_id, url=url)):
                match await ledger.update(
                    attempt.id, AttemptUpdate.completed(resource_id, url), claim_token=token,
                ):
                    case Ok(done):
                        return OutcomeOk(ClaimedResource.from_attempt(done, replayed=False))
                    case Error(err):
                        return OutcomeError(
                            ClaimError.from_ledger(err, attempt.idempotency_key, attempt.id)
                        )
            case Error(err):
                message = _describe(err)
                logger.warning("Operation failed for attempt %s: %s", attempt.id, message)
                match await ledger.update(
                    attempt.id, AttemptUpdate.failed(message), claim_token=token,
                ):
                    case Error(store_err):
                        logger.error(
                            "Could not record failure of attempt %s: %s",
                            attempt.id,
                            store_err.message,
                        )
                    case Ok(_):
                        pass
                return OutcomeError(ClaimError(
                    kind=ClaimErrorKind.PROVIDER,
                    message=message,
                    idempotency_key=attempt.idempotency_key,
                    attempt_id=attempt.id,
                    cause=err,
                ))

    @case
    def replay(cls, node: ReplayNode) -> Outcome:
        logger.info("Replaying resource of attempt %s", node.attempt.id)
        return OutcomeOk(ClaimedResource.from_attempt(node.attempt, replayed=True))

    @case
    async def await_resource(cls, node: ContendedNode) -> Outcome:
        """Loser: wait (bounded) for the holder, then echo its resource."""
        attempt = node.attempt
        spec = node.spec
        policy = spec.policy

        waited = await wait_for_resource(
            spec.ledger,
            attempt.id,
            budget=policy.wait_budget.total_seconds(),
            initial=policy.poll_initial.total_seconds(),
            max_delay=policy.poll_max.total_seconds(),
        )

        match waited:
            case Error(err):
                return OutcomeError(
                    ClaimError.from_ledger(err, attempt.idempotency_key, attempt.id)
                )
            case Ok(None):
                logger.warning(
                    "Attempt %s still processing after %.2fs",
                    attempt.id,
                    policy.wait_budget.total_seconds(),
                )
                return OutcomeError(ClaimError.processing(attempt.idempotency_key, attempt.id))
            case Ok(done):
                return OutcomeOk(ClaimedResource.from_attempt(done, replayed=True))


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalResultNode:
    """Converts Outcome to typed Result."""

    def __init__(self, outcome: Outcome) -> None:
        self.outcome = outcome

    @classmethod
    def __compose__(cls, outcome: ClaimOutcome) -> "FinalResultNode":
        return cls(outcome.value)

    def to_result(self) -> Result[ClaimedResource, ClaimError]:
        match self.outcome:
            case OutcomeOk(resource=resource):
                return Ok(resource)
            case OutcomeError(error=error):
                return Error(error)


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def run_claim(spec: ClaimSpec) -> Result[ClaimedResource, ClaimError]:
    """Execute one request through the claim graph."""
    node = await G.run(FinalResultNode).inject(spec)
    return node.to_result()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Operation",
    "ClaimSpec",
    "SpecNode",
    "EnsureNode",
    "ClaimNode",
    "RejectedNode",
    "ClaimedNode",
    "ReplayNode",
    "ContendedNode",
    "Outcome",
    "OutcomeOk",
    "OutcomeError",
    "ClaimOutcome",
    "FinalResultNode",
    "run_claim",
)
