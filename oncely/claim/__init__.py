"""
Claim — exactly-once side effects behind an idempotency key.

    from oncely import claim as C

    executor = (
        C.claiming(create_session)
        .ledger(ledger)
        .policy(C.ClaimPolicy().with_stale_after(minutes=10))
        .build()
    )
    result = await executor.run(C.ClaimRequest(
        idempotency_key="abc123",
        flow_type="subscription_checkout",
        amount_cents=1500,
        currency="usd",
    ))

Architecture: ensure, one conditional claim, then route:

    ClaimRequest
         │
         ▼
    ensure (get-or-create by key, fingerprint check)
         │
         ▼
    claim (single compare-and-swap)
         │
         ├── error ─────────────→ CONFLICT / NOT_FOUND / STORE
         ├── won ───────────────→ operation → completed | failed (PROVIDER)
         ├── lost, has resource → replay
         └── lost, in flight ───→ bounded wait → replay | PROCESSING
"""

from oncely.claim._types import (
    ClaimRequest,
    ExternalResource,
    ClaimedResource,
    ClaimErrorKind,
    PROCESSING_MESSAGE,
    ClaimError,
)
from oncely.claim._policy import ClaimPolicy
from oncely.claim._graph import (
    Operation,
    ClaimSpec,
    run_claim,
    Outcome,
    OutcomeOk,
    OutcomeError,
    SpecNode,
    EnsureNode,
    ClaimNode,
    RejectedNode,
    ClaimedNode,
    ReplayNode,
    ContendedNode,
    ClaimOutcome,
    FinalResultNode,
)
from oncely.claim._builder import (
    claiming,
    Claiming,
    ClaimExecutor,
)

__all__ = (
    # Types
    "ClaimRequest",
    "ExternalResource",
    "ClaimedResource",
    "ClaimErrorKind",
    "PROCESSING_MESSAGE",
    "ClaimError",
    # Policy
    "ClaimPolicy",
    # Spec & API
    "Operation",
    "ClaimSpec",
    "run_claim",
    # Outcome
    "Outcome",
    "OutcomeOk",
    "OutcomeError",
    # Nodes
    "SpecNode",
    "EnsureNode",
    "ClaimNode",
    "RejectedNode",
    "ClaimedNode",
    "ReplayNode",
    "ContendedNode",
    "ClaimOutcome",
    "FinalResultNode",
    # Builder
    "claiming",
    "Claiming",
    "ClaimExecutor",
)
