"""
Ledger — durable record of every attempt at a guarded side effect.

    from oncely import ledger as L

    ledger = L.SQLAlchemyLedger(session_factory)

    attempt = (await ledger.ensure(L.NewAttempt(
        idempotency_key="abc123",
        flow_type="subscription_checkout",
        amount_cents=1500,
        currency="usd",
        request_fingerprint=fp,
    ))).unwrap()

    match await ledger.claim(attempt, amount_cents=1500, currency="usd", fingerprint=fp):
        case Ok(L.Claim(claimed=True)):   # we own the side effect
        case Ok(L.Claim(attempt=row)):    # someone else does; replay or wait

Row lifecycle:

    pending ──claim──→ processing ──→ completed
       ▲                   │
       └───── failed ◄─────┘
"""

from oncely.ledger._types import (
    utcnow,
    AttemptStatus,
    CLAIMABLE,
    Attempt,
    NewAttempt,
    AttemptUpdate,
    Claim,
    LedgerErrorKind,
    LedgerError,
)
from oncely.ledger._store import (
    Ledger,
    check_existing,
    check_holder,
    check_overwrite,
    new_attempt_id,
    MemoryLedger,
)
from oncely.ledger._sqlalchemy import (
    AttemptTable,
    to_attempt,
    SQLAlchemyLedger,
)
from oncely.ledger._wait import wait_for_resource

__all__ = (
    # Types
    "utcnow",
    "AttemptStatus",
    "CLAIMABLE",
    "Attempt",
    "NewAttempt",
    "AttemptUpdate",
    "Claim",
    "LedgerErrorKind",
    "LedgerError",
    # Store
    "Ledger",
    "check_existing",
    "check_holder",
    "check_overwrite",
    "new_attempt_id",
    "MemoryLedger",
    # SQLAlchemy
    "AttemptTable",
    "to_attempt",
    "SQLAlchemyLedger",
    # Waiting
    "wait_for_resource",
)
