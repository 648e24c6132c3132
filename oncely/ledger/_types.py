"""
Ledger types — core data structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, auto

from oncely._types import Metadata


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Attempt Status — Claim Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class AttemptStatus(str, Enum):
    """
    Status of an attempt row.

    Lifecycle:
        PENDING ──claim──→ PROCESSING ──→ COMPLETED
           ▲                   │
           └──── FAILED ◄──────┘   (reclaimable)

    Values are the strings persisted in the ledger table.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


CLAIMABLE = (AttemptStatus.PENDING, AttemptStatus.FAILED)


# ═══════════════════════════════════════════════════════════════════════════════
# Attempt — Stored Row
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Attempt:
    """
    A snapshot of one ledger row.

    request_fingerprint is written once on creation and never changes.
    external_resource_url, once set, never changes either.
    claim_token is replaced on every successful claim; only the holder of the
    current token may write the terminal status.
    """

    id: str
    idempotency_key: str
    flow_type: str
    request_fingerprint: str | None
    status: AttemptStatus
    amount_cents: int
    currency: str
    owner_id: str | None
    external_resource_id: str | None
    external_resource_url: str | None
    metadata: Metadata
    last_error: str | None
    created_at: datetime
    updated_at: datetime
    claim_token: str | None = None

    @property
    def has_resource(self) -> bool:
        """Both external identifiers are set: the side effect already happened."""
        return bool(self.external_resource_id and self.external_resource_url)

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == AttemptStatus.FAILED

    @property
    def is_processing(self) -> bool:
        return self.status == AttemptStatus.PROCESSING

    def fingerprint_matches(self, fingerprint: str | None) -> bool:
        """Legacy rows without a fingerprint (or callers without one) always match."""
        if self.request_fingerprint is None or fingerprint is None:
            return True
        return self.request_fingerprint == fingerprint

    def is_stale(self, stale_after: timedelta | None, now: datetime | None = None) -> bool:
        """PROCESSING for longer than stale_after; the holder is presumed dead."""
        if stale_after is None or not self.is_processing:
            return False
        return self.updated_at < (now or utcnow()) - stale_after

    def is_claimable(self, stale_after: timedelta | None = None) -> bool:
        if self.external_resource_url is not None:
            return False
        return self.status in CLAIMABLE or self.is_stale(stale_after)


# ═══════════════════════════════════════════════════════════════════════════════
# Inputs / Outputs
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class NewAttempt:
    """Everything ensure() needs to create a row for a key."""

    idempotency_key: str
    flow_type: str
    amount_cents: int
    currency: str
    owner_id: str | None = None
    request_fingerprint: str | None = None
    metadata: Metadata = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AttemptUpdate:
    """
    Terminal write performed by the claim holder.

    None means "leave as is" except for last_error, which is written
    verbatim whenever clear_error or a new message is given.
    """

    status: AttemptStatus | None = None
    external_resource_id: str | None = None
    external_resource_url: str | None = None
    last_error: str | None = None
    clear_error: bool = False

    @classmethod
    def completed(cls, resource_id: str, resource_url: str) -> AttemptUpdate:
        return cls(
            status=AttemptStatus.COMPLETED,
            external_resource_id=resource_id,
            external_resource_url=resource_url,
            clear_error=True,
        )

    @classmethod
    def failed(cls, error: str) -> AttemptUpdate:
        return cls(status=AttemptStatus.FAILED, last_error=error)


@dataclass(frozen=True, slots=True)
class Claim:
    """Result of the atomic claim: the current row and whether we own it."""

    attempt: Attempt
    claimed: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger Error
# ═══════════════════════════════════════════════════════════════════════════════


class LedgerErrorKind(Enum):
    """Kinds of ledger errors."""

    CONFLICT = auto()  # Key reused, resource overwrite, or claim lost
    NOT_FOUND = auto()  # Attempt id unknown
    STORE = auto()  # Storage backend failure


@dataclass(frozen=True, slots=True)
class LedgerError:
    """Ledger operation error."""

    kind: LedgerErrorKind
    message: str
    cause: Exception | None = None
    attempt: Attempt | None = None

    @classmethod
    def conflict(cls, message: str, attempt: Attempt | None = None) -> LedgerError:
        return cls(LedgerErrorKind.CONFLICT, message, attempt=attempt)

    @classmethod
    def not_found(cls, message: str) -> LedgerError:
        return cls(LedgerErrorKind.NOT_FOUND, message)

    @classmethod
    def store(cls, message: str, cause: Exception | None = None) -> LedgerError:
        return cls(LedgerErrorKind.STORE, message, cause=cause)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "utcnow",
    "AttemptStatus",
    "CLAIMABLE",
    "Attempt",
    "NewAttempt",
    "AttemptUpdate",
    "Claim",
    "LedgerErrorKind",
    "LedgerError",
)
