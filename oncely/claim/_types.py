"""
Claim types — requests, resources and errors of the claim protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from oncely._types import Metadata
from oncely.fingerprint import fingerprint, normalize_currency
from oncely.ledger import Attempt, LedgerError, LedgerErrorKind, NewAttempt


# ═══════════════════════════════════════════════════════════════════════════════
# Request
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ClaimRequest:
    """
    One logical request guarded by an idempotency key.

    params are the semantically significant inputs; they are what the
    fingerprint covers. When empty, the flow/amount/currency/owner tuple is
    fingerprinted instead.

    metadata is stored on the attempt at creation and never rewritten, so
    identifiers minted on the first try (a provisional org id) survive retries.
    """

    idempotency_key: str
    flow_type: str
    amount_cents: int = 0
    currency: str = "usd"
    owner_id: str | None = None
    params: Metadata = field(default_factory=dict)
    metadata: Metadata = field(default_factory=dict)
    attempt_id: str | None = None

    @property
    def normalized_currency(self) -> str:
        return normalize_currency(self.currency)

    @property
    def fingerprint(self) -> str:
        if self.params:
            return fingerprint(self.params)
        return fingerprint({
            "flow_type": self.flow_type,
            "amount_cents": self.amount_cents,
            "currency": self.normalized_currency,
            "owner_id": self.owner_id,
        })

    def to_new_attempt(self) -> NewAttempt:
        return NewAttempt(
            idempotency_key=self.idempotency_key,
            flow_type=self.flow_type,
            amount_cents=self.amount_cents,
            currency=self.normalized_currency,
            owner_id=self.owner_id,
            request_fingerprint=self.fingerprint,
            metadata=dict(self.metadata),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Resources
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ExternalResource:
    """What the guarded operation produced (e.g. a checkout session)."""

    id: str
    url: str


@dataclass(frozen=True, slots=True)
class ClaimedResource:
    """
    The resource a request ends up with.

    replayed is False only for the request that actually performed
    the side effect.
    """

    resource_id: str
    url: str
    idempotency_key: str
    attempt_id: str
    replayed: bool
    attempt: Attempt

    @classmethod
    def from_attempt(cls, attempt: Attempt, *, replayed: bool) -> ClaimedResource:
        return cls(
            resource_id=attempt.external_resource_id or "",
            url=attempt.external_resource_url or "",
            idempotency_key=attempt.idempotency_key,
            attempt_id=attempt.id,
            replayed=replayed,
            attempt=attempt,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Claim Error
# ═══════════════════════════════════════════════════════════════════════════════


class ClaimErrorKind(Enum):
    """Kinds of claim errors."""

    CONFLICT = auto()  # Key reused for a different request
    NOT_FOUND = auto()  # Unknown attempt id
    PROVIDER = auto()  # Guarded operation failed; attempt is reclaimable
    PROCESSING = auto()  # Another request holds the claim; retry shortly
    STORE = auto()  # Ledger backend failure


PROCESSING_MESSAGE = (
    "Request is already processing for this idempotency key. "
    "Retry shortly with the same key."
)


@dataclass(frozen=True, slots=True)
class ClaimError:
    """Claim protocol error. Carries the key and attempt id whenever known."""

    kind: ClaimErrorKind
    message: str
    idempotency_key: str | None = None
    attempt_id: str | None = None
    cause: Any | None = None

    @classmethod
    def from_ledger(
        cls,
        error: LedgerError,
        idempotency_key: str | None = None,
        attempt_id: str | None = None,
    ) -> ClaimError:
        match error.kind:
            case LedgerErrorKind.CONFLICT:
                kind = ClaimErrorKind.CONFLICT
            case LedgerErrorKind.NOT_FOUND:
                kind = ClaimErrorKind.NOT_FOUND
            case LedgerErrorKind.STORE:
                kind = ClaimErrorKind.STORE
        if attempt_id is None and error.attempt is not None:
            attempt_id = error.attempt.id
        return cls(kind, error.message, idempotency_key, attempt_id, error.cause)

    @classmethod
    def processing(cls, idempotency_key: str, attempt_id: str) -> ClaimError:
        return cls(ClaimErrorKind.PROCESSING, PROCESSING_MESSAGE, idempotency_key, attempt_id)


__all__ = (
    "ClaimRequest",
    "ExternalResource",
    "ClaimedResource",
    "ClaimErrorKind",
    "PROCESSING_MESSAGE",
    "ClaimError",
)
