"""
Attempt ledger — typed storage protocol.

All methods return Result for explicit error handling.
The only method concurrent requests contend on is claim(), which must be a
single compare-and-swap against durable storage.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from datetime import timedelta
from typing import Protocol

from kungfu import Result, Ok, Error

from oncely.ledger._types import (
    utcnow,
    AttemptStatus,
    Attempt,
    NewAttempt,
    AttemptUpdate,
    Claim,
    LedgerError,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger Protocol — Typed, Result-based
# ═══════════════════════════════════════════════════════════════════════════════


class Ledger(Protocol):
    """
    Attempt ledger protocol.

    Implementations must make ensure() a get-or-create that never produces two
    rows for one key, and claim() a single conditional update
    ("SET processing WHERE id = ? AND status IN (pending, failed)") whose
    rows-affected count decides the winner.
    """

    async def ensure(
        self,
        new: NewAttempt,
        attempt_id: str | None = None,
    ) -> Result[Attempt, LedgerError]:
        """
        Get or create the attempt for new.idempotency_key.

        Fails with CONFLICT if the stored fingerprint differs.
        With attempt_id, looks the row up by id instead (NOT_FOUND if missing).
        """
        ...

    async def claim(
        self,
        attempt: Attempt,
        *,
        amount_cents: int,
        currency: str,
        fingerprint: str | None,
        stale_after: timedelta | None = None,
    ) -> Result[Claim, LedgerError]:
        """
        Atomically move the attempt to PROCESSING.

        Returns Claim(updated, True) if this call won, otherwise
        Claim(current, False). A won claim carries a fresh claim_token.
        """
        ...

    async def update(
        self,
        attempt_id: str,
        changes: AttemptUpdate,
        *,
        claim_token: str,
    ) -> Result[Attempt, LedgerError]:
        """
        Terminal write by the claim holder.

        Fails with CONFLICT unless the row is still PROCESSING under claim_token.
        """
        ...

    async def get(self, attempt_id: str) -> Result[Attempt | None, LedgerError]:
        """Get attempt by id. Returns Ok(None) if not found."""
        ...

    async def get_by_key(self, key: str) -> Result[Attempt | None, LedgerError]:
        """Get attempt by idempotency key. Returns Ok(None) if not found."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Shared checks
# ═══════════════════════════════════════════════════════════════════════════════


def check_existing(existing: Attempt, new: NewAttempt) -> Result[Attempt, LedgerError]:
    """An existing row may only be reused by the same key and the same request."""
    if existing.idempotency_key != new.idempotency_key:
        return Error(LedgerError.conflict(
            "Idempotency key does not match stored attempt", existing,
        ))
    if not existing.fingerprint_matches(new.request_fingerprint):
        return Error(LedgerError.conflict(
            "Idempotency key used for different request payload", existing,
        ))
    return Ok(existing)


def check_holder(existing: Attempt, claim_token: str) -> Result[None, LedgerError]:
    """Only the current claim may write; a reclaimed or finished row is off limits."""
    if not existing.is_processing or existing.claim_token != claim_token:
        return Error(LedgerError.conflict(
            f"Attempt {existing.id} is no longer held by this claim", existing,
        ))
    return Ok(None)


def check_overwrite(existing: Attempt, changes: AttemptUpdate) -> Result[None, LedgerError]:
    """Resource identifiers are write-once."""
    url = changes.external_resource_url
    if url is not None and existing.external_resource_url not in (None, url):
        return Error(LedgerError.conflict(
            f"Attempt {existing.id} already points at a different resource", existing,
        ))
    return Ok(None)


def new_attempt_id() -> str:
    return uuid.uuid4().hex


def new_claim_token() -> str:
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Ledger — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryLedger:
    """
    In-memory attempt ledger.

    Note: single-process only. The lock stands in for the atomicity a single
    SQL statement gives the SQLAlchemy ledger; it is never held across an
    await of anything but dict access.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, Attempt] = {}
        self._by_key: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._by_id)

    async def ensure(
        self,
        new: NewAttempt,
        attempt_id: str | None = None,
    ) -> Result[Attempt, LedgerError]:
        async with self._lock:
            if attempt_id is not None:
                existing = self._by_id.get(attempt_id)
                if existing is None:
                    return Error(LedgerError.not_found("Payment attempt not found"))
                return check_existing(existing, new)

            existing_id = self._by_key.get(new.idempotency_key)
            if existing_id is not None:
                return check_existing(self._by_id[existing_id], new)

            now = utcnow()
            attempt = Attempt(
                id=new_attempt_id(),
                idempotency_key=new.idempotency_key,
                flow_type=new.flow_type,
                request_fingerprint=new.request_fingerprint,
                status=AttemptStatus.PENDING,
                amount_cents=new.amount_cents,
                currency=new.currency,
                owner_id=new.owner_id,
                external_resource_id=None,
                external_resource_url=None,
                metadata=dict(new.metadata),
                last_error=None,
                created_at=now,
                updated_at=now,
            )
            self._by_id[attempt.id] = attempt
            self._by_key[attempt.idempotency_key] = attempt.id
            logger.debug("Created attempt %s for key %s", attempt.id, attempt.idempotency_key)
            return Ok(attempt)

    async def claim(
        self,
        attempt: Attempt,
        *,
        amount_cents: int,
        currency: str,
        fingerprint: str | None,
        stale_after: timedelta | None = None,
    ) -> Result[Claim, LedgerError]:
        if not attempt.fingerprint_matches(fingerprint):
            return Error(LedgerError.conflict(
                "Idempotency key used for different request payload", attempt,
            ))

        async with self._lock:
            current = self._by_id.get(attempt.id)
            if current is None:
                return Error(LedgerError.store("Payment attempt disappeared during claim"))

            if not current.is_claimable(stale_after):
                return Ok(Claim(current, claimed=False))

            claimed = dataclasses.replace(
                current,
                status=AttemptStatus.PROCESSING,
                amount_cents=amount_cents,
                currency=currency,
                last_error=None,
                updated_at=utcnow(),
                claim_token=new_claim_token(),
            )
            self._by_id[claimed.id] = claimed
            return Ok(Claim(claimed, claimed=True))

    async def update(
        self,
        attempt_id: str,
        changes: AttemptUpdate,
        *,
        claim_token: str,
    ) -> Result[Attempt, LedgerError]:
        async with self._lock:
            current = self._by_id.get(attempt_id)
            if current is None:
                return Error(LedgerError.not_found(f"No attempt with id: {attempt_id}"))

            for check in (check_holder(current, claim_token), check_overwrite(current, changes)):
                match check:
                    case Error(err):
                        return Error(err)
                    case Ok(_):
                        pass

            updated = dataclasses.replace(
                current,
                status=changes.status or current.status,
                external_resource_id=changes.external_resource_id or current.external_resource_id,
                external_resource_url=changes.external_resource_url or current.external_resource_url,
                last_error=(
                    changes.last_error
                    if changes.last_error is not None or changes.clear_error
                    else current.last_error
                ),
                updated_at=utcnow(),
            )
            self._by_id[attempt_id] = updated
            return Ok(updated)

    async def get(self, attempt_id: str) -> Result[Attempt | None, LedgerError]:
        async with self._lock:
            return Ok(self._by_id.get(attempt_id))

    async def get_by_key(self, key: str) -> Result[Attempt | None, LedgerError]:
        async with self._lock:
            attempt_id = self._by_key.get(key)
            return Ok(self._by_id.get(attempt_id) if attempt_id else None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Ledger",
    "check_existing",
    "check_holder",
    "check_overwrite",
    "new_attempt_id",
    "new_claim_token",
    "MemoryLedger",
)
