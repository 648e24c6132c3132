"""
SQLAlchemy ledger — durable attempt storage.

Usage:
    session_factory, engine = await create_database("sqlite+aiosqlite:///ledger.db")
    ledger = SQLAlchemyLedger(session_factory)

    match await ledger.ensure(NewAttempt(...)):
        case Ok(attempt):
            claim = await ledger.claim(attempt, amount_cents=0, currency="usd", fingerprint=fp)

The claim is one UPDATE with a WHERE guard; its rowcount decides the winner,
so any number of server processes can share the table without a lock service.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, cast

from sqlalchemy import (
    JSON,
    DateTime,
    Integer,
    String,
    Text,
    and_,
    or_,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from kungfu import Result, Ok, Error

from oncely.db import Base
from oncely.ledger._types import (
    utcnow,
    AttemptStatus,
    CLAIMABLE,
    Attempt,
    NewAttempt,
    AttemptUpdate,
    Claim,
    LedgerError,
)
from oncely.ledger._store import (
    check_existing,
    check_holder,
    check_overwrite,
    new_attempt_id,
    new_claim_token,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Table
# ═══════════════════════════════════════════════════════════════════════════════

class AttemptTable(Base):
    """
    payment_attempts: one row per idempotency key, kept as an audit trail.
    """

    __tablename__ = "payment_attempts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    idempotency_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )
    flow_type: Mapped[str] = mapped_column(String(50), nullable=False)
    request_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AttemptStatus.PENDING.value,
    )

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    external_resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_resource_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    attempt_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    claim_token: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def to_attempt(row: AttemptTable) -> Attempt:
    return Attempt(
        id=row.id,
        idempotency_key=row.idempotency_key,
        flow_type=row.flow_type,
        request_fingerprint=row.request_fingerprint,
        status=AttemptStatus(row.status),
        amount_cents=row.amount_cents,
        currency=row.currency,
        owner_id=row.owner_id,
        external_resource_id=row.external_resource_id,
        external_resource_url=row.external_resource_url,
        metadata=dict(row.attempt_metadata or {}),
        last_error=row.last_error,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        claim_token=row.claim_token,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyLedger:
    """
    Attempt ledger backed by an async SQLAlchemy engine.

    Works on SQLite and PostgreSQL (INSERT ... ON CONFLICT DO NOTHING).
    Each operation opens its own short session and commits before returning.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ensure(
        self,
        new: NewAttempt,
        attempt_id: str | None = None,
    ) -> Result[Attempt, LedgerError]:
        """Get-or-create by key (or lookup by id)."""
        try:
            async with self._session_factory() as session:
                if attempt_id is not None:
                    row = await self._fetch(session, AttemptTable.id == attempt_id)
                    if row is None:
                        return Error(LedgerError.not_found("Payment attempt not found"))
                    return check_existing(to_attempt(row), new)

                now = utcnow()
                stmt = self._insert_ignoring_duplicates(session, {
                    "id": new_attempt_id(),
                    "idempotency_key": new.idempotency_key,
                    "flow_type": new.flow_type,
                    "request_fingerprint": new.request_fingerprint,
                    "status": AttemptStatus.PENDING.value,
                    "amount_cents": new.amount_cents,
                    "currency": new.currency,
                    "owner_id": new.owner_id,
                    "attempt_metadata": dict(new.metadata),
                    "created_at": now,
                    "updated_at": now,
                })
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                inserted = cursor.rowcount > 0

                row = await self._fetch(
                    session, AttemptTable.idempotency_key == new.idempotency_key
                )
                if row is None:
                    return Error(LedgerError.store(
                        f"Attempt for key {new.idempotency_key} vanished after insert"
                    ))

                attempt = to_attempt(row)
                if inserted:
                    return Ok(attempt)
                return check_existing(attempt, new)

        except Exception as e:
            return Error(LedgerError.store(f"Failed to ensure attempt: {e}", e))

    async def claim(
        self,
        attempt: Attempt,
        *,
        amount_cents: int,
        currency: str,
        fingerprint: str | None,
        stale_after: timedelta | None = None,
    ) -> Result[Claim, LedgerError]:
        """UPDATE ... SET status='processing' WHERE id=? AND <claimable>."""
        if not attempt.fingerprint_matches(fingerprint):
            return Error(LedgerError.conflict(
                "Idempotency key used for different request payload", attempt,
            ))

        claimable = AttemptTable.status.in_([s.value for s in CLAIMABLE])
        if stale_after is not None:
            claimable = or_(
                claimable,
                and_(
                    AttemptTable.status == AttemptStatus.PROCESSING.value,
                    AttemptTable.updated_at < utcnow() - stale_after,
                ),
            )

        stmt = (
            update(AttemptTable)
            .where(
                AttemptTable.id == attempt.id,
                AttemptTable.external_resource_url.is_(None),
                claimable,
            )
            .values(
                status=AttemptStatus.PROCESSING.value,
                amount_cents=amount_cents,
                currency=currency,
                last_error=None,
                updated_at=utcnow(),
                claim_token=new_claim_token(),
            )
            .execution_options(synchronize_session=False)
        )

        try:
            async with self._session_factory() as session:
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                won = cursor.rowcount == 1

                row = await self._fetch(session, AttemptTable.id == attempt.id)
                if row is None:
                    return Error(LedgerError.store("Payment attempt disappeared during claim"))

                return Ok(Claim(to_attempt(row), claimed=won))

        except Exception as e:
            return Error(LedgerError.store(f"Failed to claim attempt: {e}", e))

    async def update(
        self,
        attempt_id: str,
        changes: AttemptUpdate,
        *,
        claim_token: str,
    ) -> Result[Attempt, LedgerError]:
        """Terminal write, fenced by the claim token; the url is write-once in SQL too."""
        values: dict[str, Any] = {"updated_at": utcnow()}
        if changes.status is not None:
            values["status"] = changes.status.value
        if changes.external_resource_id is not None:
            values["external_resource_id"] = changes.external_resource_id
        if changes.external_resource_url is not None:
            values["external_resource_url"] = changes.external_resource_url
        if changes.last_error is not None or changes.clear_error:
            values["last_error"] = changes.last_error

        stmt = update(AttemptTable).where(
            AttemptTable.id == attempt_id,
            AttemptTable.status == AttemptStatus.PROCESSING.value,
            AttemptTable.claim_token == claim_token,
        )
        if changes.external_resource_url is not None:
            stmt = stmt.where(or_(
                AttemptTable.external_resource_url.is_(None),
                AttemptTable.external_resource_url == changes.external_resource_url,
            ))

        try:
            async with self._session_factory() as session:
                cursor = cast(CursorResult[Any], await session.execute(
                    stmt.values(**values).execution_options(synchronize_session=False)
                ))
                await session.commit()

                row = await self._fetch(session, AttemptTable.id == attempt_id)
                if row is None:
                    return Error(LedgerError.not_found(f"No attempt with id: {attempt_id}"))

                current = to_attempt(row)
                if cursor.rowcount == 0:
                    for check in (check_holder(current, claim_token), check_overwrite(current, changes)):
                        match check:
                            case Error(err):
                                return Error(err)
                            case Ok(_):
                                pass
                    return Error(LedgerError.store(f"Attempt {attempt_id} was not updated"))
                return Ok(current)

        except Exception as e:
            return Error(LedgerError.store(f"Failed to update attempt: {e}", e))

    async def get(self, attempt_id: str) -> Result[Attempt | None, LedgerError]:
        try:
            async with self._session_factory() as session:
                row = await self._fetch(session, AttemptTable.id == attempt_id)
                return Ok(to_attempt(row) if row is not None else None)
        except Exception as e:
            return Error(LedgerError.store(f"Failed to get attempt: {e}", e))

    async def get_by_key(self, key: str) -> Result[Attempt | None, LedgerError]:
        try:
            async with self._session_factory() as session:
                row = await self._fetch(session, AttemptTable.idempotency_key == key)
                return Ok(to_attempt(row) if row is not None else None)
        except Exception as e:
            return Error(LedgerError.store(f"Failed to get attempt: {e}", e))

    @staticmethod
    async def _fetch(session: AsyncSession, condition: Any) -> AttemptTable | None:
        result = await session.execute(
            select(AttemptTable)
            .where(condition)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _insert_ignoring_duplicates(session: AsyncSession, values: dict[str, Any]) -> Any:
        """INSERT ... ON CONFLICT (idempotency_key) DO NOTHING for the bound dialect."""
        table = AttemptTable.__table__
        # keyed by attribute name; the metadata column is named differently
        columns = AttemptTable.__mapper__.columns
        values = {columns[attr]: value for attr, value in values.items()}
        dialect = session.bind.dialect.name if session.bind is not None else "sqlite"
        if dialect == "postgresql":
            return (
                postgresql.insert(table)
                .values(values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
            )
        return (
            sqlite.insert(table)
            .values(values)
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
        )


__all__ = (
    "AttemptTable",
    "to_attempt",
    "SQLAlchemyLedger",
)
