"""
Organization tables and repository used by the sales-led creation path.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    delete,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from oncely.db import Base
from oncely.ledger import utcnow

ROLE_ADMIN = "admin"
SUBSCRIPTION_PENDING_SALES = "pending_sales"


def _new_id() -> str:
    return str(uuid.uuid4())


# ═══════════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════════


class OrganizationTable(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_color: Mapped[str] = mapped_column(String(7), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class RoleTable(Base):
    __tablename__ = "user_organization_roles"
    __table_args__ = (UniqueConstraint("user_id", "organization_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)


class SubscriptionTable(Base):
    __tablename__ = "organization_subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id"), nullable=False, unique=True
    )
    base_plan_interval: Mapped[str] = mapped_column(String(10), nullable=False)
    alumni_bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    alumni_plan_interval: Mapped[str | None] = mapped_column(String(10), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Rows returned to callers
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class NewOrganization:
    name: str
    slug: str
    description: str | None
    primary_color: str


@dataclass(frozen=True, slots=True)
class Organization:
    id: str
    name: str
    slug: str


@dataclass(frozen=True, slots=True)
class Role:
    id: str
    user_id: str
    organization_id: str
    role: str


@dataclass(frozen=True, slots=True)
class Subscription:
    id: str
    organization_id: str
    status: str


class SlugTakenError(Exception):
    """Insert collided with an existing organization slug."""


# ═══════════════════════════════════════════════════════════════════════════════
# Repository
# ═══════════════════════════════════════════════════════════════════════════════


class OrganizationRepository:
    """
    Organization rows for the sales-led saga.

    Every create has a matching delete so each saga step can be undone.
    Methods raise on storage failure; the saga lifts them into Results.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def slug_taken(self, slug: str) -> bool:
        async with self._session_factory() as session:
            found = await session.scalar(
                select(OrganizationTable.id).where(OrganizationTable.slug == slug)
            )
            return found is not None

    async def create_organization(self, new: NewOrganization) -> Organization:
        row = OrganizationTable(
            name=new.name,
            slug=new.slug,
            description=new.description,
            primary_color=new.primary_color,
        )
        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                raise SlugTakenError(f"Slug {new.slug} is already taken") from e
            return Organization(id=row.id, name=row.name, slug=row.slug)

    async def delete_organization(self, organization_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(OrganizationTable).where(OrganizationTable.id == organization_id)
            )
            await session.commit()

    async def assign_role(self, user_id: str, organization_id: str, role: str) -> Role:
        row = RoleTable(user_id=user_id, organization_id=organization_id, role=role)
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            return Role(
                id=row.id,
                user_id=row.user_id,
                organization_id=row.organization_id,
                role=row.role,
            )

    async def delete_role(self, role_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(RoleTable).where(RoleTable.id == role_id))
            await session.commit()

    async def create_subscription(
        self,
        organization_id: str,
        *,
        base_plan_interval: str,
        alumni_bucket: str,
        status: str = SUBSCRIPTION_PENDING_SALES,
    ) -> Subscription:
        row = SubscriptionTable(
            organization_id=organization_id,
            base_plan_interval=base_plan_interval,
            alumni_bucket=alumni_bucket,
            alumni_plan_interval=None,
            status=status,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            return Subscription(id=row.id, organization_id=row.organization_id, status=row.status)

    async def delete_subscription(self, subscription_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(SubscriptionTable).where(SubscriptionTable.id == subscription_id)
            )
            await session.commit()

    async def row_counts(self) -> dict[str, int]:
        """Rows per table; used to prove rollbacks leave nothing behind."""
        counts: dict[str, int] = {}
        async with self._session_factory() as session:
            for table in (OrganizationTable, RoleTable, SubscriptionTable):
                counts[table.__tablename__] = await session.scalar(
                    select(func.count()).select_from(table)
                ) or 0
        return counts


__all__ = (
    "ROLE_ADMIN",
    "SUBSCRIPTION_PENDING_SALES",
    "OrganizationTable",
    "RoleTable",
    "SubscriptionTable",
    "NewOrganization",
    "Organization",
    "Role",
    "Subscription",
    "SlugTakenError",
    "OrganizationRepository",
)
