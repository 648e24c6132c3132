"""
Sales-led creation — organization, admin role and subscription placeholder
as one compensated saga.

    create organization ──→ assign creator admin ──→ pending_sales subscription
           ▲                        ▲                          │
           └── delete ◄──── revoke ◄┴──────── (on failure) ────┘
"""

from __future__ import annotations

from collections.abc import Callable

from oncely import saga as S
from oncely.checkout._tables import (
    ROLE_ADMIN,
    SUBSCRIPTION_PENDING_SALES,
    NewOrganization,
    Organization,
    Role,
    Subscription,
    SlugTakenError,
    OrganizationRepository,
)
from oncely.checkout._types import (
    CheckoutErrorKind,
    CheckoutError,
    CreateOrganizationCheckout,
)


def _failure(step: str) -> Callable[[Exception], CheckoutError]:
    def on_error(exc: Exception) -> CheckoutError:
        if isinstance(exc, SlugTakenError):
            return CheckoutError.slug_taken()
        return CheckoutError(
            CheckoutErrorKind.CREATION,
            str(exc) or f"Unable to {step.replace('_', ' ')}",
            cause=exc,
        )
    return on_error


def organization_saga(
    repo: OrganizationRepository,
    request: CreateOrganizationCheckout,
) -> S.Then[Subscription, CheckoutError]:
    """Build (not run) the three-step creation saga for request."""

    def create_organization() -> S.SagaStep[Organization, CheckoutError]:
        async def delete(org: Organization) -> None:
            await repo.delete_organization(org.id)

        return S.from_async(
            lambda: repo.create_organization(NewOrganization(
                name=request.name.strip(),
                slug=request.slug,
                description=request.description or None,
                primary_color=request.color,
            )),
            on_error=_failure("create_organization"),
            compensate=delete,
            name="create_organization",
        )

    def assign_admin(org: Organization) -> S.SagaStep[Role, CheckoutError]:
        async def revoke(role: Role) -> None:
            await repo.delete_role(role.id)

        return S.from_async(
            lambda: repo.assign_role(request.user_id, org.id, ROLE_ADMIN),
            on_error=_failure("assign_admin"),
            compensate=revoke,
            name="assign_admin",
        )

    def create_subscription(role: Role) -> S.SagaStep[Subscription, CheckoutError]:
        async def delete(sub: Subscription) -> None:
            await repo.delete_subscription(sub.id)

        return S.from_async(
            lambda: repo.create_subscription(
                role.organization_id,
                base_plan_interval=request.billing_interval,
                alumni_bucket=request.alumni_bucket,
                status=SUBSCRIPTION_PENDING_SALES,
            ),
            on_error=_failure("create_subscription"),
            compensate=delete,
            name="create_subscription",
        )

    return create_organization().then(assign_admin).then(create_subscription)


__all__ = ("organization_saga",)
