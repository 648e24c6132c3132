"""
Checkout — start an organization subscription or create a sales-led account.

    from oncely import checkout as CO

    plan = CO.classify(request, catalog)          # PaidCheckout | SalesLedCreation
    result = await service.create_organization_checkout(request)

Paid requests go through the claim protocol (exactly one checkout session
per idempotency key); sales-led requests run the organization saga.
"""

from oncely.checkout._types import (
    BILLING_INTERVALS,
    ALUMNI_BUCKETS,
    DEFAULT_PRIMARY_COLOR,
    FLOW_SUBSCRIPTION_CHECKOUT,
    FLOW_SALES_LED,
    CheckoutErrorKind,
    CheckoutError,
    CreateOrganizationCheckout,
    Prices,
    PaidCheckout,
    SalesLedCreation,
    CheckoutPlan,
    CheckoutStarted,
    SalesLedCreated,
    CheckoutResponse,
)
from oncely.checkout._catalog import PriceCatalog, classify
from oncely.checkout._tables import (
    OrganizationTable,
    RoleTable,
    SubscriptionTable,
    NewOrganization,
    Organization,
    Role,
    Subscription,
    SlugTakenError,
    OrganizationRepository,
)
from oncely.checkout._sales import organization_saga
from oncely.checkout._service import CheckoutService

__all__ = (
    # Types
    "BILLING_INTERVALS",
    "ALUMNI_BUCKETS",
    "DEFAULT_PRIMARY_COLOR",
    "FLOW_SUBSCRIPTION_CHECKOUT",
    "FLOW_SALES_LED",
    "CheckoutErrorKind",
    "CheckoutError",
    "CreateOrganizationCheckout",
    "Prices",
    "PaidCheckout",
    "SalesLedCreation",
    "CheckoutPlan",
    "CheckoutStarted",
    "SalesLedCreated",
    "CheckoutResponse",
    # Plans
    "PriceCatalog",
    "classify",
    # Tables
    "OrganizationTable",
    "RoleTable",
    "SubscriptionTable",
    "NewOrganization",
    "Organization",
    "Role",
    "Subscription",
    "SlugTakenError",
    "OrganizationRepository",
    # Flows
    "organization_saga",
    "CheckoutService",
)
