import asyncio
import uuid

import pytest
from kungfu import Ok, Error

from oncely.claim import ClaimError, ClaimErrorKind
from oncely.checkout import (
    CheckoutError,
    CheckoutErrorKind,
    CheckoutStarted,
    CreateOrganizationCheckout,
    NewOrganization,
    PaidCheckout,
    PriceCatalog,
    SalesLedCreated,
    SalesLedCreation,
    classify,
)
from oncely.gateway import ProviderError


def org_request(**overrides) -> CreateOrganizationCheckout:
    fields = {
        "user_id": "user_1",
        "user_email": "founder@example.com",
        "name": "Acme Alumni",
        "slug": "acme-alumni",
        "billing_interval": "month",
        "alumni_bucket": "0-250",
        "idempotency_key": "org-key-1",
    }
    fields.update(overrides)
    return CreateOrganizationCheckout(**fields)


def sales_request(**overrides) -> CreateOrganizationCheckout:
    fields = {"alumni_bucket": "5000+", "slug": "huge-university", "idempotency_key": None}
    fields.update(overrides)
    return org_request(**fields)


EMPTY = {"organizations": 0, "user_organization_roles": 0, "organization_subscriptions": 0}


# ═══════════════════════════════════════════════════════════════════════════════
# Validation & classification
# ═══════════════════════════════════════════════════════════════════════════════


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "   "},
            {"name": "x" * 121},
            {"slug": "Acme"},
            {"slug": "ab"},
            {"slug": "-acme"},
            {"description": "x" * 801},
            {"primary_color": "red"},
            {"billing_interval": "week"},
            {"alumni_bucket": "10"},
            {"idempotency_key": "k" * 256},
        ],
    )
    def test_rejects(self, overrides):
        match org_request(**overrides).validate():
            case Error(err):
                assert err.kind is CheckoutErrorKind.VALIDATION
            case Ok(_):
                pytest.fail(f"accepted {overrides}")

    def test_accepts_and_defaults_color(self):
        request = org_request(description="Class of 2010", primary_color="#AABBCC")
        assert request.validate() == Ok(request)
        assert org_request().color == "#1e3a5f"

    @pytest.mark.asyncio
    async def test_invalid_request_never_reaches_provider(self, service, gateway):
        match await service.create_organization_checkout(org_request(slug="Not A Slug")):
            case Error(err):
                assert err.kind is CheckoutErrorKind.VALIDATION
            case Ok(_):
                pytest.fail("expected validation error")

        assert gateway.invocations == 0


class TestClassify:
    def test_largest_bucket_is_sales_led(self, catalog):
        assert isinstance(classify(sales_request(), catalog).unwrap(), SalesLedCreation)

    def test_paid_with_alumni_price(self, catalog):
        plan = classify(org_request(), catalog).unwrap()
        assert isinstance(plan, PaidCheckout)
        assert plan.prices.base == "price_base_month"
        assert plan.prices.alumni == "price_alumni_250_month"

    def test_no_alumni_bucket_means_base_only(self, catalog):
        plan = classify(org_request(alumni_bucket="none", billing_interval="year"), catalog).unwrap()
        assert plan.prices.base == "price_base_year"
        assert plan.prices.alumni is None

    def test_missing_price_is_validation_error(self):
        catalog = PriceCatalog(base={"month": "price_m"})
        match classify(org_request(alumni_bucket="251-500"), catalog):
            case Error(err):
                assert err.kind is CheckoutErrorKind.VALIDATION
            case Ok(_):
                pytest.fail("expected missing price")


class TestClaimErrorTranslation:
    @pytest.mark.parametrize("kind", list(ClaimErrorKind))
    def test_every_claim_kind_has_checkout_kind(self, kind):
        error = CheckoutError.from_claim(ClaimError(kind, "x", idempotency_key="k", attempt_id="a"))
        assert error.kind.name == kind.name
        assert error.kind is not CheckoutErrorKind.VALIDATION
        assert (error.idempotency_key, error.attempt_id) == ("k", "a")


# ═══════════════════════════════════════════════════════════════════════════════
# Paid checkout
# ═══════════════════════════════════════════════════════════════════════════════


class TestPaidCheckout:
    @pytest.mark.asyncio
    async def test_starts_checkout_session(self, service, gateway, repository):
        match await service.create_organization_checkout(org_request(description="Class of 2010")):
            case Ok(CheckoutStarted(url=url, idempotency_key=key, attempt_id=attempt_id, replayed=replayed)):
                assert url.startswith("https://checkout.example/")
                assert key == "org-key-1"
                assert attempt_id
                assert not replayed
            case other:
                pytest.fail(f"unexpected {other}")

        (call,) = gateway.calls
        assert call.idempotency_key == "org-key-1"
        assert [item.price for item in call.line_items] == ["price_base_month", "price_alumni_250_month"]
        assert call.success_url == "https://app.example/app?org=acme-alumni&checkout=success"
        assert call.cancel_url == "https://app.example/app?org=acme-alumni&checkout=cancel"
        assert call.customer_email == "founder@example.com"
        assert call.metadata["organization_slug"] == "acme-alumni"
        assert call.metadata["organization_description"] == "Class of 2010"
        assert call.metadata["organization_color"] == "#1e3a5f"
        assert call.metadata["payment_attempt_id"] == attempt_id
        uuid.UUID(call.metadata["organization_id"])

        # Nothing is written to the organization tables before payment.
        assert await repository.row_counts() == EMPTY

    @pytest.mark.asyncio
    async def test_long_description_is_truncated_for_provider(self, service, gateway):
        await service.create_organization_checkout(org_request(description="d" * 800))
        assert len(gateway.calls[0].metadata["organization_description"]) == 500

    @pytest.mark.asyncio
    async def test_retry_replays_session(self, service, gateway):
        first = (await service.create_organization_checkout(org_request())).unwrap()
        second = (await service.create_organization_checkout(org_request())).unwrap()

        assert second.url == first.url
        assert second.attempt_id == first.attempt_id
        assert second.replayed
        assert gateway.invocations == 1

    @pytest.mark.asyncio
    async def test_retry_with_padded_name_replays_session(self, service, gateway):
        first = (await service.create_organization_checkout(org_request())).unwrap()
        second = (await service.create_organization_checkout(org_request(name="  Acme Alumni "))).unwrap()

        assert second.replayed
        assert second.attempt_id == first.attempt_id
        assert gateway.invocations == 1

    @pytest.mark.asyncio
    async def test_key_reuse_with_other_payload_is_conflict(self, service):
        first = (await service.create_organization_checkout(org_request())).unwrap()

        match await service.create_organization_checkout(org_request(name="Someone Else")):
            case Error(err):
                assert err.kind is CheckoutErrorKind.CONFLICT
                assert err.idempotency_key == "org-key-1"
                assert err.attempt_id == first.attempt_id
            case Ok(_):
                pytest.fail("expected conflict")

    @pytest.mark.asyncio
    async def test_unknown_attempt_id(self, service):
        match await service.create_organization_checkout(org_request(attempt_id="missing")):
            case Error(err):
                assert err.kind is CheckoutErrorKind.NOT_FOUND
            case Ok(_):
                pytest.fail("expected not found")

    @pytest.mark.asyncio
    async def test_concurrent_submits_make_one_session(self, service, gateway):
        gateway.delay = 0.2

        results = await asyncio.gather(
            *(service.create_organization_checkout(org_request()) for _ in range(5))
        )

        assert gateway.invocations == 1
        assert len({r.unwrap().url for r in results}) == 1

    @pytest.mark.asyncio
    async def test_provider_failure_then_retry_reuses_pending_org(self, service, gateway):
        gateway.fail_with = ProviderError("Your card was declined.", code="card_declined")

        match await service.create_organization_checkout(org_request()):
            case Error(err):
                assert err.kind is CheckoutErrorKind.PROVIDER
                assert err.message == "Your card was declined."
            case Ok(_):
                pytest.fail("expected provider error")

        gateway.fail_with = None
        started = (await service.create_organization_checkout(org_request())).unwrap()

        assert not started.replayed
        assert gateway.invocations == 2
        first, second = gateway.calls
        assert first.metadata["organization_id"] == second.metadata["organization_id"]

    @pytest.mark.asyncio
    async def test_missing_key_is_generated(self, service, gateway):
        started = (await service.create_organization_checkout(org_request(idempotency_key=None))).unwrap()
        assert started.idempotency_key
        assert gateway.calls[0].idempotency_key == started.idempotency_key


# ═══════════════════════════════════════════════════════════════════════════════
# Sales-led creation
# ═══════════════════════════════════════════════════════════════════════════════


class TestSalesLed:
    @pytest.mark.asyncio
    async def test_creates_organization_role_and_subscription(self, service, gateway, repository):
        match await service.create_organization_checkout(sales_request()):
            case Ok(SalesLedCreated(organization_id=org_id, organization_slug=slug)):
                assert org_id
                assert slug == "huge-university"
            case other:
                pytest.fail(f"unexpected {other}")

        assert gateway.invocations == 0
        assert await repository.row_counts() == {
            "organizations": 1,
            "user_organization_roles": 1,
            "organization_subscriptions": 1,
        }

    @pytest.mark.asyncio
    async def test_taken_slug_is_rejected_before_any_work(self, service, gateway):
        await service.create_organization_checkout(sales_request())

        for request in (sales_request(), org_request(slug="huge-university")):
            match await service.create_organization_checkout(request):
                case Error(err):
                    assert err.kind is CheckoutErrorKind.SLUG_TAKEN
                    assert err.message == "Slug is already taken"
                case Ok(_):
                    pytest.fail("expected slug taken")

        assert gateway.invocations == 0

    @pytest.mark.asyncio
    async def test_slug_race_inside_saga_is_slug_taken(self, service, repository, monkeypatch):
        await repository.create_organization(NewOrganization(
            name="Other", slug="huge-university", description=None, primary_color="#000000",
        ))

        async def not_taken(slug: str) -> bool:
            return False

        monkeypatch.setattr(repository, "slug_taken", not_taken)

        match await service.create_organization_checkout(sales_request()):
            case Error(err):
                assert err.kind is CheckoutErrorKind.SLUG_TAKEN
            case Ok(_):
                pytest.fail("expected slug taken")

        counts = await repository.row_counts()
        assert counts["organizations"] == 1
        assert counts["user_organization_roles"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing", ["create_organization", "assign_role", "create_subscription"])
    async def test_failure_at_any_step_leaves_no_rows(self, service, repository, monkeypatch, failing):
        async def broken(*args, **kwargs):
            raise RuntimeError(f"{failing} unavailable")

        monkeypatch.setattr(repository, failing, broken)

        match await service.create_organization_checkout(sales_request()):
            case Error(err):
                assert err.kind is CheckoutErrorKind.CREATION
                assert failing in err.message
            case Ok(_):
                pytest.fail("expected creation failure")

        assert await repository.row_counts() == EMPTY

    @pytest.mark.asyncio
    async def test_store_failure_on_slug_lookup(self, service, repository, monkeypatch):
        async def broken(slug: str) -> bool:
            raise RuntimeError("database is locked")

        monkeypatch.setattr(repository, "slug_taken", broken)

        match await service.create_organization_checkout(sales_request()):
            case Error(err):
                assert err.kind is CheckoutErrorKind.STORE
            case Ok(_):
                pytest.fail("expected store error")
