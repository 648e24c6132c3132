import asyncio
from datetime import timedelta

import pytest
from kungfu import Ok, Error

from oncely.fingerprint import fingerprint
from oncely.ledger import (
    AttemptStatus,
    AttemptUpdate,
    LedgerError,
    LedgerErrorKind,
    NewAttempt,
    wait_for_resource,
)


def new_attempt(key: str = "abc123", amount: int = 1500, **overrides) -> NewAttempt:
    fields = {
        "idempotency_key": key,
        "flow_type": "one_time_payment",
        "amount_cents": amount,
        "currency": "usd",
        "owner_id": "user_1",
        "request_fingerprint": fingerprint({"amount": amount, "currency": "usd"}),
        "metadata": {"pending_org_id": "org_1"},
    }
    fields.update(overrides)
    return NewAttempt(**fields)


async def ensure(ledger, new: NewAttempt, attempt_id: str | None = None):
    match await ledger.ensure(new, attempt_id):
        case Ok(attempt):
            return attempt
        case Error(err):
            pytest.fail(f"ensure failed: {err.message}")


async def claim(ledger, attempt, new: NewAttempt, stale_after=None):
    match await ledger.claim(
        attempt,
        amount_cents=new.amount_cents,
        currency=new.currency,
        fingerprint=new.request_fingerprint,
        stale_after=stale_after,
    ):
        case Ok(result):
            return result
        case Error(err):
            pytest.fail(f"claim failed: {err.message}")


async def hold(ledger, new: NewAttempt):
    """Ensure and win the claim; returns the held row."""
    attempt = await ensure(ledger, new)
    won = await claim(ledger, attempt, new)
    assert won.claimed
    return won.attempt


# ═══════════════════════════════════════════════════════════════════════════════
# ensure()
# ═══════════════════════════════════════════════════════════════════════════════


class TestEnsure:
    @pytest.mark.asyncio
    async def test_creates_pending_row(self, ledger):
        attempt = await ensure(ledger, new_attempt())

        assert attempt.status is AttemptStatus.PENDING
        assert attempt.idempotency_key == "abc123"
        assert attempt.metadata == {"pending_org_id": "org_1"}
        assert attempt.external_resource_url is None
        assert attempt.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_same_key_returns_same_row(self, ledger):
        first = await ensure(ledger, new_attempt())
        second = await ensure(ledger, new_attempt(metadata={"pending_org_id": "org_2"}))

        assert second.id == first.id
        # First write wins for stored metadata.
        assert second.metadata == {"pending_org_id": "org_1"}

    @pytest.mark.asyncio
    async def test_concurrent_ensure_creates_one_row(self, ledger):
        attempts = await asyncio.gather(*(ensure(ledger, new_attempt()) for _ in range(8)))
        assert len({a.id for a in attempts}) == 1

    @pytest.mark.asyncio
    async def test_different_payload_is_conflict(self, ledger):
        await ensure(ledger, new_attempt())

        match await ledger.ensure(new_attempt(amount=2000)):
            case Error(LedgerError(kind=kind, attempt=attempt)):
                assert kind is LedgerErrorKind.CONFLICT
                assert attempt is not None
            case Ok(_):
                pytest.fail("expected conflict")

    @pytest.mark.asyncio
    async def test_row_without_fingerprint_matches_anything(self, ledger):
        await ensure(ledger, new_attempt(request_fingerprint=None))
        assert await ledger.ensure(new_attempt(amount=2000))

    @pytest.mark.asyncio
    async def test_lookup_by_attempt_id(self, ledger):
        created = await ensure(ledger, new_attempt())
        found = await ensure(ledger, new_attempt(), created.id)
        assert found.id == created.id

    @pytest.mark.asyncio
    async def test_unknown_attempt_id_is_not_found(self, ledger):
        match await ledger.ensure(new_attempt(), "missing"):
            case Error(err):
                assert err.kind is LedgerErrorKind.NOT_FOUND
            case Ok(_):
                pytest.fail("expected not found")

    @pytest.mark.asyncio
    async def test_attempt_id_with_other_key_is_conflict(self, ledger):
        created = await ensure(ledger, new_attempt("k1"))

        match await ledger.ensure(new_attempt("k2"), created.id):
            case Error(err):
                assert err.kind is LedgerErrorKind.CONFLICT
            case Ok(_):
                pytest.fail("expected conflict")


# ═══════════════════════════════════════════════════════════════════════════════
# claim()
# ═══════════════════════════════════════════════════════════════════════════════


class TestClaim:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self, ledger):
        new = new_attempt()
        attempt = await ensure(ledger, new)

        first = await claim(ledger, attempt, new)
        second = await claim(ledger, attempt, new)

        assert first.claimed
        assert first.attempt.status is AttemptStatus.PROCESSING
        assert not second.claimed
        assert second.attempt.status is AttemptStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_exactly_one_concurrent_winner(self, ledger):
        new = new_attempt()
        attempt = await ensure(ledger, new)

        claims = await asyncio.gather(*(claim(ledger, attempt, new) for _ in range(10)))

        assert sum(c.claimed for c in claims) == 1

    @pytest.mark.asyncio
    async def test_failed_attempt_is_claimable_again(self, ledger):
        new = new_attempt()
        attempt = await hold(ledger, new)
        await ledger.update(attempt.id, AttemptUpdate.failed("card_declined"), claim_token=attempt.claim_token)

        retried = await claim(ledger, attempt, new)

        assert retried.claimed
        assert retried.attempt.last_error is None

    @pytest.mark.asyncio
    async def test_completed_attempt_is_never_claimed(self, ledger):
        new = new_attempt()
        attempt = await hold(ledger, new)
        await ledger.update(
            attempt.id,
            AttemptUpdate.completed("cs_1", "https://pay.example/abc"),
            claim_token=attempt.claim_token,
        )

        again = await claim(ledger, attempt, new, stale_after=timedelta(0))

        assert not again.claimed
        assert again.attempt.external_resource_url == "https://pay.example/abc"

    @pytest.mark.asyncio
    async def test_stale_processing_is_reclaimed(self, ledger):
        new = new_attempt()
        attempt = await ensure(ledger, new)
        await claim(ledger, attempt, new)
        await asyncio.sleep(0.05)

        fresh = await claim(ledger, attempt, new, stale_after=timedelta(minutes=10))
        stale = await claim(ledger, attempt, new, stale_after=timedelta(milliseconds=10))

        assert not fresh.claimed
        assert stale.claimed

    @pytest.mark.asyncio
    async def test_every_claim_gets_a_new_token(self, ledger):
        new = new_attempt()
        first = await hold(ledger, new)
        await asyncio.sleep(0.05)

        second = await claim(ledger, first, new, stale_after=timedelta(milliseconds=10))

        assert first.claim_token
        assert second.claimed
        assert second.attempt.claim_token not in (None, first.claim_token)

    @pytest.mark.asyncio
    async def test_mismatched_fingerprint_is_conflict(self, ledger):
        new = new_attempt()
        attempt = await ensure(ledger, new)

        result = await ledger.claim(
            attempt,
            amount_cents=2000,
            currency="usd",
            fingerprint=fingerprint({"amount": 2000, "currency": "usd"}),
        )

        match result:
            case Error(err):
                assert err.kind is LedgerErrorKind.CONFLICT
            case Ok(_):
                pytest.fail("expected conflict")


# ═══════════════════════════════════════════════════════════════════════════════
# update()
# ═══════════════════════════════════════════════════════════════════════════════


class TestUpdate:
    @pytest.mark.asyncio
    async def test_completed_records_resource(self, ledger):
        attempt = await hold(ledger, new_attempt())

        match await ledger.update(
            attempt.id,
            AttemptUpdate.completed("cs_1", "https://pay.example/abc"),
            claim_token=attempt.claim_token,
        ):
            case Ok(done):
                assert done.status is AttemptStatus.COMPLETED
                assert done.external_resource_id == "cs_1"
                assert done.has_resource
            case Error(err):
                pytest.fail(err.message)

        stored = (await ledger.get_by_key("abc123")).unwrap()
        assert stored is not None
        assert stored.external_resource_url == "https://pay.example/abc"

    @pytest.mark.asyncio
    async def test_failed_keeps_error_message(self, ledger):
        attempt = await hold(ledger, new_attempt())
        await ledger.update(attempt.id, AttemptUpdate.failed("card_declined"), claim_token=attempt.claim_token)

        stored = (await ledger.get(attempt.id)).unwrap()
        assert stored.status is AttemptStatus.FAILED
        assert stored.last_error == "card_declined"

    @pytest.mark.asyncio
    async def test_finished_attempt_rejects_further_writes(self, ledger):
        attempt = await hold(ledger, new_attempt())
        await ledger.update(
            attempt.id,
            AttemptUpdate.completed("cs_1", "https://pay.example/abc"),
            claim_token=attempt.claim_token,
        )

        for changes in (
            AttemptUpdate.completed("cs_2", "https://pay.example/other"),
            AttemptUpdate.failed("late"),
        ):
            match await ledger.update(attempt.id, changes, claim_token=attempt.claim_token):
                case Error(err):
                    assert err.kind is LedgerErrorKind.CONFLICT
                case Ok(_):
                    pytest.fail("wrote over a completed attempt")

        stored = (await ledger.get(attempt.id)).unwrap()
        assert stored.status is AttemptStatus.COMPLETED
        assert stored.external_resource_url == "https://pay.example/abc"
        assert stored.last_error is None

    @pytest.mark.asyncio
    async def test_unclaimed_attempt_rejects_writes(self, ledger):
        attempt = await ensure(ledger, new_attempt())

        match await ledger.update(attempt.id, AttemptUpdate.failed("x"), claim_token="nope"):
            case Error(err):
                assert err.kind is LedgerErrorKind.CONFLICT
            case Ok(_):
                pytest.fail("wrote without a claim")

        assert (await ledger.get(attempt.id)).unwrap().status is AttemptStatus.PENDING

    @pytest.mark.asyncio
    async def test_superseded_holder_cannot_write(self, ledger):
        new = new_attempt()
        stalled = await hold(ledger, new)
        await asyncio.sleep(0.05)
        takeover = await claim(ledger, stalled, new, stale_after=timedelta(milliseconds=10))
        assert takeover.claimed

        match await ledger.update(stalled.id, AttemptUpdate.failed("x"), claim_token=stalled.claim_token):
            case Error(err):
                assert err.kind is LedgerErrorKind.CONFLICT
            case Ok(_):
                pytest.fail("superseded holder overwrote the row")

        current = (await ledger.get(stalled.id)).unwrap()
        assert current.status is AttemptStatus.PROCESSING
        assert current.last_error is None
        assert current.claim_token == takeover.attempt.claim_token

        # with the row still processing, nobody else gets in
        third = await claim(ledger, current, new)
        assert not third.claimed

        # the new holder finishes normally
        done = await ledger.update(
            stalled.id,
            AttemptUpdate.completed("cs_1", "https://pay.example/abc"),
            claim_token=takeover.attempt.claim_token,
        )
        assert done.unwrap().is_completed

        late = await ledger.update(stalled.id, AttemptUpdate.failed("x"), claim_token=stalled.claim_token)
        assert not late
        assert (await ledger.get(stalled.id)).unwrap().is_completed

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_found(self, ledger):
        match await ledger.update("missing", AttemptUpdate.failed("x"), claim_token="nope"):
            case Error(err):
                assert err.kind is LedgerErrorKind.NOT_FOUND
            case Ok(_):
                pytest.fail("expected not found")

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self, ledger):
        assert (await ledger.get("missing")).unwrap() is None
        assert (await ledger.get_by_key("missing")).unwrap() is None



# ═══════════════════════════════════════════════════════════════════════════════
# wait_for_resource()
# ═══════════════════════════════════════════════════════════════════════════════


class TestWaitForResource:
    @pytest.mark.asyncio
    async def test_returns_once_resource_appears(self, ledger):
        new = new_attempt()
        attempt = await hold(ledger, new)

        async def finish_later():
            await asyncio.sleep(0.1)
            await ledger.update(
                attempt.id,
                AttemptUpdate.completed("cs_1", "https://pay.example/abc"),
                claim_token=attempt.claim_token,
            )

        waited, _ = await asyncio.gather(
            wait_for_resource(ledger, attempt.id, budget=2.0, initial=0.02, max_delay=0.05),
            finish_later(),
        )

        match waited:
            case Ok(done):
                assert done is not None
                assert done.external_resource_url == "https://pay.example/abc"
            case Error(err):
                pytest.fail(err.message)

    @pytest.mark.asyncio
    async def test_budget_exhausted_gives_none(self, ledger):
        new = new_attempt()
        attempt = await ensure(ledger, new)
        await claim(ledger, attempt, new)

        waited = await wait_for_resource(ledger, attempt.id, budget=0.2, initial=0.02, max_delay=0.05)

        assert waited == Ok(None)

    @pytest.mark.asyncio
    async def test_failed_holder_stops_waiting_early(self, ledger):
        new = new_attempt()
        attempt = await hold(ledger, new)
        await ledger.update(attempt.id, AttemptUpdate.failed("boom"), claim_token=attempt.claim_token)

        loop = asyncio.get_running_loop()
        started = loop.time()
        waited = await wait_for_resource(ledger, attempt.id, budget=2.0, initial=0.02, max_delay=0.05)

        assert waited == Ok(None)
        assert loop.time() - started < 1.0

    @pytest.mark.asyncio
    async def test_zero_poll_interval_is_rejected(self, ledger):
        attempt = await hold(ledger, new_attempt())

        with pytest.raises(ValueError):
            wait_for_resource(ledger, attempt.id, budget=0.2, initial=0)
