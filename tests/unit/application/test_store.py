"""Unit tests for Application — InMemoryBillingStore."""
from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from tribute_billing.application.billing import (
    BillingStore,
    DonationCancellation,
    DonationStatus,
    InMemoryBillingStore,
    PaymentKind,
    PaymentListFilters,
    PaymentRecord,
    StoredDonation,
    StoredSubscription,
    SubscriptionCancellation,
    SubscriptionIntent,
    SubscriptionStatus,
)
from tribute_billing.config.validation import ConfigurationError

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _intent(intent_id: str, user: int = 1, plan: str = "m10", ttl_minutes: int = 15) -> SubscriptionIntent:
    return SubscriptionIntent(
        id=intent_id,
        plan_id=plan,
        external_user_id=user,
        created_at=T0,
        expires_at=T0 + timedelta(minutes=ttl_minutes),
    )


def _subscription(**overrides) -> StoredSubscription:
    data = dict(
        plan_id="m10",
        provider_subscription_id=1644,
        provider_period_id=1547,
        external_user_id=123,
        amount=1000,
        currency="eur",
        period="monthly",
        status=SubscriptionStatus.ACTIVE,
        created_at=T0,
        last_event_at=T0,
    )
    data.update(overrides)
    return StoredSubscription(**data)


def _donation(**overrides) -> StoredDonation:
    data = dict(
        donation_request_id=501,
        donation_name="Coffee",
        external_user_id=123,
        period="monthly",
        amount=500,
        currency="eur",
        status=DonationStatus.ACTIVE,
        created_at=T0,
        last_event_at=T0,
    )
    data.update(overrides)
    return StoredDonation(**data)


def _payment(kind: PaymentKind, user: int, paid_at: datetime) -> PaymentRecord:
    return PaymentRecord(kind=kind, external_user_id=user, amount=100, currency="eur", paid_at=paid_at)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------
class TestProtocol:
    def test_in_memory_store_satisfies_protocol(self):
        assert isinstance(InMemoryBillingStore(), BillingStore)


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------
class TestIntents:
    def test_consume_removes(self):
        async def _run():
            store = InMemoryBillingStore()
            await store.save_intent(_intent("a"))
            assert (await store.get_intent("a")).id == "a"
            assert (await store.consume_intent("a")).id == "a"
            assert await store.consume_intent("a") is None
        asyncio.run(_run())

    def test_consume_for_user_and_plan_compares_users_as_strings(self):
        async def _run():
            store = InMemoryBillingStore()
            await store.save_intent(_intent("a", user=7))
            found = await store.consume_intent_for_user_and_plan("7", "m10", T0)
            assert found.id == "a"
            assert store.intents == {}
        asyncio.run(_run())

    def test_consume_for_user_and_plan_evicts_expired(self):
        async def _run():
            store = InMemoryBillingStore()
            await store.save_intent(_intent("old", ttl_minutes=1))
            await store.save_intent(_intent("other-plan", plan="y100"))
            now = T0 + timedelta(minutes=5)
            assert await store.consume_intent_for_user_and_plan(1, "m10", now) is None
            assert set(store.intents) == {"other-plan"}
        asyncio.run(_run())

    def test_consume_for_user_and_plan_skips_expired_to_live_one(self):
        async def _run():
            store = InMemoryBillingStore()
            await store.save_intent(_intent("old", ttl_minutes=1))
            await store.save_intent(_intent("fresh", ttl_minutes=60))
            found = await store.consume_intent_for_user_and_plan(1, "m10", T0 + timedelta(minutes=5))
            assert found.id == "fresh"
            assert store.intents == {}
        asyncio.run(_run())

    def test_intent_metadata_is_not_shared(self):
        async def _run():
            store = InMemoryBillingStore()
            intent = SubscriptionIntent(
                id="a", plan_id="m10", external_user_id=1, created_at=T0,
                expires_at=T0 + timedelta(minutes=15), metadata={"k": "v"},
            )
            await store.save_intent(intent)
            intent.metadata["before"] = True
            (await store.get_intent("a")).metadata["after"] = True
            assert (await store.get_intent("a")).metadata == {"k": "v"}
        asyncio.run(_run())


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------
class TestSubscriptions:
    def test_upsert_returns_previous(self):
        async def _run():
            store = InMemoryBillingStore()
            assert await store.upsert_subscription(_subscription()) is None
            previous = await store.upsert_subscription(_subscription(amount=2000))
            assert previous.amount == 1000
            assert (await store.get_subscription("1644")).amount == 2000
        asyncio.run(_run())

    def test_records_are_copied(self):
        async def _run():
            store = InMemoryBillingStore()
            record = _subscription()
            await store.upsert_subscription(record)
            record.amount = 1
            fetched = await store.get_subscription(1644)
            fetched.amount = 2
            assert (await store.get_subscription(1644)).amount == 1000
        asyncio.run(_run())

    def test_nested_metadata_is_not_shared(self):
        async def _run():
            store = InMemoryBillingStore()
            record = _subscription(metadata={"k": "v"})
            await store.upsert_subscription(record)
            record.metadata["before"] = True
            (await store.get_subscription(1644)).metadata["leak"] = True
            previous = await store.upsert_subscription(_subscription(metadata={"k": "v2"}))
            previous.metadata["leak"] = True
            assert (await store.get_subscription(1644)).metadata == {"k": "v2"}
            cancelled = await store.mark_subscription_cancelled(1644, SubscriptionCancellation(T0, T0))
            cancelled.metadata["leak"] = True
            assert (await store.get_subscription(1644)).metadata == {"k": "v2"}
        asyncio.run(_run())

    def test_lookup_by_user_and_plan(self):
        async def _run():
            store = InMemoryBillingStore()
            await store.upsert_subscription(_subscription())
            assert (await store.get_subscription_for_user_and_plan("123", "m10")).provider_subscription_id == 1644
            assert await store.get_subscription_for_user_and_plan(123, "y100") is None
        asyncio.run(_run())

    def test_mark_cancelled_raises_watermark(self):
        async def _run():
            store = InMemoryBillingStore()
            await store.upsert_subscription(_subscription())
            cancelled_at = T0 + timedelta(days=1)
            updated = await store.mark_subscription_cancelled(
                1644,
                SubscriptionCancellation(cancelled_at=cancelled_at, event_at=cancelled_at, cancel_reason="user"),
            )
            assert updated.status is SubscriptionStatus.CANCELLED
            assert updated.cancel_reason == "user"
            assert updated.last_event_at == cancelled_at
            assert (await store.get_subscription(1644)).last_event_at == cancelled_at
        asyncio.run(_run())

    def test_mark_cancelled_never_lowers_watermark(self):
        async def _run():
            store = InMemoryBillingStore()
            await store.upsert_subscription(_subscription(last_event_at=T0 + timedelta(days=5)))
            updated = await store.mark_subscription_cancelled(
                1644, SubscriptionCancellation(cancelled_at=T0, event_at=T0)
            )
            assert updated.last_event_at == T0 + timedelta(days=5)
        asyncio.run(_run())

    def test_mark_cancelled_missing(self):
        async def _run():
            store = InMemoryBillingStore()
            assert await store.mark_subscription_cancelled(1, SubscriptionCancellation(T0, T0)) is None
        asyncio.run(_run())


# ---------------------------------------------------------------------------
# Donations
# ---------------------------------------------------------------------------
class TestDonations:
    def test_upsert_get_and_cancel(self):
        async def _run():
            store = InMemoryBillingStore()
            assert await store.upsert_donation(_donation()) is None
            when = T0 + timedelta(hours=1)
            updated = await store.mark_donation_cancelled(501, DonationCancellation(cancelled_at=when, event_at=when))
            assert updated.status is DonationStatus.CANCELLED
            assert updated.cancelled_at == when
            assert (await store.get_donation("501")).status is DonationStatus.CANCELLED
            assert (await store.get_donation("501")).last_event_at == when
            assert await store.mark_donation_cancelled(999, DonationCancellation(when, when)) is None
        asyncio.run(_run())


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
class TestLedger:
    def _seed(self, store: InMemoryBillingStore) -> None:
        async def _run():
            await store.record_payment(_payment(PaymentKind.SUBSCRIPTION, 1, T0))
            await store.record_payment(_payment(PaymentKind.DONATION, 1, T0 + timedelta(days=2)))
            await store.record_payment(_payment(PaymentKind.SUBSCRIPTION, 2, T0 + timedelta(days=1)))
        asyncio.run(_run())

    def test_newest_first(self):
        store = InMemoryBillingStore()
        self._seed(store)
        records = asyncio.run(store.list_payments())
        assert [r.paid_at for r in records] == [T0 + timedelta(days=2), T0 + timedelta(days=1), T0]

    def test_filters(self):
        store = InMemoryBillingStore()
        self._seed(store)
        by_user = asyncio.run(store.list_payments(PaymentListFilters(external_user_id="1")))
        assert len(by_user) == 2
        subs = asyncio.run(store.list_payments(PaymentListFilters(kinds=frozenset({"subscription"}))))
        assert {r.kind for r in subs} == {PaymentKind.SUBSCRIPTION}
        window = asyncio.run(
            store.list_payments(PaymentListFilters(since=T0 + timedelta(hours=1), until=T0 + timedelta(days=1)))
        )
        assert [r.external_user_id for r in window] == [2]
        limited = asyncio.run(store.list_payments(PaymentListFilters(limit=1)))
        assert len(limited) == 1
        assert limited[0].kind is PaymentKind.DONATION

    def test_naive_bounds_are_taken_as_utc(self):
        store = InMemoryBillingStore()
        self._seed(store)
        filters = PaymentListFilters(since=datetime(2026, 1, 1, 13, 0), until=datetime(2026, 1, 2, 12, 0))
        assert filters.since == T0 + timedelta(hours=1)
        assert filters.since.tzinfo is UTC
        window = asyncio.run(store.list_payments(filters))
        assert [r.external_user_id for r in window] == [2]
        assert len(asyncio.run(store.list_payments(PaymentListFilters(since=datetime(2020, 1, 1))))) == 3

    def test_payload_is_not_shared(self):
        async def _run():
            store = InMemoryBillingStore()
            payment = PaymentRecord(
                kind=PaymentKind.DONATION, external_user_id=1, amount=100, currency="eur",
                paid_at=T0, payload={"k": "v"},
            )
            await store.record_payment(payment)
            payment.payload["before"] = True
            (await store.list_payments())[0].payload["after"] = True
            assert (await store.list_payments())[0].payload == {"k": "v"}
        asyncio.run(_run())

    def test_limit_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            PaymentListFilters(limit=0)
