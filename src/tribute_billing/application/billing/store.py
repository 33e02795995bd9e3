"""Application billing – BillingStore protocol + InMemory impl."""
from __future__ import annotations

import copy
import dataclasses
from datetime import datetime
from typing import Protocol, TypeVar, runtime_checkable

from tribute_billing.application.billing.models import (
    DonationCancellation,
    DonationStatus,
    PaymentListFilters,
    PaymentRecord,
    ProviderId,
    StoredDonation,
    StoredSubscription,
    SubscriptionCancellation,
    SubscriptionIntent,
    SubscriptionStatus,
)

__all__ = [
    "BillingStore",
    "InMemoryBillingStore",
]

_R = TypeVar("_R")


@runtime_checkable
class BillingStore(Protocol):
    """Port: persistence for intents, subscriptions, donations and the payment ledger.

    ``upsert_*`` and ``mark_*_cancelled`` must be atomic per key (row lock or
    compare-and-set); concurrent deliveries for the same provider id are not
    serialised by the processor.
    """

    async def save_intent(self, intent: SubscriptionIntent) -> None: ...
    async def get_intent(self, intent_id: str) -> SubscriptionIntent | None: ...
    async def consume_intent(self, intent_id: str) -> SubscriptionIntent | None: ...

    async def consume_intent_for_user_and_plan(
        self, external_user_id: ProviderId, plan_id: str, now: datetime
    ) -> SubscriptionIntent | None:
        """Remove and return a live intent for the pair, evicting expired ones found on the way."""
        ...

    async def upsert_subscription(self, subscription: StoredSubscription) -> StoredSubscription | None:
        """Store *subscription*, returning the record it replaced (if any)."""
        ...

    async def get_subscription(self, provider_subscription_id: ProviderId) -> StoredSubscription | None: ...

    async def get_subscription_for_user_and_plan(
        self, external_user_id: ProviderId, plan_id: str
    ) -> StoredSubscription | None: ...

    async def mark_subscription_cancelled(
        self, provider_subscription_id: ProviderId, cancellation: SubscriptionCancellation
    ) -> StoredSubscription | None:
        """Mark the subscription cancelled and return the updated record.

        The persisted ``last_event_at`` must become
        ``max(last_event_at, cancellation.event_at)``; later duplicate checks
        read it back. Returns ``None`` when no subscription exists.
        """
        ...

    async def upsert_donation(self, donation: StoredDonation) -> StoredDonation | None: ...
    async def get_donation(self, donation_request_id: ProviderId) -> StoredDonation | None: ...

    async def mark_donation_cancelled(
        self, donation_request_id: ProviderId, cancellation: DonationCancellation
    ) -> StoredDonation | None:
        """Same contract as :meth:`mark_subscription_cancelled`, including the
        persisted ``last_event_at`` watermark.
        """
        ...

    async def record_payment(self, payment: PaymentRecord) -> None: ...

    async def list_payments(self, filters: PaymentListFilters | None = None) -> list[PaymentRecord]:
        """Matching ledger entries, newest ``paid_at`` first."""
        ...


def _key(value: ProviderId) -> str:
    return str(value)


def _copy(record: _R) -> _R:
    return copy.deepcopy(record)


def _later(current: datetime | None, candidate: datetime) -> datetime:
    if current is None or current < candidate:
        return candidate
    return current


class InMemoryBillingStore:
    """Fake BillingStore for unit tests and local development.

    Records are deep-copied on the way in and out, metadata and payload
    dicts included, so callers never hold a reference to stored state.
    """

    def __init__(self) -> None:
        self._intents: dict[str, SubscriptionIntent] = {}
        self._subscriptions: dict[str, StoredSubscription] = {}
        self._donations: dict[str, StoredDonation] = {}
        self._payments: list[PaymentRecord] = []

    # -- intents ------------------------------------------------------------

    async def save_intent(self, intent: SubscriptionIntent) -> None:
        self._intents[intent.id] = _copy(intent)

    async def get_intent(self, intent_id: str) -> SubscriptionIntent | None:
        found = self._intents.get(intent_id)
        return _copy(found) if found else None

    async def consume_intent(self, intent_id: str) -> SubscriptionIntent | None:
        return self._intents.pop(intent_id, None)

    async def consume_intent_for_user_and_plan(
        self, external_user_id: ProviderId, plan_id: str, now: datetime
    ) -> SubscriptionIntent | None:
        for intent_id, intent in list(self._intents.items()):
            if intent.plan_id != plan_id or str(intent.external_user_id) != str(external_user_id):
                continue
            del self._intents[intent_id]
            if intent.is_expired(now):
                continue
            return _copy(intent)
        return None

    # -- subscriptions ------------------------------------------------------

    async def upsert_subscription(self, subscription: StoredSubscription) -> StoredSubscription | None:
        key = _key(subscription.provider_subscription_id)
        previous = self._subscriptions.get(key)
        self._subscriptions[key] = _copy(subscription)
        return _copy(previous) if previous else None

    async def get_subscription(self, provider_subscription_id: ProviderId) -> StoredSubscription | None:
        found = self._subscriptions.get(_key(provider_subscription_id))
        return _copy(found) if found else None

    async def get_subscription_for_user_and_plan(
        self, external_user_id: ProviderId, plan_id: str
    ) -> StoredSubscription | None:
        for subscription in self._subscriptions.values():
            if subscription.plan_id == plan_id and str(subscription.external_user_id) == str(external_user_id):
                return _copy(subscription)
        return None

    async def mark_subscription_cancelled(
        self, provider_subscription_id: ProviderId, cancellation: SubscriptionCancellation
    ) -> StoredSubscription | None:
        key = _key(provider_subscription_id)
        existing = self._subscriptions.get(key)
        if existing is None:
            return None
        updated = dataclasses.replace(
            existing,
            status=SubscriptionStatus.CANCELLED,
            cancelled_at=cancellation.cancelled_at,
            cancel_reason=cancellation.cancel_reason,
            last_event_at=_later(existing.last_event_at, cancellation.event_at),
        )
        self._subscriptions[key] = updated
        return _copy(updated)

    # -- donations ----------------------------------------------------------

    async def upsert_donation(self, donation: StoredDonation) -> StoredDonation | None:
        key = _key(donation.donation_request_id)
        previous = self._donations.get(key)
        self._donations[key] = _copy(donation)
        return _copy(previous) if previous else None

    async def get_donation(self, donation_request_id: ProviderId) -> StoredDonation | None:
        found = self._donations.get(_key(donation_request_id))
        return _copy(found) if found else None

    async def mark_donation_cancelled(
        self, donation_request_id: ProviderId, cancellation: DonationCancellation
    ) -> StoredDonation | None:
        key = _key(donation_request_id)
        existing = self._donations.get(key)
        if existing is None:
            return None
        updated = dataclasses.replace(
            existing,
            status=DonationStatus.CANCELLED,
            cancelled_at=cancellation.cancelled_at,
            last_event_at=_later(existing.last_event_at, cancellation.event_at),
        )
        self._donations[key] = updated
        return _copy(updated)

    # -- ledger -------------------------------------------------------------

    async def record_payment(self, payment: PaymentRecord) -> None:
        self._payments.append(_copy(payment))

    async def list_payments(self, filters: PaymentListFilters | None = None) -> list[PaymentRecord]:
        filters = filters or PaymentListFilters()
        matched = [p for p in self._payments if filters.matches(p)]
        matched.sort(key=lambda p: p.paid_at, reverse=True)
        if filters.limit is not None:
            matched = matched[: filters.limit]
        return [_copy(p) for p in matched]

    # -- inspection helpers (tests) -----------------------------------------

    @property
    def intents(self) -> dict[str, SubscriptionIntent]:
        return dict(self._intents)

    @property
    def subscriptions(self) -> dict[str, StoredSubscription]:
        return dict(self._subscriptions)

    @property
    def donations(self) -> dict[str, StoredDonation]:
        return dict(self._donations)

    @property
    def payments(self) -> list[PaymentRecord]:
        return list(self._payments)
