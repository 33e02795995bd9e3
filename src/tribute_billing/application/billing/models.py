"""Application billing – plans, intents, stored entities and ledger records."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from tribute_billing.config.validation import ConfigurationError
from tribute_billing.kernel.time import ensure_utc

__all__ = [
    "DonationCancellation",
    "DonationStatus",
    "PaymentKind",
    "PaymentListFilters",
    "PaymentRecord",
    "Plan",
    "ProviderId",
    "StoredDonation",
    "StoredSubscription",
    "SubscriptionCancellation",
    "SubscriptionIntent",
    "SubscriptionStatus",
]

ProviderId = Union[int, str]


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class DonationStatus(str, Enum):
    COMPLETED = "completed"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class PaymentKind(str, Enum):
    SUBSCRIPTION = "subscription"
    DONATION = "donation"


# Plan catalogs written for the JS integration use camelCase keys.
_PLAN_KEY_ALIASES = {
    "subscriptionLink": "subscription_link",
    "tributeSubscriptionId": "provider_subscription_id",
    "tributePeriodId": "provider_period_id",
    "providerSubscriptionId": "provider_subscription_id",
    "providerPeriodId": "provider_period_id",
}


@dataclass(frozen=True)
class Plan:
    """Catalog entry a webhook payload is resolved to.

    ``provider_subscription_id``, ``provider_period_id`` and ``price`` are
    optional matchers; unset means "any value".
    """

    id: str
    title: str
    amount: int | float
    currency: str
    period: str
    subscription_link: str
    provider_subscription_id: ProviderId | None = None
    provider_period_id: ProviderId | None = None
    price: int | float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        if not isinstance(data, dict):
            raise ConfigurationError("Plan definition must be an object")
        normalized = {_PLAN_KEY_ALIASES.get(k, k): v for k, v in data.items()}
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(normalized) - known)
        if unknown:
            raise ConfigurationError(f"Plan {normalized.get('id')!r} has unknown fields: {', '.join(unknown)}")
        normalized.setdefault("title", normalized.get("id", ""))
        normalized["metadata"] = normalized.get("metadata") or {}
        try:
            return cls(**normalized)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid plan definition {data!r}: {exc}") from exc

    def public_view(self) -> dict[str, Any]:
        """UI-safe description without provider matchers."""
        return {
            "id": self.id,
            "title": self.title,
            "amount": self.amount,
            "currency": self.currency,
            "period": self.period,
            "subscription_link": self.subscription_link,
            "metadata": dict(self.metadata) or None,
        }


@dataclass(frozen=True)
class SubscriptionIntent:
    """Short-lived reservation linking a user to a plan before payment."""

    id: str
    plan_id: str
    external_user_id: ProviderId
    created_at: datetime
    expires_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, at: datetime) -> bool:
        return self.expires_at < at


@dataclass
class StoredSubscription:
    plan_id: str
    provider_subscription_id: ProviderId
    provider_period_id: ProviderId | None
    external_user_id: ProviderId | None
    amount: int | float
    currency: str
    period: str
    status: SubscriptionStatus
    created_at: datetime
    last_event_at: datetime
    user_id: ProviderId | None = None
    expires_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredDonation:
    donation_request_id: ProviderId
    donation_name: str
    external_user_id: ProviderId | None
    period: str
    amount: int | float
    currency: str
    status: DonationStatus
    created_at: datetime
    last_event_at: datetime
    user_id: ProviderId | None = None
    anonymously: bool = False
    message: str | None = None
    web_app_link: str | None = None
    cancelled_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentRecord:
    """Append-only ledger entry for one accepted monetary event."""

    kind: PaymentKind
    external_user_id: ProviderId | None
    amount: int | float
    currency: str
    paid_at: datetime
    provider_subscription_id: ProviderId | None = None
    plan_id: str | None = None
    donation_request_id: ProviderId | None = None
    user_id: ProviderId | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentListFilters:
    external_user_id: ProviderId | None = None
    kinds: frozenset[PaymentKind] | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 1:
            raise ConfigurationError("limit must be a positive integer")
        if self.kinds is not None:
            object.__setattr__(self, "kinds", frozenset(PaymentKind(k) for k in self.kinds))
        for name in ("since", "until"):
            bound = getattr(self, name)
            if bound is not None:
                object.__setattr__(self, name, ensure_utc(bound))

    def matches(self, record: PaymentRecord) -> bool:
        if self.external_user_id is not None and str(record.external_user_id) != str(self.external_user_id):
            return False
        if self.kinds is not None and record.kind not in self.kinds:
            return False
        if self.since is not None and record.paid_at < self.since:
            return False
        if self.until is not None and record.paid_at > self.until:
            return False
        return True


@dataclass(frozen=True)
class SubscriptionCancellation:
    """What a store needs to mark a subscription cancelled.

    ``event_at`` is the ordering timestamp of the cancelling event; stores
    raise ``last_event_at`` to at least this value.
    """

    cancelled_at: datetime
    event_at: datetime
    cancel_reason: str | None = None
    payload: dict[str, Any] | None = None
    source: str | None = None


@dataclass(frozen=True)
class DonationCancellation:
    cancelled_at: datetime
    event_at: datetime
    payload: dict[str, Any] | None = None
