"""Application billing – typed results emitted after a state change."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from tribute_billing.application.billing.intents import IntentStatus
from tribute_billing.application.billing.models import (
    DonationCancellation,
    StoredDonation,
    StoredSubscription,
    SubscriptionCancellation,
    SubscriptionIntent,
)
from tribute_billing.application.webhooks.envelope import TributeEventEnvelope

__all__ = [
    "DonationEventResult",
    "DonationEventType",
    "EventCategory",
    "EventContext",
    "SubscriptionEventResult",
    "SubscriptionEventType",
    "TributeEventResult",
]


class EventCategory(str, Enum):
    SUBSCRIPTION = "subscription"
    DONATION = "donation"


class SubscriptionEventType(str, Enum):
    CREATED = "created"
    RENEWED = "renewed"
    CANCELLED = "cancelled"


class DonationEventType(str, Enum):
    CREATED = "created"
    RECURRENT = "recurrent"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class EventContext:
    event: TributeEventEnvelope | None = None
    intent: SubscriptionIntent | None = None
    intent_status: IntentStatus | None = None
    previous_subscription: StoredSubscription | None = None
    previous_donation: StoredDonation | None = None
    cancellation: SubscriptionCancellation | DonationCancellation | None = None


@dataclass(frozen=True)
class SubscriptionEventResult:
    type: SubscriptionEventType
    subscription: StoredSubscription
    context: EventContext = field(default_factory=EventContext)
    category: EventCategory = EventCategory.SUBSCRIPTION

    @property
    def topic(self) -> str:
        return f"{self.category.value}.{self.type.value}"

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category.value, "type": self.type.value, "topic": self.topic}


@dataclass(frozen=True)
class DonationEventResult:
    type: DonationEventType
    donation: StoredDonation
    context: EventContext = field(default_factory=EventContext)
    category: EventCategory = EventCategory.DONATION

    @property
    def topic(self) -> str:
        return f"{self.category.value}.{self.type.value}"

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category.value, "type": self.type.value, "topic": self.topic}


TributeEventResult = Union[SubscriptionEventResult, DonationEventResult]
