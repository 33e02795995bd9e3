"""Application billing – plans, intents, store port, event sink and the webhook processor."""
from tribute_billing.application.billing.intents import (
    DEFAULT_INTENT_TTL,
    IntentLedger,
    IntentMatch,
    IntentReservation,
    IntentStatus,
)
from tribute_billing.application.billing.models import (
    DonationCancellation,
    DonationStatus,
    PaymentKind,
    PaymentListFilters,
    PaymentRecord,
    Plan,
    ProviderId,
    StoredDonation,
    StoredSubscription,
    SubscriptionCancellation,
    SubscriptionIntent,
    SubscriptionStatus,
)
from tribute_billing.application.billing.plans import PlanRegistry
from tribute_billing.application.billing.processor import TributeEventProcessor
from tribute_billing.application.billing.results import (
    DonationEventResult,
    DonationEventType,
    EventCategory,
    EventContext,
    SubscriptionEventResult,
    SubscriptionEventType,
    TributeEventResult,
)
from tribute_billing.application.billing.sink import (
    GLOBAL_TOPIC,
    EventPublisher,
    EventSink,
    Listener,
    PublisherFailureMode,
)
from tribute_billing.application.billing.store import BillingStore, InMemoryBillingStore

__all__ = [
    "DEFAULT_INTENT_TTL",
    "GLOBAL_TOPIC",
    "BillingStore",
    "DonationCancellation",
    "DonationEventResult",
    "DonationEventType",
    "DonationStatus",
    "EventCategory",
    "EventContext",
    "EventPublisher",
    "EventSink",
    "InMemoryBillingStore",
    "IntentLedger",
    "IntentMatch",
    "IntentReservation",
    "IntentStatus",
    "Listener",
    "PaymentKind",
    "PaymentListFilters",
    "PaymentRecord",
    "Plan",
    "PlanRegistry",
    "ProviderId",
    "PublisherFailureMode",
    "StoredDonation",
    "StoredSubscription",
    "SubscriptionCancellation",
    "SubscriptionEventResult",
    "SubscriptionEventType",
    "SubscriptionIntent",
    "SubscriptionStatus",
    "TributeEventProcessor",
    "TributeEventResult",
]
