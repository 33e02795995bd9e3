"""Testing fakes – in-memory doubles for the billing ports."""
from tribute_billing.application.billing.store import InMemoryBillingStore
from tribute_billing.kernel.time import FrozenClock
from tribute_billing.testing.fakes.clock import FakeClock
from tribute_billing.testing.fakes.publisher import RecordingPublisher, sign_body, webhook_body

__all__ = [
    "FakeClock",
    "FrozenClock",
    "InMemoryBillingStore",
    "RecordingPublisher",
    "sign_body",
    "webhook_body",
]
