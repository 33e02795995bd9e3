"""Kernel error hierarchy — public re-export surface.

Hierarchy::

    BaseError
    ├── DomainError                (domain.py)
    │   ├── ValidationError
    │   │   └── WebhookPayloadError
    │   └── NotFoundError
    │       ├── PlanNotFoundError
    │       ├── IntentNotFoundError
    │       ├── SubscriptionNotFoundError
    │       └── DonationNotFoundError
    └── ApplicationError           (application.py)
        ├── UnauthorizedError
        │   └── SignatureError
        └── ConfigurationError     (tribute_billing.config.validation)
"""

from tribute_billing.kernel.errors.application import (
    ApplicationError,
    SignatureError,
    UnauthorizedError,
)
from tribute_billing.kernel.errors.base import BaseError
from tribute_billing.kernel.errors.domain import (
    DomainError,
    DonationNotFoundError,
    IntentNotFoundError,
    NotFoundError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
    WebhookPayloadError,
)

__all__ = [
    "ApplicationError",
    "BaseError",
    "DomainError",
    "DonationNotFoundError",
    "IntentNotFoundError",
    "NotFoundError",
    "PlanNotFoundError",
    "SignatureError",
    "SubscriptionNotFoundError",
    "UnauthorizedError",
    "ValidationError",
    "WebhookPayloadError",
]
