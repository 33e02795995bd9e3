"""Domain errors — malformed deliveries and unknown billing entities."""

from __future__ import annotations

from typing import Any, ClassVar

from tribute_billing.kernel.errors.base import BaseError


class DomainError(BaseError):
    """A delivery or call breaks a billing rule."""

    default_code = "domain_error"


class ValidationError(DomainError):
    """Input failed validation; ``errors`` lists ``{"field", "message"}`` items."""

    default_code = "validation_error"

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors: list[dict[str, Any]] = list(errors or [])

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}


class WebhookPayloadError(ValidationError):
    """Body is not a Tribute envelope, or a required payload field is missing."""

    default_code = "webhook_payload_invalid"

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any) -> None:
        errors = [{"field": field, "message": message}] if field else None
        super().__init__(message, errors=errors, **kwargs)
        self.field = field


class NotFoundError(DomainError):
    """A referenced billing entity is unknown.

    Retryable by default: Tribute may deliver an event before the write it
    depends on (intent, activation) is visible in the store.
    """

    default_code = "not_found"
    resource: ClassVar[str] = "Resource"
    retryable = True

    def __init__(self, identifier: Any = None, **kwargs: Any) -> None:
        if identifier is None:
            message = f"{self.resource} not found"
        else:
            message = f"{self.resource} '{identifier}' not found"
        super().__init__(message, **kwargs)
        self.identifier = identifier


class PlanNotFoundError(NotFoundError):
    """No configured plan has this id or matches the webhook payload."""

    default_code = "plan_not_found"
    resource = "Subscription plan"
    retryable = False

    def __init__(self, plan_ref: Any, **kwargs: Any) -> None:
        super().__init__(plan_ref, **kwargs)
        self.plan_ref = plan_ref


class IntentNotFoundError(NotFoundError):
    """First activation of a subscription with no pending intent for the user and plan."""

    default_code = "intent_not_found"
    resource = "Pending intent"

    def __init__(self, external_user_id: Any, plan_id: str, **kwargs: Any) -> None:
        kwargs.setdefault("detail", {"external_user_id": external_user_id, "plan_id": plan_id})
        super().__init__(f"external_user_id={external_user_id} plan_id={plan_id}", **kwargs)
        self.external_user_id = external_user_id
        self.plan_id = plan_id


class SubscriptionNotFoundError(NotFoundError):
    default_code = "subscription_not_found"
    resource = "Subscription"

    def __init__(self, provider_subscription_id: Any, **kwargs: Any) -> None:
        super().__init__(provider_subscription_id, **kwargs)
        self.provider_subscription_id = provider_subscription_id


class DonationNotFoundError(NotFoundError):
    default_code = "donation_not_found"
    resource = "Donation"

    def __init__(self, donation_request_id: Any, **kwargs: Any) -> None:
        super().__init__(donation_request_id, **kwargs)
        self.donation_request_id = donation_request_id


__all__ = [
    "DomainError",
    "DonationNotFoundError",
    "IntentNotFoundError",
    "NotFoundError",
    "PlanNotFoundError",
    "SubscriptionNotFoundError",
    "ValidationError",
    "WebhookPayloadError",
]
