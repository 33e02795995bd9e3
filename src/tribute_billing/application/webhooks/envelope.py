"""Application webhooks – TributeEventEnvelope and timestamp parsing."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from tribute_billing.kernel.errors import WebhookPayloadError
from tribute_billing.kernel.time import ensure_utc

__all__ = [
    "CANCELLED_DONATION",
    "CANCELLED_SUBSCRIPTION",
    "DONATION_EVENTS",
    "NEW_DONATION",
    "NEW_SUBSCRIPTION",
    "RECURRENT_DONATION",
    "SUBSCRIPTION_EVENTS",
    "SUPPORTED_EVENTS",
    "TributeEventEnvelope",
    "coerce_datetime",
    "parse_timestamp",
]

NEW_SUBSCRIPTION = "new_subscription"
CANCELLED_SUBSCRIPTION = "cancelled_subscription"
NEW_DONATION = "new_donation"
RECURRENT_DONATION = "recurrent_donation"
CANCELLED_DONATION = "cancelled_donation"

SUBSCRIPTION_EVENTS: tuple[str, ...] = (NEW_SUBSCRIPTION, CANCELLED_SUBSCRIPTION)
DONATION_EVENTS: tuple[str, ...] = (NEW_DONATION, RECURRENT_DONATION, CANCELLED_DONATION)
SUPPORTED_EVENTS: tuple[str, ...] = SUBSCRIPTION_EVENTS + DONATION_EVENTS


def coerce_datetime(value: Any) -> datetime:
    """Turn an ISO-8601 string, epoch seconds or ``datetime`` into an aware UTC datetime.

    Raises ``ValueError`` / ``TypeError`` for anything else.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise TypeError("bool is not a timestamp")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")


def parse_timestamp(value: Any, field_name: str) -> datetime:
    """Parse a required webhook timestamp, raising ``WebhookPayloadError`` on failure."""
    if value is None or value == "":
        raise WebhookPayloadError(
            f'Tribute webhook is missing required "{field_name}" timestamp', field=field_name
        )
    try:
        return coerce_datetime(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise WebhookPayloadError(
            f'Invalid "{field_name}" timestamp: {value!r}', field=field_name, cause=exc
        ) from exc


@dataclass(frozen=True)
class TributeEventEnvelope:
    """Inbound Tribute delivery: ``{name, created_at, sent_at, payload}``.

    ``created_at`` is when the provider originated the event and stays
    constant across redeliveries; ``sent_at`` moves forward on each attempt.
    """

    name: str
    created_at: str | None = None
    sent_at: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> TributeEventEnvelope:
        if not isinstance(data, dict):
            raise WebhookPayloadError("Tribute webhook body must be a JSON object")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise WebhookPayloadError('Tribute webhook is missing event "name"', field="name")
        payload = data.get("payload")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise WebhookPayloadError('Tribute webhook "payload" must be an object', field="payload")
        return cls(
            name=name,
            created_at=data.get("created_at"),
            sent_at=data.get("sent_at"),
            payload=payload,
        )

    @classmethod
    def from_bytes(cls, body: bytes) -> TributeEventEnvelope:
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise WebhookPayloadError("Tribute webhook body is not valid UTF-8 JSON", cause=exc) from exc
        return cls.from_dict(data)

    @property
    def ordering_timestamp(self) -> datetime:
        """Watermark compared against stored ``last_event_at``."""
        if self.sent_at:
            return parse_timestamp(self.sent_at, "sent_at")
        return parse_timestamp(self.created_at, "created_at")

    @property
    def ledger_timestamp(self) -> datetime:
        """Origination time; used as ``paid_at`` and as the cancellation time."""
        return parse_timestamp(self.created_at, "created_at")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "created_at": self.created_at,
            "sent_at": self.sent_at,
            "payload": self.payload,
        }
