"""Application webhooks – signature verification and envelope parsing."""
from tribute_billing.application.webhooks.envelope import (
    CANCELLED_DONATION,
    CANCELLED_SUBSCRIPTION,
    DONATION_EVENTS,
    NEW_DONATION,
    NEW_SUBSCRIPTION,
    RECURRENT_DONATION,
    SUBSCRIPTION_EVENTS,
    SUPPORTED_EVENTS,
    TributeEventEnvelope,
    coerce_datetime,
    parse_timestamp,
)
from tribute_billing.application.webhooks.signature import (
    SIGNATURE_HEADER,
    SUPPORTED_ENCODINGS,
    SignatureVerifier,
    normalize_body,
    verify_signature,
)

__all__ = [
    "CANCELLED_DONATION",
    "CANCELLED_SUBSCRIPTION",
    "DONATION_EVENTS",
    "NEW_DONATION",
    "NEW_SUBSCRIPTION",
    "RECURRENT_DONATION",
    "SIGNATURE_HEADER",
    "SUBSCRIPTION_EVENTS",
    "SUPPORTED_ENCODINGS",
    "SUPPORTED_EVENTS",
    "SignatureVerifier",
    "TributeEventEnvelope",
    "coerce_datetime",
    "normalize_body",
    "parse_timestamp",
    "verify_signature",
]
