"""Application-layer errors — who may deliver webhooks."""

from __future__ import annotations

from typing import Any

from tribute_billing.kernel.errors.base import BaseError


class ApplicationError(BaseError):
    default_code = "application_error"


class UnauthorizedError(ApplicationError):
    """The caller could not be authenticated."""

    default_code = "unauthorized"


class SignatureError(UnauthorizedError):
    """``trbt-signature`` is absent or is not the HMAC of the raw body.

    Raised before the body is parsed, so nothing about the delivery is
    trusted or logged beyond this fact.
    """

    default_code = "invalid_signature"

    def __init__(self, message: str = "Invalid Tribute webhook signature", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


__all__ = [
    "ApplicationError",
    "SignatureError",
    "UnauthorizedError",
]
