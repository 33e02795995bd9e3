"""Kernel time – UTC clocks for intent expiry and manual cancellation stamps.

Every datetime this package stores is timezone-aware UTC; :func:`ensure_utc`
is the single place naive or offset values are normalised.
"""
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Clock(Protocol):
    """Port: source of the current UTC time."""

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """Clock that only moves when told to.

    Used by tests to step over intent TTL boundaries deterministically.
    """

    def __init__(self, at: datetime) -> None:
        self._at = ensure_utc(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = ensure_utc(at)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by *delta* or by ``timedelta(**kwargs)``; return the new time."""
        self._at += delta if delta is not None else timedelta(**kwargs)
        return self._at


__all__ = ["Clock", "FrozenClock", "SystemClock", "ensure_utc"]
