"""Observability – SensitiveFieldsFilter."""
from __future__ import annotations

from typing import Any, Mapping

# Tribute authenticates deliveries with the API key, so both the key and the
# signature header derived from it must never reach a log sink.
DEFAULT_SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "api_key",
        "apikey",
        "secret",
        "signature",
        "signature_header",
        "trbt-signature",
        "authorization",
        "password",
        "token",
    }
)


class SensitiveFieldsFilter:
    """Masks values stored under secret-bearing keys.

    Keys compare case-insensitively. :meth:`redact_deep` also walks nested
    mappings and lists, which is how header maps and webhook payloads show
    up in event dicts.
    """

    REDACTED = "[REDACTED]"

    def __init__(self, sensitive_fields: frozenset[str] | None = None) -> None:
        self._fields = frozenset(f.lower() for f in (sensitive_fields or DEFAULT_SENSITIVE_FIELDS))

    def is_sensitive(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._fields

    def redact(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self.REDACTED if self.is_sensitive(k) else v for k, v in data.items()}

    def redact_deep(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self.REDACTED if self.is_sensitive(k) else self._walk(v) for k, v in data.items()}

    def _walk(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return self.redact_deep(value)
        if isinstance(value, (list, tuple)):
            return type(value)(self._walk(item) for item in value)
        return value


__all__ = ["DEFAULT_SENSITIVE_FIELDS", "SensitiveFieldsFilter"]
