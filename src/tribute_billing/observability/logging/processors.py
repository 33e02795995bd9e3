"""Observability – structlog redaction processor and get_logger helper."""
from __future__ import annotations

from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from tribute_billing.observability.logging.filters import SensitiveFieldsFilter


class RedactionProcessor:
    """structlog processor masking secrets anywhere in the event dict.

    Place it first so later processors and renderers only see masked values.
    """

    def __init__(self, sensitive_fields: frozenset[str] | None = None) -> None:
        self._filter = SensitiveFieldsFilter(sensitive_fields)

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        return self._filter.redact_deep(event_dict)


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """structlog logger for *name*, with *initial_values* bound when given."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger


__all__ = ["RedactionProcessor", "get_logger"]
