"""Observability – structured logging ports and helpers."""
from tribute_billing.observability.logging.protocol import Logger
from tribute_billing.observability.logging.filters import DEFAULT_SENSITIVE_FIELDS, SensitiveFieldsFilter
from tribute_billing.observability.logging.factory import JsonLoggerFactory
from tribute_billing.observability.logging.processors import RedactionProcessor, get_logger

__all__ = [
    "DEFAULT_SENSITIVE_FIELDS",
    "JsonLoggerFactory",
    "Logger",
    "RedactionProcessor",
    "SensitiveFieldsFilter",
    "get_logger",
]
