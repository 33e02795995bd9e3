"""Observability – structlog-based logging."""
