"""Observability – Logger protocol."""
from __future__ import annotations

from typing import Any, Protocol


class Logger(Protocol):
    """What the processor, intent ledger and event sink log through.

    Calls are structlog-style: a snake_case event name (``tribute_duplicate_event``)
    plus keyword context. Any structlog bound logger satisfies it; tests pass
    small recording doubles.
    """

    def debug(self, event: str, **kw: Any) -> Any: ...
    def info(self, event: str, **kw: Any) -> Any: ...
    def warning(self, event: str, **kw: Any) -> Any: ...
    def error(self, event: str, **kw: Any) -> Any: ...


__all__ = ["Logger"]
