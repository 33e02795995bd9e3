"""Application billing – EventSink: local listener fan-out + external publisher."""
from __future__ import annotations

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from tribute_billing.application.billing.results import TributeEventResult
from tribute_billing.config.validation import ConfigurationError
from tribute_billing.observability.logging import Logger, get_logger

__all__ = [
    "GLOBAL_TOPIC",
    "EventPublisher",
    "EventSink",
    "Listener",
    "PublisherFailureMode",
]

GLOBAL_TOPIC = "event"

Listener = Callable[[TributeEventResult], Union[None, Awaitable[None]]]
EventPublisher = Callable[[TributeEventResult], Union[None, Awaitable[None]]]


class PublisherFailureMode(str, Enum):
    THROW = "throw"
    LOG = "log"


async def _call(fn: Callable[[TributeEventResult], Any], result: TributeEventResult) -> None:
    outcome = fn(result)
    if inspect.isawaitable(outcome):
        await outcome


class EventSink:
    """Notifies local listeners, then forwards to the external publisher.

    For each result the order is fixed: ``<category>.<type>`` listeners,
    then ``<category>.any``, then ``event``, then the publisher. Listener
    errors propagate; publisher errors follow *failure_mode*.
    """

    def __init__(
        self,
        publisher: EventPublisher | None = None,
        *,
        failure_mode: PublisherFailureMode | str = PublisherFailureMode.THROW,
        logger: Logger | None = None,
    ) -> None:
        if publisher is not None and not callable(publisher):
            raise ConfigurationError("event publisher must be callable when provided")
        try:
            self._failure_mode = PublisherFailureMode(failure_mode)
        except ValueError as exc:
            raise ConfigurationError('event publisher failure mode must be either "throw" or "log"') from exc
        self._publisher = publisher
        self._listeners: dict[str, list[Listener]] = {}
        self._log = logger or get_logger(__name__)

    @property
    def failure_mode(self) -> PublisherFailureMode:
        return self._failure_mode

    @property
    def publisher(self) -> EventPublisher | None:
        return self._publisher

    def on(self, topic: str, listener: Listener) -> None:
        """Register *listener* for *topic* (e.g. ``subscription.created``, ``donation.any``, ``event``)."""
        self._listeners.setdefault(topic, []).append(listener)

    def off(self, topic: str, listener: Listener) -> None:
        listeners = self._listeners.get(topic, [])
        if listener in listeners:
            listeners.remove(listener)

    def listeners(self, topic: str) -> list[Listener]:
        return list(self._listeners.get(topic, []))

    async def emit(self, result: TributeEventResult) -> None:
        for topic in (result.topic, f"{result.category.value}.any", GLOBAL_TOPIC):
            for listener in self.listeners(topic):
                await _call(listener, result)
        await self._publish(result)

    async def _publish(self, result: TributeEventResult) -> None:
        if self._publisher is None:
            return
        try:
            await _call(self._publisher, result)
        except Exception as exc:
            self._log.error(
                "tribute_publisher_failed",
                category=result.category.value,
                type=result.type.value,
                failure_mode=self._failure_mode.value,
                exc_info=exc,
            )
            if self._failure_mode is PublisherFailureMode.THROW:
                raise
