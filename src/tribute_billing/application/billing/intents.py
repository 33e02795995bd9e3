"""Application billing – IntentLedger: pre-payment reservations."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping

from tribute_billing.application.billing.models import Plan, ProviderId, SubscriptionIntent
from tribute_billing.application.billing.plans import PlanRegistry
from tribute_billing.application.billing.store import BillingStore
from tribute_billing.config.validation import ConfigurationError
from tribute_billing.kernel.errors import IntentNotFoundError
from tribute_billing.kernel.time import Clock, SystemClock
from tribute_billing.observability.logging import Logger, get_logger

__all__ = [
    "DEFAULT_INTENT_TTL",
    "IntentLedger",
    "IntentMatch",
    "IntentReservation",
    "IntentStatus",
]

DEFAULT_INTENT_TTL = timedelta(minutes=15)


class IntentStatus(str, Enum):
    MATCHED = "matched"
    EXPIRED = "expired"


@dataclass(frozen=True)
class IntentReservation:
    """What the UI needs to send the user to Tribute."""

    intent_id: str
    subscription_link: str
    plan: Plan


@dataclass(frozen=True)
class IntentMatch:
    intent: SubscriptionIntent
    status: IntentStatus


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


class IntentLedger:
    """Creates intents before payment and claims them on first activation.

    Renewals never touch the ledger: once a subscription exists for a
    provider id, it is found by that id instead.
    """

    def __init__(
        self,
        store: BillingStore,
        plans: PlanRegistry,
        *,
        clock: Clock | None = None,
        ttl: timedelta = DEFAULT_INTENT_TTL,
        logger: Logger | None = None,
    ) -> None:
        if ttl < timedelta(0):
            raise ConfigurationError("Intent TTL must not be negative")
        self._store = store
        self._plans = plans
        self._clock = clock or SystemClock()
        self._ttl = ttl
        self._log = logger or get_logger(__name__)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def create(
        self,
        plan_id: str,
        external_user_id: ProviderId,
        metadata: Mapping[str, Any] | None = None,
    ) -> IntentReservation:
        plan = self._plans.get(plan_id)
        if _is_blank(external_user_id):
            raise ConfigurationError("external_user_id is required to create subscription intent")
        now = self._clock.now()
        intent = SubscriptionIntent(
            id=str(uuid.uuid4()),
            plan_id=plan.id,
            external_user_id=external_user_id,
            created_at=now,
            expires_at=now + self._ttl,
            metadata=dict(metadata or {}),
        )
        await self._store.save_intent(intent)
        self._log.debug("tribute_intent_created", intent_id=intent.id, plan_id=plan.id, expires_at=intent.expires_at)
        return IntentReservation(intent_id=intent.id, subscription_link=plan.subscription_link, plan=plan)

    async def get(self, intent_id: str) -> SubscriptionIntent | None:
        if not intent_id:
            raise ConfigurationError("intent_id is required")
        return await self._store.get_intent(intent_id)

    async def claim(self, payload: Mapping[str, Any], plan: Plan, event_at: datetime) -> IntentMatch:
        """Consume the intent behind a first ``new_subscription`` event.

        Looks up ``intent_id`` (top level or inside ``metadata``) first, then
        falls back to the (telegram user, plan) pair.
        """
        external_user_id = payload.get("telegram_user_id")
        intent: SubscriptionIntent | None = None

        metadata = payload.get("metadata")
        intent_id = payload.get("intent_id")
        if intent_id is None and isinstance(metadata, Mapping):
            intent_id = metadata.get("intent_id")
        if intent_id:
            intent = await self._store.consume_intent(str(intent_id))
        else:
            self._log.warning("tribute_intent_id_missing", plan_id=plan.id, external_user_id=external_user_id)

        if intent is None and not _is_blank(external_user_id):
            intent = await self._store.consume_intent_for_user_and_plan(
                external_user_id, plan.id, self._clock.now()
            )

        if intent is None:
            raise IntentNotFoundError(external_user_id, plan.id)

        return IntentMatch(intent=intent, status=self._evaluate(intent, plan, event_at, external_user_id))

    def _evaluate(
        self,
        intent: SubscriptionIntent,
        plan: Plan,
        event_at: datetime,
        external_user_id: Any,
    ) -> IntentStatus:
        status = IntentStatus.MATCHED
        if intent.is_expired(event_at):
            status = IntentStatus.EXPIRED
            self._log.warning(
                "tribute_intent_expired",
                intent_id=intent.id,
                plan_id=plan.id,
                expires_at=intent.expires_at,
                event_at=event_at,
            )
        if intent.plan_id != plan.id:
            self._log.warning("tribute_intent_plan_mismatch", intent_plan_id=intent.plan_id, webhook_plan_id=plan.id)
        if not _is_blank(external_user_id) and str(intent.external_user_id) != str(external_user_id):
            self._log.warning(
                "tribute_intent_user_mismatch",
                intent_external_user_id=intent.external_user_id,
                webhook_external_user_id=external_user_id,
            )
        return status
