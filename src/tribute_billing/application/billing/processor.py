"""Application billing – TributeEventProcessor: the webhook state machine.

Routes a verified Tribute delivery to one of five handlers. Each handler
checks the stored entity's ``last_event_at`` watermark (and ``cancelled_at``
for cancellations) so that redeliveries and reordered deliveries are silent
no-ops, writes the new entity state and, for monetary events, one ledger
entry, then hands the typed result to the :class:`EventSink`.

Retrying is left to the caller: every error propagates, and replaying a
delivery after a partial failure is safe because of the watermark checks.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping

from tribute_billing.application.billing.intents import (
    DEFAULT_INTENT_TTL,
    IntentLedger,
    IntentMatch,
    IntentReservation,
)
from tribute_billing.application.billing.models import (
    DonationCancellation,
    DonationStatus,
    PaymentKind,
    PaymentListFilters,
    PaymentRecord,
    Plan,
    ProviderId,
    StoredDonation,
    StoredSubscription,
    SubscriptionCancellation,
    SubscriptionIntent,
    SubscriptionStatus,
)
from tribute_billing.application.billing.plans import PlanRegistry
from tribute_billing.application.billing.results import (
    DonationEventResult,
    DonationEventType,
    EventContext,
    SubscriptionEventResult,
    SubscriptionEventType,
    TributeEventResult,
)
from tribute_billing.application.billing.sink import (
    EventPublisher,
    EventSink,
    Listener,
    PublisherFailureMode,
)
from tribute_billing.application.billing.store import BillingStore
from tribute_billing.application.webhooks.envelope import (
    CANCELLED_DONATION,
    CANCELLED_SUBSCRIPTION,
    NEW_DONATION,
    NEW_SUBSCRIPTION,
    RECURRENT_DONATION,
    SUPPORTED_EVENTS,
    TributeEventEnvelope,
    coerce_datetime,
    parse_timestamp,
)
from tribute_billing.application.webhooks.signature import RawBody, SignatureVerifier, normalize_body
from tribute_billing.config.validation import ConfigurationError
from tribute_billing.kernel.errors import (
    DonationNotFoundError,
    PlanNotFoundError,
    SignatureError,
    SubscriptionNotFoundError,
    WebhookPayloadError,
)
from tribute_billing.kernel.time import Clock, SystemClock
from tribute_billing.observability.logging import Logger, get_logger

if TYPE_CHECKING:
    from tribute_billing.config.settings import TributeSettings

__all__ = ["TributeEventProcessor"]

MANUAL_SOURCE = "manual"

Handler = Callable[[TributeEventEnvelope], Awaitable["TributeEventResult | None"]]


def _first(*values: Any) -> Any:
    """Return the first value that is not ``None``."""
    for value in values:
        if value is not None:
            return value
    return None


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _is_outdated(previous: datetime | None, incoming: datetime) -> bool:
    return previous is not None and previous >= incoming


class TributeEventProcessor:
    """Verifies, deduplicates and applies Tribute webhook deliveries.

    Args:
        plans: configured plan catalog (``PlanRegistry`` or plan objects / dicts).
        api_key: Tribute API key, the HMAC secret for ``trbt-signature``.
        store: any :class:`BillingStore` implementation.
        logger: structlog-style logger; defaults to this module's logger.
        clock: time source for intent creation and expiry scans.
        intent_ttl: lifetime of an intent (default 15 minutes).
        signature_encoding: ``"hex"`` or ``"base64"``.
        allowed_events: event names to process; others are dropped.
        publisher: optional external sink called after local listeners.
        publisher_failure_mode: ``"throw"`` re-raises publisher errors,
            ``"log"`` records and swallows them.
    """

    def __init__(
        self,
        plans: PlanRegistry | Iterable[Plan | Mapping[str, Any]],
        api_key: str,
        store: BillingStore,
        *,
        logger: Logger | None = None,
        clock: Clock | None = None,
        intent_ttl: timedelta = DEFAULT_INTENT_TTL,
        signature_encoding: str = "hex",
        allowed_events: Iterable[str] = SUPPORTED_EVENTS,
        publisher: EventPublisher | None = None,
        publisher_failure_mode: PublisherFailureMode | str = PublisherFailureMode.THROW,
    ) -> None:
        self._plans = plans if isinstance(plans, PlanRegistry) else PlanRegistry(plans)
        if not api_key:
            raise ConfigurationError("Tribute API key is required")
        if not isinstance(store, BillingStore):
            raise ConfigurationError("store must implement the BillingStore protocol")
        allowed = list(allowed_events)
        if not allowed:
            raise ConfigurationError("allowed_events must be a non-empty collection")
        for name in allowed:
            if name not in SUPPORTED_EVENTS:
                raise ConfigurationError(f"Unsupported Tribute webhook event: {name}")

        self._store = store
        self._log = logger or get_logger(__name__)
        self._clock = clock or SystemClock()
        self._verifier = SignatureVerifier(api_key, signature_encoding)
        self._allowed = frozenset(allowed)
        self._intents = IntentLedger(store, self._plans, clock=self._clock, ttl=intent_ttl, logger=self._log)
        self._sink = EventSink(publisher, failure_mode=publisher_failure_mode, logger=self._log)
        self._handlers: dict[str, Handler] = {
            NEW_SUBSCRIPTION: self._handle_new_subscription,
            CANCELLED_SUBSCRIPTION: self._handle_cancelled_subscription,
            NEW_DONATION: self._handle_new_donation,
            RECURRENT_DONATION: self._handle_recurrent_donation,
            CANCELLED_DONATION: self._handle_cancelled_donation,
        }

    @classmethod
    def from_settings(
        cls,
        settings: TributeSettings,
        store: BillingStore,
        *,
        logger: Logger | None = None,
        clock: Clock | None = None,
        publisher: EventPublisher | None = None,
    ) -> TributeEventProcessor:
        return cls(
            settings.plans,
            settings.api_key,
            store,
            logger=logger,
            clock=clock,
            intent_ttl=settings.intent_ttl,
            signature_encoding=settings.signature_encoding,
            allowed_events=settings.allowed_webhook_events,
            publisher=publisher,
            publisher_failure_mode=settings.event_publisher_failure_mode,
        )

    # ------------------------------------------------------------------
    # Configuration views
    # ------------------------------------------------------------------

    @property
    def plans(self) -> PlanRegistry:
        return self._plans

    @property
    def allowed_events(self) -> frozenset[str]:
        return self._allowed

    @property
    def sink(self) -> EventSink:
        return self._sink

    def on(self, topic: str, listener: Listener) -> None:
        self._sink.on(topic, listener)

    def off(self, topic: str, listener: Listener) -> None:
        self._sink.off(topic, listener)

    # ------------------------------------------------------------------
    # Intents and reads
    # ------------------------------------------------------------------

    def list_plans(self) -> list[dict[str, Any]]:
        return self._plans.public_plans()

    async def create_intent(
        self,
        plan_id: str,
        external_user_id: ProviderId,
        metadata: Mapping[str, Any] | None = None,
    ) -> IntentReservation:
        return await self._intents.create(plan_id, external_user_id, metadata)

    async def get_intent(self, intent_id: str) -> SubscriptionIntent | None:
        """Read an intent without consuming it."""
        return await self._intents.get(intent_id)

    async def get_subscription(self, provider_subscription_id: ProviderId) -> StoredSubscription | None:
        if _is_blank(provider_subscription_id):
            raise ConfigurationError("provider_subscription_id is required")
        return await self._store.get_subscription(provider_subscription_id)

    async def get_subscription_for_user(
        self, external_user_id: ProviderId, plan_id: str
    ) -> StoredSubscription | None:
        if _is_blank(external_user_id):
            raise ConfigurationError("external_user_id is required")
        if not plan_id:
            raise ConfigurationError("plan_id is required")
        return await self._store.get_subscription_for_user_and_plan(external_user_id, plan_id)

    async def list_payments(self, filters: PaymentListFilters | None = None) -> list[PaymentRecord]:
        return await self._store.list_payments(filters or PaymentListFilters())

    # ------------------------------------------------------------------
    # Webhook entry points
    # ------------------------------------------------------------------

    async def handle_webhook(self, raw_body: RawBody, signature_header: str | None) -> TributeEventResult | None:
        """Verify and process one delivery.

        Returns ``None`` when the event is disabled, unknown, or a duplicate.
        Raises ``SignatureError`` before touching any state when the header
        does not match.
        """
        body = normalize_body(raw_body)
        if not self._verifier.verify(body, signature_header):
            raise SignatureError()
        return await self.process_event(TributeEventEnvelope.from_bytes(body))

    async def process_event(self, event: TributeEventEnvelope) -> TributeEventResult | None:
        """Dispatch an already-trusted envelope."""
        if event.name not in self._allowed:
            if event.name in self._handlers:
                self._log.debug("tribute_event_disabled", event_name=event.name)
            else:
                self._log.info("tribute_event_unhandled", event_name=event.name)
            return None
        return await self._handlers[event.name](event)

    async def cancel_subscription_locally(
        self,
        provider_subscription_id: ProviderId,
        *,
        cancel_reason: str | None = "manual",
        cancelled_at: datetime | str | int | float | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> SubscriptionEventResult:
        """Cancel a subscription on an operator's request, ahead of Tribute's webhook."""
        if _is_blank(provider_subscription_id):
            raise ConfigurationError("provider_subscription_id is required to cancel subscription")
        timestamp = self._ensure_datetime(cancelled_at, "cancelled_at")
        cancellation = SubscriptionCancellation(
            cancelled_at=timestamp,
            event_at=timestamp,
            cancel_reason=cancel_reason,
            payload=dict(payload) if payload is not None else None,
            source=MANUAL_SOURCE,
        )
        updated = await self._store.mark_subscription_cancelled(provider_subscription_id, cancellation)
        if updated is None:
            raise SubscriptionNotFoundError(provider_subscription_id)
        if updated.last_event_at < timestamp:
            updated.last_event_at = timestamp

        self._log.info(
            "tribute_subscription_cancelled_manually",
            subscription_id=provider_subscription_id,
            cancel_reason=cancel_reason,
        )
        result = SubscriptionEventResult(
            type=SubscriptionEventType.CANCELLED,
            subscription=updated,
            context=EventContext(cancellation=cancellation),
        )
        await self._sink.emit(result)
        return result

    # ------------------------------------------------------------------
    # Subscription handlers
    # ------------------------------------------------------------------

    async def _handle_new_subscription(self, event: TributeEventEnvelope) -> SubscriptionEventResult | None:
        payload = event.payload
        plan = self._resolve_plan(payload, event.name)
        provider_id = self._require(payload, "subscription_id")
        event_at = event.ordering_timestamp
        created_at = event.ledger_timestamp

        existing = await self._store.get_subscription(provider_id)
        if existing is not None and _is_outdated(existing.last_event_at, event_at):
            self._log_duplicate(
                "subscription",
                existing.last_event_at,
                event_at,
                subscription_id=provider_id,
                external_user_id=payload.get("telegram_user_id"),
            )
            return None

        match: IntentMatch | None = None
        if existing is None:
            match = await self._intents.claim(payload, plan, event_at)
        elif existing.status is SubscriptionStatus.CANCELLED:
            # Tribute may reuse an id for a resumed subscription; nothing in
            # the payload tells a resume apart from a stray old id.
            self._log.warning(
                "tribute_subscription_reactivated",
                subscription_id=provider_id,
                cancelled_at=existing.cancelled_at,
                event_at=event_at,
            )

        if payload.get("expires_at"):
            expires_at = parse_timestamp(payload["expires_at"], "payload.expires_at")
        else:
            expires_at = existing.expires_at if existing else None

        if existing is not None:
            metadata = existing.metadata
        elif match is not None and match.intent.metadata:
            metadata = dict(match.intent.metadata)
        else:
            metadata = dict(plan.metadata)

        record = StoredSubscription(
            plan_id=plan.id,
            provider_subscription_id=provider_id,
            provider_period_id=payload.get("period_id"),
            external_user_id=_first(payload.get("telegram_user_id"), existing and existing.external_user_id),
            user_id=_first(payload.get("user_id"), existing and existing.user_id),
            amount=_first(payload.get("price"), payload.get("amount"), plan.amount),
            currency=_first(payload.get("currency"), plan.currency),
            period=_first(payload.get("period"), plan.period),
            status=SubscriptionStatus.ACTIVE,
            created_at=existing.created_at if existing else created_at,
            last_event_at=event_at,
            expires_at=expires_at,
            cancelled_at=None,
            cancel_reason=None,
            metadata=metadata,
        )

        previous = await self._store.upsert_subscription(record)
        await self._store.record_payment(
            PaymentRecord(
                kind=PaymentKind.SUBSCRIPTION,
                provider_subscription_id=provider_id,
                plan_id=plan.id,
                external_user_id=record.external_user_id,
                user_id=record.user_id,
                amount=record.amount,
                currency=record.currency,
                paid_at=created_at,
                payload=dict(payload),
            )
        )

        result = SubscriptionEventResult(
            type=SubscriptionEventType.RENEWED if previous is not None else SubscriptionEventType.CREATED,
            subscription=record,
            context=EventContext(
                event=event,
                intent=match.intent if match else None,
                intent_status=match.status if match else None,
                previous_subscription=previous,
            ),
        )
        self._log.info(
            "tribute_subscription_processed",
            type=result.type.value,
            subscription_id=provider_id,
            plan_id=plan.id,
        )
        await self._sink.emit(result)
        return result

    async def _handle_cancelled_subscription(self, event: TributeEventEnvelope) -> SubscriptionEventResult | None:
        payload = event.payload
        self._resolve_plan(payload, event.name)
        provider_id = self._require(payload, "subscription_id")
        event_at = event.ordering_timestamp
        cancelled_at = event.ledger_timestamp

        existing = await self._store.get_subscription(provider_id)
        if existing is not None:
            ids = {"subscription_id": provider_id, "external_user_id": payload.get("telegram_user_id")}
            if _is_outdated(existing.cancelled_at, cancelled_at):
                self._log_duplicate("subscription.cancelled", existing.cancelled_at, cancelled_at, **ids)
                return None
            if _is_outdated(existing.last_event_at, event_at):
                self._log_duplicate("subscription.cancelled", existing.last_event_at, event_at, **ids)
                return None

        cancellation = SubscriptionCancellation(
            cancelled_at=cancelled_at,
            event_at=event_at,
            cancel_reason=payload.get("cancel_reason"),
            payload={**payload, "sent_at": event.sent_at},
        )
        updated = await self._store.mark_subscription_cancelled(provider_id, cancellation)
        if updated is None:
            raise SubscriptionNotFoundError(provider_id)
        if updated.last_event_at < event_at:
            updated.last_event_at = event_at

        result = SubscriptionEventResult(
            type=SubscriptionEventType.CANCELLED,
            subscription=updated,
            context=EventContext(event=event, cancellation=cancellation),
        )
        self._log.info(
            "tribute_subscription_processed",
            type=result.type.value,
            subscription_id=provider_id,
            cancel_reason=cancellation.cancel_reason,
        )
        await self._sink.emit(result)
        return result

    # ------------------------------------------------------------------
    # Donation handlers
    # ------------------------------------------------------------------

    async def _handle_new_donation(self, event: TributeEventEnvelope) -> DonationEventResult | None:
        payload = event.payload
        request_id = self._require(payload, "donation_request_id")
        self._require(payload, "telegram_user_id")
        event_at = event.ordering_timestamp

        existing = await self._store.get_donation(request_id)
        if existing is not None and _is_outdated(existing.last_event_at, event_at):
            self._log_duplicate("donation", existing.last_event_at, event_at, donation_request_id=request_id)
            return None

        period = _first(payload.get("period"), existing and existing.period, "once")
        record = self._build_donation(
            payload,
            existing,
            request_id=request_id,
            period=period,
            status=DonationStatus.COMPLETED if period == "once" else DonationStatus.ACTIVE,
            event=event,
            message=_first(payload.get("message"), existing and existing.message),
            cancelled_at=None,
        )
        return await self._commit_donation(record, DonationEventType.CREATED, event)

    async def _handle_recurrent_donation(self, event: TributeEventEnvelope) -> DonationEventResult | None:
        payload = event.payload
        request_id = self._require(payload, "donation_request_id")
        self._require(payload, "telegram_user_id")
        event_at = event.ordering_timestamp

        existing = await self._store.get_donation(request_id)
        if existing is None:
            self._log.warning("tribute_donation_missing_for_recurrence", donation_request_id=request_id)
        elif _is_outdated(existing.last_event_at, event_at):
            self._log_duplicate("donation.recurrent", existing.last_event_at, event_at, donation_request_id=request_id)
            return None

        cancelled = existing is not None and existing.status is DonationStatus.CANCELLED
        record = self._build_donation(
            payload,
            existing,
            request_id=request_id,
            period=_first(payload.get("period"), existing and existing.period, "monthly"),
            status=DonationStatus.CANCELLED if cancelled else DonationStatus.ACTIVE,
            event=event,
            message=_first(existing and existing.message, payload.get("message")),
            cancelled_at=existing.cancelled_at if existing else None,
        )
        return await self._commit_donation(record, DonationEventType.RECURRENT, event)

    async def _handle_cancelled_donation(self, event: TributeEventEnvelope) -> DonationEventResult | None:
        payload = event.payload
        request_id = self._require(payload, "donation_request_id")
        event_at = event.ordering_timestamp
        cancelled_at = event.ledger_timestamp

        existing = await self._store.get_donation(request_id)
        if existing is not None:
            if _is_outdated(existing.cancelled_at, cancelled_at):
                self._log_duplicate(
                    "donation.cancelled", existing.cancelled_at, cancelled_at, donation_request_id=request_id
                )
                return None
            if _is_outdated(existing.last_event_at, event_at):
                self._log_duplicate(
                    "donation.cancelled", existing.last_event_at, event_at, donation_request_id=request_id
                )
                return None

        cancellation = DonationCancellation(
            cancelled_at=cancelled_at,
            event_at=event_at,
            payload={**payload, "sent_at": event.sent_at},
        )
        donation = await self._store.mark_donation_cancelled(request_id, cancellation)
        if donation is None:
            raise DonationNotFoundError(request_id)
        if donation.last_event_at < event_at:
            donation.last_event_at = event_at

        result = DonationEventResult(
            type=DonationEventType.CANCELLED,
            donation=donation,
            context=EventContext(event=event, cancellation=cancellation),
        )
        self._log.info("tribute_donation_processed", type=result.type.value, donation_request_id=request_id)
        await self._sink.emit(result)
        return result

    def _build_donation(
        self,
        payload: Mapping[str, Any],
        existing: StoredDonation | None,
        *,
        request_id: ProviderId,
        period: str,
        status: DonationStatus,
        event: TributeEventEnvelope,
        message: str | None,
        cancelled_at: datetime | None,
    ) -> StoredDonation:
        anonymously = payload.get("anonymously")
        if not isinstance(anonymously, bool):
            anonymously = existing.anonymously if existing else False
        return StoredDonation(
            donation_request_id=request_id,
            donation_name=_first(payload.get("donation_name"), existing and existing.donation_name, ""),
            external_user_id=_first(payload.get("telegram_user_id"), existing and existing.external_user_id),
            user_id=_first(payload.get("user_id"), existing and existing.user_id),
            period=period,
            amount=_first(payload.get("amount"), existing and existing.amount, 0),
            currency=_first(payload.get("currency"), existing and existing.currency, ""),
            anonymously=anonymously,
            message=message,
            web_app_link=_first(payload.get("web_app_link"), existing and existing.web_app_link),
            status=status,
            created_at=existing.created_at if existing else event.ledger_timestamp,
            last_event_at=event.ordering_timestamp,
            cancelled_at=cancelled_at,
            metadata=existing.metadata if existing else {},
        )

    async def _commit_donation(
        self,
        record: StoredDonation,
        event_type: DonationEventType,
        event: TributeEventEnvelope,
    ) -> DonationEventResult:
        previous = await self._store.upsert_donation(record)
        await self._store.record_payment(
            PaymentRecord(
                kind=PaymentKind.DONATION,
                donation_request_id=record.donation_request_id,
                external_user_id=record.external_user_id,
                user_id=record.user_id,
                amount=record.amount,
                currency=record.currency,
                paid_at=event.ledger_timestamp,
                payload=dict(event.payload),
            )
        )
        result = DonationEventResult(
            type=event_type,
            donation=record,
            context=EventContext(event=event, previous_donation=previous),
        )
        self._log.info(
            "tribute_donation_processed",
            type=event_type.value,
            donation_request_id=record.donation_request_id,
            status=record.status.value,
        )
        await self._sink.emit(result)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_plan(self, payload: Mapping[str, Any], event_name: str) -> Plan:
        try:
            return self._plans.resolve(payload)
        except PlanNotFoundError:
            self._log.warning(
                "tribute_plan_not_found",
                event_name=event_name,
                subscription_id=payload.get("subscription_id"),
                period_id=payload.get("period_id"),
                price=payload.get("price"),
            )
            raise

    @staticmethod
    def _require(payload: Mapping[str, Any], field_name: str) -> Any:
        value = payload.get(field_name)
        if _is_blank(value):
            raise WebhookPayloadError(f"{field_name} is required for this Tribute event", field=field_name)
        return value

    def _ensure_datetime(self, value: Any, field_name: str) -> datetime:
        if value is None:
            return self._clock.now()
        try:
            return coerce_datetime(value)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ConfigurationError(f'Invalid value for "{field_name}": {value!r}', cause=exc) from exc

    def _log_duplicate(
        self,
        category: str,
        previous_at: datetime | None,
        event_at: datetime,
        **identifiers: Any,
    ) -> None:
        self._log.info(
            "tribute_duplicate_event",
            category=category,
            previous_at=previous_at.isoformat() if previous_at else None,
            event_at=event_at.isoformat(),
            **identifiers,
        )
