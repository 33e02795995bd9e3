"""Config settings – TributeSettings and catalog loading from overrides / env / files."""
from __future__ import annotations

import dataclasses
import json
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

from tribute_billing.application.billing.models import Plan
from tribute_billing.application.webhooks.envelope import (
    DONATION_EVENTS,
    SUBSCRIPTION_EVENTS,
    SUPPORTED_EVENTS,
)
from tribute_billing.application.webhooks.signature import SUPPORTED_ENCODINGS
from tribute_billing.config.validation import (
    ConfigurationError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)

DEFAULT_INTENT_TTL_MINUTES = 15
PUBLISHER_FAILURE_MODES = ("throw", "log")

_TRUE_WORDS = frozenset({"1", "true", "yes", "y", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "n", "off"})


def parse_boolean(value: Any, fallback: bool) -> bool:
    if value is None or value == "":
        return fallback
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_WORDS:
        return True
    if normalized in _FALSE_WORDS:
        return False
    raise ConfigurationError(f'Cannot interpret boolean value from "{value}"')


def parse_non_negative(value: Any, setting_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidSettingValueError(setting_name, value, "expected a non-negative number") from exc
    if number != number or number < 0 or number == float("inf"):
        raise InvalidSettingValueError(setting_name, value, "expected a non-negative number")
    return number


def _validate_plan_dict(plan: Any, index: int, source: str) -> None:
    if not isinstance(plan, dict):
        raise ConfigurationError(f"Plan at index {index} in {source} must be an object")
    plan_id = plan.get("id")
    if not plan_id:
        raise ConfigurationError(f'Plan at index {index} in {source} is missing required "id"')
    if not (plan.get("subscription_link") or plan.get("subscriptionLink")):
        raise ConfigurationError(f'Plan {plan_id} in {source} is missing required "subscription_link"')
    amount = plan.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise ConfigurationError(f'Plan {plan_id} in {source} must define positive numeric "amount"')
    if not plan.get("currency"):
        raise ConfigurationError(f'Plan {plan_id} in {source} must define "currency"')
    if not plan.get("period"):
        raise ConfigurationError(f'Plan {plan_id} in {source} must define "period"')


def load_plans_from_json(raw: str | list[Any], source: str) -> list[Plan]:
    """Parse and validate a JSON plan catalog (a list of plan objects)."""
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Failed to parse plans from {source}: {exc}") from exc
    if not isinstance(data, list):
        raise ConfigurationError(f"Plans in {source} must be an array")
    for index, plan in enumerate(data):
        _validate_plan_dict(plan, index, source)
    return [Plan.from_dict(plan) for plan in data]


def load_plans_from_file(path: str | os.PathLike[str]) -> list[Plan]:
    file_path = Path(path).resolve()
    if not file_path.is_file():
        raise ConfigurationError(f"Plans file not found: {file_path}")
    return load_plans_from_json(file_path.read_text(encoding="utf-8"), str(file_path))


def _resolve_plans(overrides: Mapping[str, Any], env: Mapping[str, str]) -> list[Plan]:
    explicit = overrides.get("plans")
    if explicit:
        return [p if isinstance(p, Plan) else Plan.from_dict(p) for p in explicit]
    if overrides.get("plans_json"):
        return load_plans_from_json(overrides["plans_json"], "overrides.plans_json")
    if overrides.get("plans_file"):
        return load_plans_from_file(overrides["plans_file"])
    if env.get("TRIBUTE_PLANS"):
        return load_plans_from_json(env["TRIBUTE_PLANS"], "TRIBUTE_PLANS")
    if env.get("TRIBUTE_PLANS_FILE"):
        return load_plans_from_file(env["TRIBUTE_PLANS_FILE"])
    return []


def _resolve_intent_ttl_ms(overrides: Mapping[str, Any], env: Mapping[str, str]) -> int:
    if overrides.get("intent_ttl_ms") is not None:
        return int(parse_non_negative(overrides["intent_ttl_ms"], "intent_ttl_ms"))
    if env.get("TRIBUTE_INTENT_TTL_MS"):
        return int(parse_non_negative(env["TRIBUTE_INTENT_TTL_MS"], "TRIBUTE_INTENT_TTL_MS"))
    minutes = _first_set(
        overrides.get("intent_ttl_minutes"), env.get("TRIBUTE_INTENT_TTL_MINUTES"), DEFAULT_INTENT_TTL_MINUTES
    )
    return int(parse_non_negative(minutes, "intent_ttl_minutes") * 60 * 1000)


def _resolve_allowed_events(overrides: Mapping[str, Any], env: Mapping[str, str]) -> list[str]:
    explicit = overrides.get("allowed_webhook_events")
    if explicit is not None:
        if isinstance(explicit, str) or not list(explicit):
            raise ConfigurationError("allowed_webhook_events override must be a non-empty list")
        return list(explicit)
    allow_donations = parse_boolean(
        _first_set(overrides.get("allow_donations"), env.get("TRIBUTE_ALLOW_DONATIONS")), True
    )
    if allow_donations:
        return [*SUBSCRIPTION_EVENTS, *DONATION_EVENTS]
    return list(SUBSCRIPTION_EVENTS)


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


@dataclasses.dataclass
class TributeSettings:
    """Everything the webhook processor needs besides a store and a publisher.

    Validated on construction; an invalid combination never reaches the processor.
    """

    plans: list[Plan]
    api_key: str
    intent_ttl_ms: int = DEFAULT_INTENT_TTL_MINUTES * 60 * 1000
    signature_encoding: str = "hex"
    allowed_webhook_events: list[str] = dataclasses.field(default_factory=lambda: list(SUPPORTED_EVENTS))
    event_publisher_failure_mode: str = "throw"

    def __post_init__(self) -> None:
        if not self.plans:
            raise ConfigurationError("No subscription plans defined. Provide plans or TRIBUTE_PLANS")
        if not self.api_key:
            raise MissingRequiredSettingError("TRIBUTE_API_KEY")
        if self.intent_ttl_ms < 0:
            raise InvalidSettingValueError("intent_ttl_ms", self.intent_ttl_ms, "must not be negative")
        if self.signature_encoding not in SUPPORTED_ENCODINGS:
            raise ConfigurationError(f"Unsupported signature encoding: {self.signature_encoding}")
        if not self.allowed_webhook_events:
            raise ConfigurationError("allowed_webhook_events must be a non-empty list")
        for name in self.allowed_webhook_events:
            if name not in SUPPORTED_EVENTS:
                raise ConfigurationError(f"Unsupported Tribute webhook event: {name}")
        if self.event_publisher_failure_mode not in PUBLISHER_FAILURE_MODES:
            raise ConfigurationError('event_publisher_failure_mode must be either "throw" or "log"')

    @property
    def intent_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.intent_ttl_ms)

    @classmethod
    def from_sources(
        cls,
        overrides: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> TributeSettings:
        """Build settings from explicit overrides first, then ``TRIBUTE_*`` variables.

        Plans come from the first of: ``plans``, ``plans_json``, ``plans_file``,
        ``TRIBUTE_PLANS``, ``TRIBUTE_PLANS_FILE``.
        """
        overrides = overrides or {}
        env = os.environ if env is None else env
        failure_mode = _first_set(
            overrides.get("event_publisher_failure_mode"), env.get("TRIBUTE_EVENT_PUBLISHER_FAILURE_MODE"), "throw"
        )
        return cls(
            plans=_resolve_plans(overrides, env),
            api_key=_first_set(overrides.get("api_key"), env.get("TRIBUTE_API_KEY")) or "",
            intent_ttl_ms=_resolve_intent_ttl_ms(overrides, env),
            signature_encoding=_first_set(
                overrides.get("signature_encoding"), env.get("TRIBUTE_SIGNATURE_ENCODING"), "hex"
            ),
            allowed_webhook_events=_resolve_allowed_events(overrides, env),
            event_publisher_failure_mode=str(failure_mode).strip().lower(),
        )


def load_tribute_settings(
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> TributeSettings:
    """Shorthand for :meth:`TributeSettings.from_sources`."""
    return TributeSettings.from_sources(overrides, env)


__all__ = [
    "DEFAULT_INTENT_TTL_MINUTES",
    "PUBLISHER_FAILURE_MODES",
    "TributeSettings",
    "load_plans_from_file",
    "load_plans_from_json",
    "load_tribute_settings",
    "parse_boolean",
]
