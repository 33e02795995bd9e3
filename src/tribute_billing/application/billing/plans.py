"""Application billing – PlanRegistry resolves webhook payloads to configured plans."""
from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping

from tribute_billing.application.billing.models import Plan
from tribute_billing.config.validation import ConfigurationError
from tribute_billing.kernel.errors import PlanNotFoundError

__all__ = ["PlanRegistry"]


def _same_id(expected: Any, actual: Any) -> bool:
    return actual is not None and str(expected) == str(actual)


class PlanRegistry:
    """Read-only plan catalog, fixed at construction.

    Tribute assigns subscription ids on its side, so a plan is declared with
    the matchers it expects (subscription id, period id, price, currency,
    period, amount) and :meth:`resolve` picks the first plan whose set
    matchers all agree with the payload.
    """

    def __init__(self, plans: Iterable[Plan | Mapping[str, Any]]) -> None:
        resolved = [p if isinstance(p, Plan) else Plan.from_dict(dict(p)) for p in plans]
        if not resolved:
            raise ConfigurationError("At least one subscription plan must be provided")
        by_id: dict[str, Plan] = {}
        for plan in resolved:
            if plan.id in by_id:
                raise ConfigurationError(f"Duplicate plan id: {plan.id}")
            by_id[plan.id] = plan
        self._plans: tuple[Plan, ...] = tuple(resolved)
        self._by_id = by_id

    def __iter__(self) -> Iterator[Plan]:
        return iter(self._plans)

    def __len__(self) -> int:
        return len(self._plans)

    def __contains__(self, plan_id: object) -> bool:
        return plan_id in self._by_id

    def find(self, plan_id: str) -> Plan | None:
        return self._by_id.get(plan_id)

    def get(self, plan_id: str) -> Plan:
        plan = self._by_id.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def public_plans(self) -> list[dict[str, Any]]:
        return [plan.public_view() for plan in self._plans]

    def matches(self, plan: Plan, payload: Mapping[str, Any]) -> bool:
        if plan.provider_subscription_id is not None and not _same_id(
            plan.provider_subscription_id, payload.get("subscription_id")
        ):
            return False
        if plan.provider_period_id is not None and not _same_id(
            plan.provider_period_id, payload.get("period_id")
        ):
            return False
        if plan.price is not None and plan.price != payload.get("price"):
            return False
        if plan.currency is not None and plan.currency.lower() != str(payload.get("currency") or "").lower():
            return False
        # Period is only compared when the payload carries one.
        if plan.period and payload.get("period") and str(plan.period) != str(payload["period"]):
            return False
        if plan.amount is not None and plan.amount not in (payload.get("amount"), payload.get("price")):
            return False
        return True

    def resolve(self, payload: Mapping[str, Any]) -> Plan:
        """Return the first plan matching *payload* or raise ``PlanNotFoundError``."""
        for plan in self._plans:
            if self.matches(plan, payload):
                return plan
        ref = payload.get("subscription_id")
        if ref is None:
            ref = payload.get("period_id")
        if ref is None:
            ref = payload.get("price")
        raise PlanNotFoundError(str(ref), detail={"payload": dict(payload)})
