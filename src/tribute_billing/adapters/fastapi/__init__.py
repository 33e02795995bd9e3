"""FastAPI adapter – webhook router and exception mapper."""
from tribute_billing.adapters.fastapi.exception_mapper import TributeExceptionMapper, status_for
from tribute_billing.adapters.fastapi.router import TributeWebhookRouter

__all__ = ["TributeExceptionMapper", "TributeWebhookRouter", "status_for"]
