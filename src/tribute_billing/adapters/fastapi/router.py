"""FastAPI adapter – Tribute webhook router."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tribute_billing.adapters.fastapi.exception_mapper import error_body, status_for
from tribute_billing.application.billing import TributeEventProcessor
from tribute_billing.application.webhooks import SIGNATURE_HEADER
from tribute_billing.kernel.errors import BaseError
from tribute_billing.observability.logging import get_logger

_log = get_logger(__name__)


def TributeWebhookRouter(
    processor: TributeEventProcessor,
    path: str = "/webhooks/tribute",
    tags: list[str] | None = None,
) -> APIRouter:
    """Return a router exposing ``POST {path}`` for Tribute deliveries.

    The raw request body is passed to the processor untouched so the HMAC
    is computed over the exact bytes Tribute signed.

    Responses
    ---------
    200  processed (``{"status": "ok", "category": ..., "type": ...}``) or
         ignored as disabled / duplicate (``{"status": "ignored"}``)
    401  signature missing or invalid
    400  any other processing error; Tribute will redeliver
    """
    router = APIRouter(tags=tags or ["webhooks"])

    @router.post(path)
    async def receive_tribute_webhook(request: Request) -> Any:
        body = await request.body()
        try:
            result = await processor.handle_webhook(body, request.headers.get(SIGNATURE_HEADER))
        except BaseError as exc:
            _log.warning("tribute_webhook_rejected", code=exc.code, message=exc.message, retryable=exc.retryable)
            return JSONResponse(status_code=status_for(exc), content=error_body(exc))
        except Exception as exc:
            # publisher or listener failure after the store write
            _log.warning("tribute_webhook_rejected", code="error", message=str(exc), retryable=True, exc_info=exc)
            return JSONResponse(status_code=status_for(exc), content=error_body(exc))
        if result is None:
            return {"status": "ignored"}
        return {"status": "ok", "category": result.category.value, "type": result.type.value}

    return router


__all__ = ["TributeWebhookRouter"]
