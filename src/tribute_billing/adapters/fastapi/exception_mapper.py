"""FastAPI adapter – TributeExceptionMapper."""
from __future__ import annotations

from typing import Any, Callable

from fastapi.responses import JSONResponse

from tribute_billing.kernel.errors import BaseError, SignatureError

# ORDER MATTERS: more-specific subtypes first
ERROR_STATUS_MAP: list[tuple[type[Exception], int]] = [
    (SignatureError, 401),
    (BaseError, 400),
    (Exception, 400),
]


def status_for(exc: BaseException) -> int:
    for exc_type, status in ERROR_STATUS_MAP:
        if isinstance(exc, exc_type):
            return status
    return 400


def error_body(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, BaseError):
        return exc.to_dict()
    return {"code": "error", "message": str(exc), "retryable": True}


class TributeExceptionMapper:
    """Register tribute_billing error → HTTP status-code mappings on a FastAPI app.

    Mappings
    --------
    ``SignatureError`` → 401 (Tribute should not retry a forged delivery)
    ``BaseError``      → 400 (Tribute redelivers on any non-2xx)
    anything else      → 400 (publisher or listener failure; a replay is a no-op)
    """

    def register(self, app: Any) -> None:
        """Register all error handlers on a ``FastAPI`` or ``Starlette`` app."""
        for exc_type, status in ERROR_STATUS_MAP:

            def make_handler(code: int) -> Callable[[Any, Any], Any]:
                def handler(request: Any, exc: Any) -> Any:  # noqa: ARG001
                    return JSONResponse(status_code=code, content=error_body(exc))

                return handler

            app.add_exception_handler(exc_type, make_handler(status))


__all__ = ["ERROR_STATUS_MAP", "TributeExceptionMapper", "error_body", "status_for"]
