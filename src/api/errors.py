"""
HTTP mapping for domain and payment provider errors.

Bodies carry the stable error ``code`` and the ``retryable`` flag so
clients can tell "nothing happened, retry" apart from "do not repeat".
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.core.errors import (
    AnonymousRejectedError,
    FulfillmentError,
    NotFoundError,
    PartialWriteFailureError,
    QuotaExceededError,
    UnauthorizedError,
    UpstreamPaymentNotCompletedError,
    ValidationError,
)
from src.core.ports.payment import (
    PaymentLookupError,
    PaymentProviderError,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)

# Most specific first
_STATUS_BY_ERROR: list[tuple[type[FulfillmentError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AnonymousRejectedError, status.HTTP_401_UNAUTHORIZED),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (QuotaExceededError, status.HTTP_409_CONFLICT),
    (UpstreamPaymentNotCompletedError, status.HTTP_402_PAYMENT_REQUIRED),
    (PartialWriteFailureError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: FulfillmentError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=code,
        content={"error": exc.code, "detail": exc.message, "retryable": exc.retryable},
    )


async def payment_error_handler(request: Request, exc: PaymentProviderError) -> JSONResponse:
    if isinstance(exc, WebhookSignatureError):
        code, error = status.HTTP_400_BAD_REQUEST, "invalid_signature"
    elif isinstance(exc, PaymentLookupError):
        code, error = status.HTTP_404_NOT_FOUND, "payment_not_found"
    else:
        logger.error("Payment provider error on %s: %s", request.url.path, exc)
        code, error = status.HTTP_502_BAD_GATEWAY, "payment_provider_error"
    return JSONResponse(
        status_code=code,
        content={"error": error, "detail": str(exc), "retryable": code >= 500},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FulfillmentError, fulfillment_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PaymentProviderError, payment_error_handler)  # type: ignore[arg-type]
