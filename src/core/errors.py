"""
Error taxonomy for fulfillment and content mutation.

Every error carries a stable ``code`` and a ``retryable`` flag so callers
can tell "nothing happened, retry" apart from "do not repeat".
"Already processed" is a successful outcome, not an error, and is not
modelled here.
"""

from __future__ import annotations


class FulfillmentError(Exception):
    """Base class for domain errors."""

    code = "fulfillment_error"
    retryable = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(FulfillmentError):
    """Malformed or missing required input."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NotFoundError(FulfillmentError):
    """Bundle, creator or content missing."""

    code = "not_found"

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class UnauthorizedError(FulfillmentError):
    """Missing or invalid identity, or identity not allowed to act."""

    code = "unauthorized"


class AnonymousRejectedError(UnauthorizedError):
    """A fulfillment attempt without a concrete buyer identity."""

    code = "anonymous_rejected"

    def __init__(self, idempotency_key: str) -> None:
        self.idempotency_key = idempotency_key
        super().__init__(f"Anonymous purchase rejected for {idempotency_key}")


class QuotaExceededError(FulfillmentError):
    """Tier limit reached; nothing was added."""

    code = "quota_exceeded"

    def __init__(self, bundle_id: str, limit: int) -> None:
        self.bundle_id = bundle_id
        self.limit = limit
        super().__init__(f"Bundle {bundle_id} already holds the maximum of {limit} items")


class UpstreamPaymentNotCompletedError(FulfillmentError):
    """The payment provider does not report success (yet)."""

    code = "payment_not_completed"
    retryable = True

    def __init__(self, idempotency_key: str, payment_status: str) -> None:
        self.idempotency_key = idempotency_key
        self.payment_status = payment_status
        super().__init__(f"Payment {idempotency_key} not completed (status: {payment_status})")


class PartialWriteFailureError(FulfillmentError):
    """One of the fan-out sinks failed; retry the whole operation."""

    code = "partial_write_failure"
    retryable = True

    def __init__(self, idempotency_key: str, sink: str, cause: Exception) -> None:
        self.idempotency_key = idempotency_key
        self.sink = sink
        self.cause = cause
        super().__init__(f"Write to {sink} failed for {idempotency_key}: {cause}")
