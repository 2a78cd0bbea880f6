"""
Payment provider port.

The provider is the source of truth for whether a transaction succeeded.
The core never infers success from client-supplied claims: it either
retrieves the provider's record or consumes a provider-signed webhook event.

Implementations:
- StripePaymentAdapter: Stripe Checkout Sessions / PaymentIntents
- PaymentStubAdapter: preconfigured snapshots (dev/tests)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

# --- Models ---


@dataclass(frozen=True)
class PaymentSnapshot:
    """
    Provider view of one transaction.

    Attributes:
        idempotency_key: Checkout Session id or PaymentIntent id
        payment_status: Raw provider status (``paid``, ``unpaid``, ``succeeded`` ...)
        amount_minor_units: Amount charged, in minor units
        currency: ISO currency code, lower case
        buyer_id: Buyer identity recorded on the session, if any
        bundle_id: Purchased bundle recorded on the session, if any
        creator_id: Creator recorded on the session, if any
        customer_email: Email collected by the provider
        metadata: Remaining provider metadata
    """

    idempotency_key: str
    payment_status: str
    amount_minor_units: int = 0
    currency: str = "usd"
    buyer_id: str | None = None
    bundle_id: str | None = None
    creator_id: str | None = None
    customer_email: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    """A signature-verified provider event."""

    id: str
    type: str
    payment: PaymentSnapshot | None = None


# --- Port Interface ---


class PaymentProviderPort(Protocol):
    """Port for the payment provider."""

    def retrieve_payment(self, idempotency_key: str) -> PaymentSnapshot:
        """
        Fetch the provider's authoritative record.

        Raises:
            PaymentLookupError: if the provider has no such transaction
        """
        ...

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify a webhook signature and parse the event.

        Raises:
            WebhookSignatureError: if the signature does not verify
        """
        ...


# --- Errors ---


class PaymentProviderError(Exception):
    """Base class for provider errors."""


class PaymentLookupError(PaymentProviderError):
    def __init__(self, idempotency_key: str, reason: str = "not found") -> None:
        self.idempotency_key = idempotency_key
        self.reason = reason
        super().__init__(f"Payment {idempotency_key}: {reason}")


class WebhookSignatureError(PaymentProviderError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid webhook signature: {reason}")


# Metadata keys the checkout flow has used over time, newest first
BUYER_METADATA_KEYS: tuple[str, ...] = ("buyer_user_id", "buyerUid", "buyerId", "userId")
BUNDLE_METADATA_KEYS: tuple[str, ...] = ("bundleId", "productBoxId")
CREATOR_METADATA_KEYS: tuple[str, ...] = ("creatorId", "creator_id")


def first_metadata_value(metadata: dict[str, str], keys: tuple[str, ...]) -> str | None:
    """Return the first non-empty metadata value among ``keys``."""
    for key in keys:
        value = metadata.get(key)
        if value:
            return value
    return None
