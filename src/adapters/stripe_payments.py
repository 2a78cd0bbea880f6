"""
Stripe payment adapter.

Implements PaymentProviderPort on top of the stripe SDK:
- Checkout Session ids (``cs_...``) are retrieved as sessions
- PaymentIntent ids (``pi_...``) are retrieved as payment intents
- webhook payloads are verified with ``stripe.Webhook.construct_event``

Stripe objects are flattened to plain dicts before parsing so the same
parsers serve the SDK, raw webhook JSON and the stub adapter.
"""

from __future__ import annotations

import logging
from typing import Any

import stripe

from src.core.ports.payment import (
    BUNDLE_METADATA_KEYS,
    BUYER_METADATA_KEYS,
    CREATOR_METADATA_KEYS,
    PaymentLookupError,
    PaymentProviderError,
    PaymentSnapshot,
    WebhookEvent,
    WebhookSignatureError,
    first_metadata_value,
)

logger = logging.getLogger(__name__)


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return dict(to_dict())
    return {}


def _metadata(data: dict[str, Any]) -> dict[str, str]:
    raw = _as_dict(data.get("metadata"))
    return {str(k): str(v) for k, v in raw.items() if v is not None}


def snapshot_from_session(session: Any) -> PaymentSnapshot:
    """Build a snapshot from a Checkout Session object or dict."""
    data = _as_dict(session)
    metadata = _metadata(data)
    details = _as_dict(data.get("customer_details"))
    return PaymentSnapshot(
        idempotency_key=str(data.get("id") or ""),
        payment_status=str(data.get("payment_status") or "unknown"),
        amount_minor_units=int(data.get("amount_total") or 0),
        currency=str(data.get("currency") or "usd").lower(),
        buyer_id=(
            first_metadata_value(metadata, BUYER_METADATA_KEYS)
            or data.get("client_reference_id")
        ),
        bundle_id=first_metadata_value(metadata, BUNDLE_METADATA_KEYS),
        creator_id=first_metadata_value(metadata, CREATOR_METADATA_KEYS),
        customer_email=str(details.get("email") or data.get("customer_email") or ""),
        metadata=metadata,
    )


def snapshot_from_payment_intent(intent: Any) -> PaymentSnapshot:
    """Build a snapshot from a PaymentIntent object or dict."""
    data = _as_dict(intent)
    metadata = _metadata(data)
    return PaymentSnapshot(
        idempotency_key=str(data.get("id") or ""),
        payment_status=str(data.get("status") or "unknown"),
        amount_minor_units=int(data.get("amount_received") or data.get("amount") or 0),
        currency=str(data.get("currency") or "usd").lower(),
        buyer_id=first_metadata_value(metadata, BUYER_METADATA_KEYS),
        bundle_id=first_metadata_value(metadata, BUNDLE_METADATA_KEYS),
        creator_id=first_metadata_value(metadata, CREATOR_METADATA_KEYS),
        customer_email=str(data.get("receipt_email") or ""),
        metadata=metadata,
    )


def event_from_payload(event: Any) -> WebhookEvent:
    """Parse a verified event into a WebhookEvent."""
    data = _as_dict(event)
    obj = _as_dict(_as_dict(data.get("data")).get("object"))
    kind = obj.get("object")

    payment: PaymentSnapshot | None = None
    if kind == "checkout.session":
        payment = snapshot_from_session(obj)
    elif kind == "payment_intent":
        payment = snapshot_from_payment_intent(obj)

    return WebhookEvent(
        id=str(data.get("id") or ""),
        type=str(data.get("type") or ""),
        payment=payment,
    )


class StripePaymentAdapter:
    """PaymentProviderPort backed by the Stripe API."""

    def __init__(self, secret_key: str, webhook_secret: str):
        self.webhook_secret = webhook_secret
        stripe.api_key = secret_key

    def retrieve_payment(self, idempotency_key: str) -> PaymentSnapshot:
        try:
            if idempotency_key.startswith("pi_"):
                intent = stripe.PaymentIntent.retrieve(idempotency_key)
                return snapshot_from_payment_intent(intent)
            session = stripe.checkout.Session.retrieve(idempotency_key)
            return snapshot_from_session(session)
        except stripe.InvalidRequestError as e:
            raise PaymentLookupError(idempotency_key, "not found") from e
        except stripe.StripeError as e:
            logger.error("Stripe lookup failed for %s: %s", idempotency_key, e)
            raise PaymentProviderError(f"Stripe lookup failed: {e}") from e

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self.webhook_secret:
            raise WebhookSignatureError("webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        except ValueError as e:
            raise WebhookSignatureError(f"invalid payload: {e}") from e
        return event_from_payload(event)
