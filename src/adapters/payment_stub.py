"""
Payment stub adapter (dev/tests).

Serves preconfigured PaymentSnapshots instead of calling a provider.
Webhook payloads are plain Stripe-shaped JSON; the "signature" is the
shared secret itself.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace

from src.adapters.stripe_payments import event_from_payload
from src.core.ports.payment import (
    PaymentLookupError,
    PaymentSnapshot,
    WebhookEvent,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentStubAdapter:
    """
    Stub payment adapter.

    Satisfies PaymentProviderPort. ``lookups`` counts retrieve calls per
    key so tests can assert how often the provider was consulted.
    """

    webhook_secret: str = "whsec_stub"
    _payments: dict[str, PaymentSnapshot] = field(default_factory=dict)
    lookups: dict[str, int] = field(default_factory=dict)

    def retrieve_payment(self, idempotency_key: str) -> PaymentSnapshot:
        self.lookups[idempotency_key] = self.lookups.get(idempotency_key, 0) + 1
        snapshot = self._payments.get(idempotency_key)
        if snapshot is None:
            raise PaymentLookupError(idempotency_key)
        logger.debug(
            "PaymentStubAdapter.retrieve_payment: key=%s status=%s",
            idempotency_key,
            snapshot.payment_status,
        )
        return snapshot

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if signature != self.webhook_secret:
            raise WebhookSignatureError("signature mismatch")
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError(f"invalid payload: {e}") from e
        return event_from_payload(data)

    # --- Testing Helpers ---

    def add_payment(self, snapshot: PaymentSnapshot) -> None:
        self._payments[snapshot.idempotency_key] = snapshot

    def set_status(self, idempotency_key: str, payment_status: str) -> None:
        """Move a known payment to a new provider status."""
        self._payments[idempotency_key] = replace(
            self._payments[idempotency_key], payment_status=payment_status
        )
