"""
Fulfillment verifier models.

Per idempotency key: unseen -> pending -> completed, or -> failed
(retryable by calling again).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from src.core.entities import PurchaseRecord

VerifyStatus = Literal[
    "completed",  # this call recorded the purchase
    "already_processed",  # an earlier call did
    "pending",  # provider has not reported success yet
    "verification_delayed",  # polling gave up; not an error
    "ignored",  # webhook event type we do not handle
]

GRANTED: frozenset[VerifyStatus] = frozenset({"completed", "already_processed"})


@dataclass(frozen=True)
class VerificationOutcome:
    idempotency_key: str
    status: VerifyStatus
    record: PurchaseRecord | None = None
    attempts: int = 1
    payment_status: str = ""
    message: str = ""

    @property
    def granted(self) -> bool:
        return self.status in GRANTED


@dataclass(frozen=True)
class PollingConfig:
    max_attempts: int = 5
    delay_seconds: float = 2.0


@dataclass(frozen=True)
class FulfillmentConfig:
    """Fulfillment configuration from rules."""

    successful_payment_statuses: frozenset[str] = field(
        default_factory=lambda: frozenset({"paid", "no_payment_required", "succeeded"})
    )
    handled_webhook_events: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                "checkout.session.completed",
                "checkout.session.async_payment_succeeded",
            }
        )
    )
    polling: PollingConfig = field(default_factory=PollingConfig)
