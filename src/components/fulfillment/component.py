"""
Fulfillment verifier component.

Decides whether a purchase may be recorded. Three entry points reach the
same recorder:

- webhook: provider-signed event payload
- verify: authenticated client call, corroborated against the provider
- poll / await: bounded client polling

Access is never granted without the provider reporting success, and a
completed key short-circuits to "already processed".
"""

from __future__ import annotations

import logging

from src.components.purchases import PurchaseRecorder
from src.core.entities import FulfillmentEvent, Trigger
from src.core.errors import (
    AnonymousRejectedError,
    FulfillmentError,
    NotFoundError,
    UnauthorizedError,
    UpstreamPaymentNotCompletedError,
    ValidationError,
)
from src.core.ports.identity import VerifiedIdentity
from src.core.ports.payment import (
    PaymentLookupError,
    PaymentProviderError,
    PaymentProviderPort,
    PaymentSnapshot,
)
from src.core.ports.time import TimePort
from src.rules.models import Rules

from .models import FulfillmentConfig, PollingConfig, VerificationOutcome

logger = logging.getLogger(__name__)


class FulfillmentVerifier:
    """Verify payments and hand verified events to the purchase recorder."""

    def __init__(
        self,
        recorder: PurchaseRecorder,
        payments: PaymentProviderPort,
        clock: TimePort,
        config: FulfillmentConfig | None = None,
    ):
        self.recorder = recorder
        self.payments = payments
        self.clock = clock
        self.config = config or FulfillmentConfig()

    # --- Entry points ---

    def handle_webhook(self, payload: bytes, signature: str) -> VerificationOutcome:
        """
        Process a signed provider event.

        Raises:
            WebhookSignatureError: if the signature does not verify
        """
        event = self.payments.construct_event(payload, signature)
        if event.type not in self.config.handled_webhook_events or event.payment is None:
            logger.info("Ignoring webhook event %s (%s)", event.id, event.type)
            return VerificationOutcome(
                idempotency_key=event.payment.idempotency_key if event.payment else "",
                status="ignored",
                message=f"Unhandled event type: {event.type}",
            )

        snapshot = event.payment
        if not snapshot.bundle_id:
            # Acknowledged so the provider stops redelivering it
            logger.warning(
                "Ignoring webhook %s for %s: no bundle id", event.type, snapshot.idempotency_key
            )
            return VerificationOutcome(
                idempotency_key=snapshot.idempotency_key,
                status="ignored",
                payment_status=snapshot.payment_status,
                message="Event carries no bundle id",
            )

        logger.info("Webhook %s for %s", event.type, snapshot.idempotency_key)
        if not self._is_paid(snapshot):
            # Async payment methods complete later with their own event
            return self._pending(snapshot)
        return self._fulfill(snapshot, snapshot.buyer_id, "webhook")

    def verify(
        self,
        idempotency_key: str,
        identity: VerifiedIdentity | None,
        bundle_id: str | None = None,
    ) -> VerificationOutcome:
        """
        Client-initiated verify-and-grant.

        Raises:
            AnonymousRejectedError: no authenticated buyer
            UnauthorizedError: the payment belongs to another buyer
            UpstreamPaymentNotCompletedError: provider does not report success
        """
        snapshot = self._check_client(idempotency_key, identity, bundle_id)
        if isinstance(snapshot, VerificationOutcome):
            return snapshot
        if not self._is_paid(snapshot):
            raise UpstreamPaymentNotCompletedError(idempotency_key, snapshot.payment_status)
        return self._fulfill(snapshot, identity.user_id if identity else None, "client_verify")

    def poll_once(
        self, idempotency_key: str, identity: VerifiedIdentity | None
    ) -> VerificationOutcome:
        """One polling attempt; a not-yet-paid payment is a ``pending`` outcome."""
        snapshot = self._check_client(idempotency_key, identity, None)
        if isinstance(snapshot, VerificationOutcome):
            return snapshot
        if not self._is_paid(snapshot):
            return self._pending(snapshot)
        return self._fulfill(snapshot, identity.user_id if identity else None, "client_poll")

    def await_fulfillment(
        self,
        idempotency_key: str,
        identity: VerifiedIdentity | None,
        polling: PollingConfig | None = None,
    ) -> VerificationOutcome:
        """
        Poll until granted or the attempt budget runs out.

        Exhaustion is a ``verification_delayed`` outcome, not an error.
        Retryable failures and provider outages count as an attempt; others
        propagate.
        """
        polling = polling or self.config.polling
        last_payment_status = ""

        for attempt in range(1, polling.max_attempts + 1):
            try:
                outcome = self.poll_once(idempotency_key, identity)
            except FulfillmentError as e:
                if not e.retryable:
                    raise
                logger.warning(
                    "Poll %d/%d for %s failed: %s",
                    attempt,
                    polling.max_attempts,
                    idempotency_key,
                    e,
                )
            except PaymentProviderError as e:
                logger.warning(
                    "Poll %d/%d for %s: provider unavailable: %s",
                    attempt,
                    polling.max_attempts,
                    idempotency_key,
                    e,
                )
            else:
                last_payment_status = outcome.payment_status or last_payment_status
                if outcome.granted:
                    return _with_attempts(outcome, attempt)

            if attempt < polling.max_attempts:
                self.clock.sleep(polling.delay_seconds)

        logger.info(
            "Verification of %s delayed after %d attempts", idempotency_key, polling.max_attempts
        )
        return VerificationOutcome(
            idempotency_key=idempotency_key,
            status="verification_delayed",
            attempts=polling.max_attempts,
            payment_status=last_payment_status,
            message="Payment received but verification is taking longer than expected",
        )

    # --- Internals ---

    def _is_paid(self, snapshot: PaymentSnapshot) -> bool:
        return snapshot.payment_status in self.config.successful_payment_statuses

    def _check_client(
        self,
        idempotency_key: str,
        identity: VerifiedIdentity | None,
        bundle_id: str | None,
    ) -> PaymentSnapshot | VerificationOutcome:
        """
        Shared preconditions for client calls.

        Returns the provider snapshot, or an ``already_processed`` outcome.
        """
        if not idempotency_key or not idempotency_key.strip():
            raise ValidationError("Missing session id", field="session_id")
        if identity is None or not identity.user_id:
            logger.critical("Unauthenticated fulfillment attempt for %s", idempotency_key)
            raise AnonymousRejectedError(idempotency_key)

        existing = self.recorder.get(idempotency_key)
        if existing is not None and existing.status == "completed":
            if existing.buyer_id != identity.user_id:
                raise UnauthorizedError("Purchase belongs to another account")
            return VerificationOutcome(
                idempotency_key=idempotency_key,
                status="already_processed",
                record=existing,
                message="Purchase already processed",
            )

        try:
            snapshot = self.payments.retrieve_payment(idempotency_key)
        except PaymentLookupError as e:
            raise NotFoundError("payment", idempotency_key) from e

        if snapshot.buyer_id and snapshot.buyer_id != identity.user_id:
            logger.warning(
                "Buyer mismatch for %s: provider=%s caller=%s",
                idempotency_key,
                snapshot.buyer_id,
                identity.user_id,
            )
            raise UnauthorizedError("Purchase belongs to another account")
        if bundle_id and snapshot.bundle_id and bundle_id != snapshot.bundle_id:
            logger.warning(
                "Client bundle %s ignored for %s; provider says %s",
                bundle_id,
                idempotency_key,
                snapshot.bundle_id,
            )
        return snapshot

    def _pending(self, snapshot: PaymentSnapshot) -> VerificationOutcome:
        return VerificationOutcome(
            idempotency_key=snapshot.idempotency_key,
            status="pending",
            payment_status=snapshot.payment_status,
            message=f"Payment status is {snapshot.payment_status}",
        )

    def _fulfill(
        self, snapshot: PaymentSnapshot, buyer_id: str | None, trigger: Trigger
    ) -> VerificationOutcome:
        if not snapshot.bundle_id:
            raise ValidationError(
                f"Payment {snapshot.idempotency_key} carries no bundle id", field="bundle_id"
            )

        event = FulfillmentEvent(
            idempotency_key=snapshot.idempotency_key,
            buyer_id=snapshot.buyer_id or buyer_id or "",
            bundle_id=snapshot.bundle_id,
            amount_minor_units=snapshot.amount_minor_units,
            currency=snapshot.currency,
            creator_id=snapshot.creator_id,
            buyer_email=snapshot.customer_email,
            trigger=trigger,
        )
        result = self.recorder.record_with_outcome(event)
        return VerificationOutcome(
            idempotency_key=snapshot.idempotency_key,
            status="already_processed" if result.already_processed else "completed",
            record=result.record,
            payment_status=snapshot.payment_status,
            message=(
                "Purchase already processed"
                if result.already_processed
                else "Purchase completed"
            ),
        )


def _with_attempts(outcome: VerificationOutcome, attempts: int) -> VerificationOutcome:
    return VerificationOutcome(
        idempotency_key=outcome.idempotency_key,
        status=outcome.status,
        record=outcome.record,
        attempts=attempts,
        payment_status=outcome.payment_status,
        message=outcome.message,
    )


# --- Configuration Loader ---


def load_config_from_rules(rules: Rules) -> FulfillmentConfig:
    """Build FulfillmentConfig from validated rules."""
    section = rules.fulfillment
    return FulfillmentConfig(
        successful_payment_statuses=frozenset(section.successful_payment_statuses),
        handled_webhook_events=frozenset(section.handled_webhook_events),
        polling=PollingConfig(
            max_attempts=section.polling.max_attempts,
            delay_seconds=section.polling.delay_seconds,
        ),
    )
