# Ports (Protocol interfaces) for the fulfillment core; no implementations here

from src.core.ports.db import (
    Document,
    DocumentNotFoundError,
    DocumentStoreError,
    DocumentStorePort,
    Mutator,
)
from src.core.ports.identity import IdentityPort, VerifiedIdentity
from src.core.ports.payment import (
    PaymentLookupError,
    PaymentProviderError,
    PaymentProviderPort,
    PaymentSnapshot,
    WebhookEvent,
    WebhookSignatureError,
)
from src.core.ports.time import TimePort

__all__ = [
    # Documents
    "Document",
    "DocumentNotFoundError",
    "DocumentStoreError",
    "DocumentStorePort",
    "Mutator",
    # Identity
    "IdentityPort",
    "VerifiedIdentity",
    # Payment
    "PaymentLookupError",
    "PaymentProviderError",
    "PaymentProviderPort",
    "PaymentSnapshot",
    "WebhookEvent",
    "WebhookSignatureError",
    # Time
    "TimePort",
]
