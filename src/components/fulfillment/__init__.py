"""
Fulfillment verifier component.

Public API for webhook, client-verify and polling fulfillment paths.
"""

from .component import FulfillmentVerifier, load_config_from_rules
from .models import (
    GRANTED,
    FulfillmentConfig,
    PollingConfig,
    VerificationOutcome,
    VerifyStatus,
)

__all__ = [
    # Functions
    "load_config_from_rules",
    # Verifier
    "FulfillmentVerifier",
    # Models
    "FulfillmentConfig",
    "GRANTED",
    "PollingConfig",
    "VerificationOutcome",
    "VerifyStatus",
]
