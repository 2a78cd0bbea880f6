"""
Purchase recorder component.

Public API for idempotent purchase recording and purchase reads.
"""

from .component import (
    PurchaseRecorder,
    build_snapshot,
    creator_profile,
    is_anonymous,
    load_config_from_rules,
)
from .models import (
    SINK_BUYER_HISTORY,
    SINK_CREATOR_LEDGER,
    SINK_PURCHASE_INDEX,
    CreatorProfile,
    IndexStatus,
    PurchasesConfig,
    RecordOutcome,
    RecordResult,
)

__all__ = [
    # Functions
    "build_snapshot",
    "creator_profile",
    "is_anonymous",
    "load_config_from_rules",
    # Recorder
    "PurchaseRecorder",
    # Models
    "CreatorProfile",
    "IndexStatus",
    "PurchasesConfig",
    "RecordOutcome",
    "RecordResult",
    "SINK_BUYER_HISTORY",
    "SINK_CREATOR_LEDGER",
    "SINK_PURCHASE_INDEX",
]
