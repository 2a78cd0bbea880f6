"""
Purchase recorder models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from src.components.normalizer import NormalizerConfig
from src.core.entities import PurchaseRecord

RecordOutcome = Literal["recorded", "already_processed"]
IndexStatus = Literal["unseen", "pending", "completed", "failed"]

# Sink names used in logs and PartialWriteFailureError
SINK_CREATOR_LEDGER = "creator_ledger"
SINK_BUYER_HISTORY = "buyer_history"
SINK_PURCHASE_INDEX = "purchase_index"


@dataclass(frozen=True)
class RecordResult:
    record: PurchaseRecord
    outcome: RecordOutcome

    @property
    def already_processed(self) -> bool:
        return self.outcome == "already_processed"


@dataclass(frozen=True)
class CreatorProfile:
    creator_id: str
    name: str = "Unknown Creator"
    username: str = "unknown"


@dataclass(frozen=True)
class PurchasesConfig:
    """Purchase recorder configuration from rules."""

    anonymous_sentinels: frozenset[str] = field(
        default_factory=lambda: frozenset({"anonymous", "guest", "unknown", "null", "undefined"})
    )
    default_currency: str = "usd"
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
