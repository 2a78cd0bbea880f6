"""
Legacy reconciler models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from src.components.normalizer import NormalizerConfig

ReconcileAction = Literal["upserted", "skipped", "filtered", "error"]


@dataclass(frozen=True)
class ReconcileDetail:
    """What happened to one legacy purchase entry."""

    path: str
    legacy_id: str
    idempotency_key: str
    action: ReconcileAction
    reason: str = ""


@dataclass(frozen=True)
class ReconcileReport:
    scanned: int = 0
    upserted: int = 0
    skipped: int = 0
    filtered: int = 0
    errors: int = 0
    details: tuple[ReconcileDetail, ...] = ()


@dataclass(frozen=True)
class ReconcileConfig:
    """Reconciler configuration from rules."""

    legacy_purchase_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"bundle", "product_box"})
    )
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
