"""
Tier policy models.

Plan limits come from rules.yaml; a ``None`` limit means unlimited.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from src.core.entities import TierInfo

FREE_TIER = TierInfo(plan="free", max_content_items_per_bundle=10, max_downloads_per_period=15)
PRO_TIER = TierInfo(plan="pro", max_content_items_per_bundle=None, max_downloads_per_period=None)


@dataclass(frozen=True)
class TierConfig:
    """Tier configuration from rules."""

    free: TierInfo = FREE_TIER
    pro: TierInfo = PRO_TIER
    # Membership plan names that map to the pro tier
    pro_plan_names: frozenset[str] = field(
        default_factory=lambda: frozenset({"pro", "creator_pro"})
    )
    active_statuses: frozenset[str] = field(
        default_factory=lambda: frozenset({"active", "trialing"})
    )


@dataclass(frozen=True)
class FreeTierOverrides:
    """Per-user adjustments to free limits (legacy free-user records)."""

    max_content_items_per_bundle: int | None = None
    max_downloads_per_period: int | None = None
