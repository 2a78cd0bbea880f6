"""
Tier policy component.

Public API for plan quotas.
"""

from .component import (
    load_config_from_rules,
    remaining_capacity,
    remaining_downloads,
    tier_for_plan,
    tier_from_membership,
)
from .models import FREE_TIER, PRO_TIER, FreeTierOverrides, TierConfig

__all__ = [
    # Functions
    "load_config_from_rules",
    "remaining_capacity",
    "remaining_downloads",
    "tier_for_plan",
    "tier_from_membership",
    # Models
    "FREE_TIER",
    "FreeTierOverrides",
    "PRO_TIER",
    "TierConfig",
]
