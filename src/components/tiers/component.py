"""
Tier policy component.

Pure functions answering "how much more is this plan allowed?".
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from src.core.entities import TierInfo
from src.rules.models import PlanLimits, Rules

from .models import FreeTierOverrides, TierConfig


def remaining_capacity(tier: TierInfo, current_count: int) -> int | None:
    """
    Items that may still be added to a bundle.

    Returns:
        None when the plan is unlimited, otherwise ``max(0, limit - current_count)``
    """
    limit = tier.max_content_items_per_bundle
    if limit is None:
        return None
    return max(0, limit - max(0, current_count))


def remaining_downloads(tier: TierInfo, used: int) -> int | None:
    """Downloads left this period; None when unlimited."""
    limit = tier.max_downloads_per_period
    if limit is None:
        return None
    return max(0, limit - max(0, used))


def tier_for_plan(
    plan: str,
    is_active: bool,
    config: TierConfig | None = None,
    overrides: FreeTierOverrides | None = None,
) -> TierInfo:
    """
    Resolve the tier for a membership plan.

    An inactive pro plan falls back to free. Overrides apply to free only.
    """
    config = config or TierConfig()
    if plan in config.pro_plan_names and is_active:
        return config.pro

    tier = config.free
    if overrides is None:
        return tier
    if overrides.max_content_items_per_bundle is not None:
        tier = replace(tier, max_content_items_per_bundle=overrides.max_content_items_per_bundle)
    if overrides.max_downloads_per_period is not None:
        tier = replace(tier, max_downloads_per_period=overrides.max_downloads_per_period)
    return tier


def _non_negative_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def tier_from_membership(
    membership: Mapping[str, Any] | None, config: TierConfig | None = None
) -> TierInfo:
    """
    Resolve the tier from a stored membership document.

    Missing documents resolve to free. ``isActive`` wins over ``status``
    when present.
    """
    config = config or TierConfig()
    if not membership:
        return config.free

    plan = str(membership.get("plan") or "free")
    is_active = membership.get("isActive")
    if not isinstance(is_active, bool):
        is_active = str(membership.get("status") or "").lower() in config.active_statuses

    features = membership.get("features")
    features = features if isinstance(features, Mapping) else {}
    overrides = FreeTierOverrides(
        max_content_items_per_bundle=_non_negative_int(
            features.get("maxContentItemsPerBundle", features.get("maxVideosPerBundle"))
        ),
        max_downloads_per_period=_non_negative_int(features.get("maxDownloadsPerPeriod")),
    )
    return tier_for_plan(plan, is_active, config, overrides)


# --- Configuration Loader ---


def _tier_info(plan: str, limits: PlanLimits) -> TierInfo:
    return TierInfo(
        plan="pro" if plan == "pro" else "free",
        max_content_items_per_bundle=limits.max_content_items_per_bundle,
        max_downloads_per_period=limits.max_downloads_per_period,
    )


def load_config_from_rules(rules: Rules) -> TierConfig:
    """Build TierConfig from validated rules."""
    section = rules.tiers
    return TierConfig(
        free=_tier_info("free", section.free),
        pro=_tier_info("pro", section.pro),
        pro_plan_names=frozenset(section.pro_plan_names),
        active_statuses=frozenset(s.lower() for s in section.active_statuses),
    )
