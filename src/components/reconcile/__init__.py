"""
Legacy reconciler component.

Public API for moving legacy per-buyer purchases into the unified stores.
"""

from .component import legacy_event, legacy_items, load_config_from_rules, reconcile
from .models import ReconcileAction, ReconcileConfig, ReconcileDetail, ReconcileReport

__all__ = [
    # Functions
    "legacy_event",
    "legacy_items",
    "load_config_from_rules",
    "reconcile",
    # Models
    "ReconcileAction",
    "ReconcileConfig",
    "ReconcileDetail",
    "ReconcileReport",
]
