"""
Collection names shared by every component.

Bundles and legacy product boxes are read as one concept; product boxes
are only ever a read fallback.
"""

from __future__ import annotations

from src.core.entities import BundleDocument
from src.core.ports.db import DocumentStorePort, subcollection

BUNDLES = "bundles"
PRODUCT_BOXES = "productBoxes"

UPLOADS = "uploads"
CREATOR_UPLOADS = "creatorUploads"
BUNDLE_CONTENT = "bundleContent"
PRODUCT_BOX_CONTENT = "productBoxContent"

USERS = "users"
MEMBERSHIPS = "memberships"

# Unified purchase index, keyed by idempotency key
PURCHASE_INDEX = "bundlePurchases"

# Legacy per-buyer purchases live under users/{uid}/purchases
LEGACY_PURCHASES = "purchases"


def buyer_history(buyer_id: str) -> str:
    """Buyer-facing purchase history collection."""
    return subcollection("userPurchases", buyer_id, "purchases")


def creator_ledger(creator_id: str) -> str:
    """Creator-facing sales ledger collection."""
    return subcollection("creatorSales", creator_id, "sales")


def legacy_purchases(buyer_id: str) -> str:
    return subcollection(USERS, buyer_id, LEGACY_PURCHASES)


def find_bundle(store: DocumentStorePort, bundle_id: str) -> BundleDocument | None:
    """Read a bundle, falling back to the legacy product-box collection."""
    for collection in (BUNDLES, PRODUCT_BOXES):
        data = store.get(collection, bundle_id)
        if data is not None:
            return BundleDocument.from_document(bundle_id, data, source=collection)
    return None
