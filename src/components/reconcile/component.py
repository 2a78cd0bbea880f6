"""
Legacy reconciler component.

Older checkouts wrote purchases to ``users/{uid}/purchases`` only. The
reconciler replays those entries through the purchase recorder so they
appear in the unified index, the buyer history and the creator ledger.

Safe to re-run: completed keys are skipped and counters are left alone,
since legacy checkouts already counted the sale.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from src.components.normalizer import normalize_many, parse_timestamp
from src.components.normalizer import load_config_from_rules as load_normalizer_config
from src.components.purchases import PurchaseRecorder
from src.core.collections import LEGACY_PURCHASES, USERS, legacy_purchases
from src.core.entities import ContentItem, FulfillmentEvent
from src.core.errors import FulfillmentError
from src.core.ports.db import Document, DocumentStorePort
from src.rules.models import Rules

from .models import ReconcileConfig, ReconcileDetail, ReconcileReport

logger = logging.getLogger(__name__)

LegacyEntry = tuple[str, str, Document]


def _legacy_amount(data: Mapping[str, Any]) -> int:
    minor = data.get("amountMinorUnits")
    if isinstance(minor, int) and not isinstance(minor, bool) and minor >= 0:
        return minor
    # Legacy checkouts stored major units
    amount = data.get("amount")
    if isinstance(amount, (int, float)) and not isinstance(amount, bool) and amount >= 0:
        return round(amount * 100)
    return 0


def legacy_event(buyer_id: str, legacy_id: str, data: Mapping[str, Any]) -> FulfillmentEvent:
    """Map a legacy purchase document onto a fulfillment event."""
    purchased_at = None
    for name in ("purchasedAt", "createdAt", "timestamp"):
        purchased_at = parse_timestamp(data.get(name))
        if purchased_at is not None:
            break

    return FulfillmentEvent(
        idempotency_key=str(data.get("sessionId") or legacy_id),
        buyer_id=buyer_id,
        bundle_id=str(data.get("bundleId") or data.get("productBoxId") or ""),
        amount_minor_units=_legacy_amount(data),
        currency=str(data.get("currency") or ""),
        creator_id=data.get("creatorId") or None,
        buyer_email=str(data.get("buyerEmail") or data.get("customerEmail") or ""),
        trigger="legacy_reconcile",
        purchased_at=purchased_at,
    )


def legacy_items(
    legacy_id: str, data: Mapping[str, Any], config: ReconcileConfig
) -> tuple[ContentItem, ...] | None:
    """Item snapshot stored on the legacy entry, or None to rebuild it from the bundle."""
    entries = data.get("items")
    if not isinstance(entries, list) or not entries:
        return None
    records = [
        (str(entry.get("id") or f"{legacy_id}-{index}"), entry)
        for index, entry in enumerate(entries)
        if isinstance(entry, Mapping)
    ]
    items = normalize_many(records, "bundle_inline", config.normalizer).items
    return items or None


def _scan(store: DocumentStorePort, buyer_ids: Iterable[str] | None) -> list[LegacyEntry]:
    if buyer_ids is None:
        return store.collection_group(LEGACY_PURCHASES, parent=USERS)
    entries: list[LegacyEntry] = []
    for buyer_id in dict.fromkeys(buyer_ids):
        path = legacy_purchases(buyer_id)
        entries.extend((path, doc_id, doc) for doc_id, doc in store.list_documents(path))
    return entries


def reconcile(
    store: DocumentStorePort,
    recorder: PurchaseRecorder,
    config: ReconcileConfig | None = None,
    buyer_ids: Iterable[str] | None = None,
) -> ReconcileReport:
    """
    Upsert legacy purchases into the unified stores.

    Args:
        store: Document store holding the legacy collections
        recorder: Recorder whose write path performs the upsert
        config: Reconciler configuration
        buyer_ids: Restrict the scan to these buyers (all buyers when None)

    Returns:
        ReconcileReport with per-entry details
    """
    config = config or ReconcileConfig()
    counts = {"upserted": 0, "skipped": 0, "filtered": 0, "error": 0}
    details: list[ReconcileDetail] = []

    entries = _scan(store, buyer_ids)
    logger.info("Reconciling %d legacy purchase entries", len(entries))

    for path, legacy_id, data in entries:
        # users/{uid}/purchases
        buyer_id = path.split("/")[1]
        event = legacy_event(buyer_id, legacy_id, data)
        key = event.idempotency_key

        if data.get("type") not in config.legacy_purchase_types:
            detail = ReconcileDetail(path, legacy_id, key, "filtered", f"type {data.get('type')!r}")
        elif not event.bundle_id:
            detail = ReconcileDetail(path, legacy_id, key, "filtered", "no bundle id")
        elif recorder.status(key) == "completed":
            detail = ReconcileDetail(path, legacy_id, key, "skipped", "already completed")
        else:
            try:
                result = recorder.record_with_outcome(
                    event, items=legacy_items(legacy_id, data, config), apply_counters=False
                )
            except FulfillmentError as e:
                logger.warning("Could not reconcile %s/%s: %s", path, legacy_id, e)
                detail = ReconcileDetail(path, legacy_id, key, "error", e.message)
            else:
                if result.already_processed:
                    detail = ReconcileDetail(path, legacy_id, key, "skipped", "already completed")
                else:
                    detail = ReconcileDetail(
                        path, legacy_id, key, "upserted", f"{result.record.total_items} items"
                    )

        counts[detail.action] += 1
        details.append(detail)

    report = ReconcileReport(
        scanned=len(entries),
        upserted=counts["upserted"],
        skipped=counts["skipped"],
        filtered=counts["filtered"],
        errors=counts["error"],
        details=tuple(details),
    )
    logger.info(
        "Reconcile done: scanned=%d upserted=%d skipped=%d filtered=%d errors=%d",
        report.scanned,
        report.upserted,
        report.skipped,
        report.filtered,
        report.errors,
    )
    return report


# --- Configuration Loader ---


def load_config_from_rules(rules: Rules) -> ReconcileConfig:
    """Build ReconcileConfig from validated rules."""
    return ReconcileConfig(
        legacy_purchase_types=frozenset(rules.reconcile.legacy_purchase_types),
        normalizer=load_normalizer_config(rules),
    )
