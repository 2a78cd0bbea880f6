"""
Purchase recorder component.

Records a verified purchase exactly once across three stores:

- creator sales ledger   creatorSales/{creator}/sales/{key}
- buyer purchase history userPurchases/{buyer}/purchases/{key}
- unified purchase index bundlePurchases/{key}

The index entry is created ``pending`` first and moved to ``completed``
last, through an atomic update that re-checks its status. Each sink is
written with insert-if-absent and lists the counters it owes. A counter is
claimed off that list before it is incremented and put back if the
increment fails, so redelivery never double counts and a retry applies
what a failed call left behind.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from src.components.normalizer import (
    NormalizerConfig,
    SourceKind,
    SourceRecord,
    normalize,
    normalize_many,
)
from src.components.normalizer import load_config_from_rules as load_normalizer_config
from src.core.collections import (
    BUNDLE_CONTENT,
    CREATOR_UPLOADS,
    PRODUCT_BOX_CONTENT,
    PURCHASE_INDEX,
    UPLOADS,
    USERS,
    buyer_history,
    creator_ledger,
    find_bundle,
)
from src.core.entities import BundleDocument, ContentItem, FulfillmentEvent, PurchaseRecord
from src.core.errors import (
    AnonymousRejectedError,
    NotFoundError,
    PartialWriteFailureError,
    UnauthorizedError,
    ValidationError,
)
from src.core.ports.db import Document, DocumentStoreError, DocumentStorePort
from src.core.ports.time import TimePort
from src.rules.models import Rules

from .models import (
    SINK_BUYER_HISTORY,
    SINK_CREATOR_LEDGER,
    SINK_PURCHASE_INDEX,
    CreatorProfile,
    IndexStatus,
    PurchasesConfig,
    RecordResult,
)

logger = logging.getLogger(__name__)

# Array fields older bundle documents used for their content
LEGACY_CONTENT_FIELDS = ("contents", "items", "videos", "files", "content", "bundleContent")

# (collection, doc_id, deltas)
CounterUpdate = tuple[str, str, dict[str, int]]

# Sink entry field listing counters not yet applied for that entry
PENDING_COUNTERS = "pendingCounters"


# --- Identity checks ---


def _check_buyer(record: PurchaseRecord, event: FulfillmentEvent) -> None:
    if record.buyer_id != event.buyer_id:
        logger.warning(
            "Purchase %s belongs to buyer %s; rejected for buyer %s",
            record.idempotency_key,
            record.buyer_id,
            event.buyer_id,
        )
        raise UnauthorizedError("Purchase belongs to another account")


def _counter_label(counter: CounterUpdate) -> str:
    return f"{counter[0]}/{counter[1]}"


def is_anonymous(buyer_id: str | None, config: PurchasesConfig | None = None) -> bool:
    """True when ``buyer_id`` is not a concrete identity."""
    config = config or PurchasesConfig()
    if not buyer_id or not buyer_id.strip():
        return True
    lowered = buyer_id.strip().lower()
    return lowered in config.anonymous_sentinels or lowered.startswith("guest_")


def _validate(event: FulfillmentEvent) -> None:
    if not event.idempotency_key or not event.idempotency_key.strip():
        raise ValidationError("Missing idempotency key", field="idempotency_key")
    if not event.bundle_id or not event.bundle_id.strip():
        raise ValidationError("Missing bundle id", field="bundle_id")
    if isinstance(event.amount_minor_units, bool) or not isinstance(event.amount_minor_units, int):
        raise ValidationError("Amount must be an integer", field="amount_minor_units")
    if event.amount_minor_units < 0:
        raise ValidationError("Amount must not be negative", field="amount_minor_units")


# --- Snapshot ---


def _inline_items(
    entries: list[Any], fallback_ids: list[str], bundle_id: str, config: NormalizerConfig
) -> tuple[ContentItem, ...]:
    records: list[tuple[str, Mapping[str, Any]]] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            continue
        entry_id = entry.get("id") or entry.get("uploadId")
        if not entry_id and index < len(fallback_ids):
            entry_id = fallback_ids[index]
        records.append((str(entry_id or f"{bundle_id}-{index}"), entry))
    return normalize_many(records, "bundle_inline", config).items


def _legacy_id_items(
    store: DocumentStorePort, bundle: BundleDocument, config: NormalizerConfig
) -> tuple[ContentItem, ...]:
    raw = bundle.raw
    urls = raw.get("contentUrls") or []
    titles = raw.get("contentTitles") or []
    thumbnails = raw.get("contentThumbnails") or []

    items: list[ContentItem] = []
    for index, content_id in enumerate(bundle.content_items):
        upload = store.get(UPLOADS, content_id)
        if upload is not None:
            record = SourceRecord(kind="upload", data=upload)
        else:
            matches = store.query(CREATOR_UPLOADS, "uploadId", content_id, limit=1)
            if matches:
                record = SourceRecord(kind="creator_upload", data=matches[0][1])
            else:
                # Parallel url/title arrays written alongside the id list
                record = SourceRecord(
                    kind="bundle_inline",
                    data={
                        "fileUrl": urls[index] if index < len(urls) else None,
                        "title": titles[index] if index < len(titles) else None,
                        "thumbnailUrl": thumbnails[index] if index < len(thumbnails) else None,
                    },
                )
        result = normalize(record, content_id, config)
        if isinstance(result, ContentItem):
            items.append(result)
        else:
            logger.warning(
                "Dropping %s from bundle %s snapshot: %s", content_id, bundle.id, result.reason
            )
    return tuple(items)


def _queried_items(
    store: DocumentStorePort,
    collection: str,
    field: str,
    bundle_id: str,
    kind: SourceKind,
    config: NormalizerConfig,
) -> tuple[ContentItem, ...]:
    return normalize_many(store.query(collection, field, bundle_id), kind, config).items


def build_snapshot(
    store: DocumentStorePort,
    bundle: BundleDocument,
    config: NormalizerConfig | None = None,
) -> tuple[ContentItem, ...]:
    """
    Content snapshot for a purchase.

    Sources are tried in order and the first yielding at least one item wins:
    detailed list, legacy content arrays, id list resolved against uploads,
    then the bundle/product-box content collections.
    """
    config = config or NormalizerConfig()

    items = _inline_items(
        list(bundle.detailed_content_items), list(bundle.content_items), bundle.id, config
    )
    if items:
        return items

    for field_name in LEGACY_CONTENT_FIELDS:
        entries = bundle.raw.get(field_name)
        if isinstance(entries, list) and entries:
            items = _inline_items(entries, [], bundle.id, config)
            if items:
                return items

    items = _legacy_id_items(store, bundle, config)
    if items:
        return items

    items = _queried_items(store, BUNDLE_CONTENT, "bundleId", bundle.id, "bundle_content", config)
    if items:
        return items

    return _queried_items(
        store, PRODUCT_BOX_CONTENT, "productBoxId", bundle.id, "product_box_content", config
    )


def creator_profile(store: DocumentStorePort, creator_id: str) -> CreatorProfile:
    """Display info for a creator; defaults when the profile is missing."""
    data = store.get(USERS, creator_id)
    if data is None:
        logger.warning("Creator profile %s not found; using defaults", creator_id)
        return CreatorProfile(creator_id=creator_id)
    name = data.get("displayName") or data.get("name") or data.get("username")
    return CreatorProfile(
        creator_id=creator_id,
        name=str(name or "Unknown Creator"),
        username=str(data.get("username") or "unknown"),
    )


# --- Recorder ---


class PurchaseRecorder:
    """
    Idempotent purchase recording.

    All operations key on the payment provider's transaction id.
    """

    def __init__(
        self,
        store: DocumentStorePort,
        clock: TimePort,
        config: PurchasesConfig | None = None,
    ):
        self.store = store
        self.clock = clock
        self.config = config or PurchasesConfig()

    # --- Reads ---

    def get(self, idempotency_key: str) -> PurchaseRecord | None:
        data = self.store.get(PURCHASE_INDEX, idempotency_key)
        return PurchaseRecord.from_document(data) if data is not None else None

    def status(self, idempotency_key: str) -> IndexStatus:
        data = self.store.get(PURCHASE_INDEX, idempotency_key)
        if data is None:
            return "unseen"
        status = data.get("status")
        return status if status in ("pending", "completed", "failed") else "pending"

    def list_for_buyer(self, buyer_id: str) -> list[PurchaseRecord]:
        """Completed purchases of a buyer, newest first."""
        records = [
            PurchaseRecord.from_document(doc)
            for _, doc in self.store.list_documents(buyer_history(buyer_id))
            if doc.get("status") == "completed"
        ]
        return sorted(records, key=lambda r: r.purchased_at.isoformat(), reverse=True)

    # --- Writes ---

    def record(self, event: FulfillmentEvent) -> PurchaseRecord:
        """
        Record a verified purchase.

        Returns the completed record; a redelivered event returns the
        existing record unchanged.

        Raises:
            ValidationError: malformed event
            AnonymousRejectedError: no concrete buyer identity
            NotFoundError: bundle or creator cannot be resolved
            PartialWriteFailureError: a sink write failed; retry the call
        """
        return self.record_with_outcome(event).record

    def record_with_outcome(
        self,
        event: FulfillmentEvent,
        *,
        items: tuple[ContentItem, ...] | None = None,
        apply_counters: bool = True,
    ) -> RecordResult:
        """
        Like ``record`` but also reports whether this call did the work.

        Args:
            event: Verified purchase
            items: Snapshot override (legacy reconciliation)
            apply_counters: False to leave sales/purchase counters untouched
        """
        _validate(event)
        if is_anonymous(event.buyer_id, self.config):
            logger.critical(
                "Anonymous purchase rejected: key=%s bundle=%s buyer=%r",
                event.idempotency_key,
                event.bundle_id,
                event.buyer_id,
            )
            raise AnonymousRejectedError(event.idempotency_key)

        key = event.idempotency_key
        existing = self.store.get(PURCHASE_INDEX, key)
        if existing is not None and existing.get("status") == "completed":
            record = PurchaseRecord.from_document(existing)
            _check_buyer(record, event)
            logger.info("Purchase %s already processed", key)
            return RecordResult(record, "already_processed")

        pending = self._claim(event, items)
        if pending.status == "completed":
            return RecordResult(pending, "already_processed")

        completed = replace(pending, status="completed")
        completed_doc = completed.to_document()
        completed_doc["completedAt"] = self.clock.now_utc().isoformat()

        self._write_sink(
            SINK_CREATOR_LEDGER,
            key,
            creator_ledger(completed.creator_id),
            completed_doc,
            self._creator_counters(completed) if apply_counters else [],
        )
        self._write_sink(
            SINK_BUYER_HISTORY,
            key,
            buyer_history(completed.buyer_id),
            completed_doc,
            self._buyer_counters(completed) if apply_counters else [],
        )
        return self._complete(key, completed_doc)

    # --- Internals ---

    def _claim(
        self, event: FulfillmentEvent, items: tuple[ContentItem, ...] | None
    ) -> PurchaseRecord:
        """
        Create the pending index entry, or adopt the one already there.

        Racing invocations converge on the first writer's snapshot.
        """
        key = event.idempotency_key
        existing = self.store.get(PURCHASE_INDEX, key)
        if existing is not None:
            return self._adopt(existing, event)

        pending = self._build_pending(event, items)
        if self.store.create(PURCHASE_INDEX, key, pending.to_document()):
            logger.info("Purchase %s pending (trigger=%s)", key, event.trigger)
            return pending

        current = self.store.get(PURCHASE_INDEX, key)
        return self._adopt(current or pending.to_document(), event)

    def _adopt(self, data: Document, event: FulfillmentEvent) -> PurchaseRecord:
        record = PurchaseRecord.from_document(data)
        _check_buyer(record, event)
        return record

    def _build_pending(
        self, event: FulfillmentEvent, items: tuple[ContentItem, ...] | None
    ) -> PurchaseRecord:
        bundle = find_bundle(self.store, event.bundle_id)
        if bundle is None:
            raise NotFoundError("bundle", event.bundle_id)

        creator_id = event.creator_id or bundle.creator_id
        if not creator_id:
            raise NotFoundError("creator", f"bundle {event.bundle_id}")

        if items is None:
            items = build_snapshot(self.store, bundle, self.config.normalizer)
        if not items:
            logger.warning(
                "Bundle %s has no resolvable content for %s", bundle.id, event.idempotency_key
            )

        return PurchaseRecord(
            idempotency_key=event.idempotency_key,
            buyer_id=event.buyer_id,
            bundle_id=bundle.id,
            creator_id=creator_id,
            amount_minor_units=event.amount_minor_units or bundle.price_minor_units,
            currency=(event.currency or bundle.currency or self.config.default_currency).lower(),
            status="pending",
            purchased_at=event.purchased_at or self.clock.now_utc(),
            items=items,
            bundle_title=bundle.title or "Untitled Bundle",
            bundle_source=bundle.source,
            trigger=event.trigger,
            buyer_email=event.buyer_email,
            creator_name=creator_profile(self.store, creator_id).name,
        )

    def _creator_counters(self, record: PurchaseRecord) -> list[CounterUpdate]:
        revenue = record.amount_minor_units
        return [
            (USERS, record.creator_id, {"totalSales": 1, "totalRevenue": revenue}),
            (record.bundle_source, record.bundle_id, {"totalSales": 1, "totalRevenue": revenue}),
        ]

    def _buyer_counters(self, record: PurchaseRecord) -> list[CounterUpdate]:
        return [
            (
                USERS,
                record.buyer_id,
                {"totalPurchases": 1, "totalSpent": record.amount_minor_units},
            )
        ]

    def _write_sink(
        self,
        sink: str,
        key: str,
        collection: str,
        document: Document,
        counters: list[CounterUpdate],
    ) -> None:
        entry = {**document, PENDING_COUNTERS: [_counter_label(c) for c in counters]}
        try:
            if not self.store.create(collection, key, entry):
                logger.info("Sink %s already holds %s", sink, key)
            # A retry finishes counters an earlier failed call left pending
            for counter in counters:
                self._apply_counter(collection, key, counter)
        except DocumentStoreError as e:
            logger.exception("Sink %s failed for %s", sink, key)
            self._mark_failed(key, sink, e)
            raise PartialWriteFailureError(key, sink, e) from e

    def _apply_counter(self, collection: str, key: str, counter: CounterUpdate) -> None:
        """Claim one pending counter on a sink entry, then increment it."""
        counter_collection, doc_id, deltas = counter
        label = _counter_label(counter)
        claimed: list[bool] = []

        def claim(doc: Document) -> Document:
            pending = list(doc.get(PENDING_COUNTERS) or [])
            claimed.append(label in pending)
            if label not in pending:
                return doc
            pending.remove(label)
            return {**doc, PENDING_COUNTERS: pending}

        def release(doc: Document) -> Document:
            pending = list(doc.get(PENDING_COUNTERS) or [])
            if label not in pending:
                pending.append(label)
            return {**doc, PENDING_COUNTERS: pending}

        self.store.update(collection, key, claim)
        if not claimed[-1]:
            return
        try:
            self.store.increment(counter_collection, doc_id, deltas)
        except DocumentStoreError:
            self.store.update(collection, key, release)
            raise

    def _complete(self, key: str, completed_doc: Document) -> RecordResult:
        outcome: list[str] = []

        def finish(doc: Document) -> Document:
            # Re-checked under the store's lock right before the terminal write
            if doc.get("status") == "completed":
                outcome.append("already_processed")
                return doc
            outcome.append("recorded")
            return {**doc, **completed_doc}

        try:
            final = self.store.update(PURCHASE_INDEX, key, finish)
        except DocumentStoreError as e:
            logger.exception("Sink %s failed for %s", SINK_PURCHASE_INDEX, key)
            self._mark_failed(key, SINK_PURCHASE_INDEX, e)
            raise PartialWriteFailureError(key, SINK_PURCHASE_INDEX, e) from e

        record = PurchaseRecord.from_document(final)
        if outcome[-1] == "recorded":
            logger.info(
                "Purchase %s completed: buyer=%s bundle=%s items=%d",
                key,
                record.buyer_id,
                record.bundle_id,
                record.total_items,
            )
            return RecordResult(record, "recorded")
        return RecordResult(record, "already_processed")

    def _mark_failed(self, key: str, sink: str, error: Exception) -> None:
        def fail(doc: Document) -> Document:
            if doc.get("status") == "completed":
                return doc
            return {**doc, "status": "failed", "failedSink": sink, "failureReason": str(error)}

        try:
            self.store.update(PURCHASE_INDEX, key, fail)
        except DocumentStoreError:
            logger.exception("Could not mark purchase %s failed", key)


# --- Configuration Loader ---


def load_config_from_rules(rules: Rules) -> PurchasesConfig:
    """Build PurchasesConfig from validated rules."""
    return PurchasesConfig(
        anonymous_sentinels=frozenset(s.lower() for s in rules.fulfillment.anonymous_sentinels),
        default_currency=rules.purchases.default_currency,
        normalizer=load_normalizer_config(rules),
    )
