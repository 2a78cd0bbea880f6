"""
Unit tests for the purchase recorder component.

Tests:
- exactly-once recording and counters under redelivery
- anonymous and malformed events rejected before any write
- snapshot source precedence
- partial write failure marks the index failed and a retry completes it
- a counter increment that failed is applied by the retry, exactly once
- a purchase claimed by one buyer is never completed for another
- a completed index entry is never downgraded
"""

import logging
from datetime import UTC, datetime
from typing import Any

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.memory_store import InMemoryDocumentStore
from src.components.purchases import (
    PurchaseRecorder,
    PurchasesConfig,
    build_snapshot,
    creator_profile,
    is_anonymous,
)
from src.core.entities import BundleDocument, FulfillmentEvent
from src.core.errors import (
    AnonymousRejectedError,
    NotFoundError,
    PartialWriteFailureError,
    UnauthorizedError,
    ValidationError,
)
from src.core.ports.db import Document, DocumentStoreError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class FlakyStore(InMemoryDocumentStore):
    """Fails ``create`` for collections starting with a prefix, a set number of times."""

    def __init__(self, fail_prefix: str, failures: int = 1) -> None:
        super().__init__()
        self.fail_prefix = fail_prefix
        self.failures = failures

    def create(self, collection: str, doc_id: str, data: Document) -> bool:
        if collection.startswith(self.fail_prefix) and self.failures > 0:
            self.failures -= 1
            raise DocumentStoreError("disk full")
        return super().create(collection, doc_id, data)


class FlakyCounterStore(InMemoryDocumentStore):
    """Fails ``increment`` on one document, a set number of times."""

    def __init__(self, fail_doc_id: str, failures: int = 1) -> None:
        super().__init__()
        self.fail_doc_id = fail_doc_id
        self.failures = failures

    def increment(self, collection: str, doc_id: str, deltas: Any) -> None:
        if doc_id == self.fail_doc_id and self.failures > 0:
            self.failures -= 1
            raise DocumentStoreError("counter write lost")
        super().increment(collection, doc_id, deltas)


class BrokenStore(InMemoryDocumentStore):
    def create(self, collection: str, doc_id: str, data: Document) -> bool:
        if collection.startswith("creatorSales/"):
            raise TypeError("unexpected argument")
        return super().create(collection, doc_id, data)


def _item(n: int) -> dict[str, Any]:
    return {
        "id": f"c{n}",
        "title": f"Clip {n}.mp4",
        "fileUrl": f"https://cdn.example.com/c{n}.mp4",
        "mimeType": "video/mp4",
        "fileSize": 1000,
    }


def _seed(store: InMemoryDocumentStore, **bundle_overrides: Any) -> None:
    store.set(
        "bundles",
        "b1",
        {
            "title": "Starter pack",
            "creatorId": "creator-1",
            "priceMinorUnits": 1500,
            "contentItems": ["c1", "c2"],
            "detailedContentItems": [_item(1), _item(2)],
            **bundle_overrides,
        },
    )
    store.set("users", "creator-1", {"displayName": "Ada", "username": "ada"})


def _event(**overrides: Any) -> FulfillmentEvent:
    values: dict[str, Any] = {
        "idempotency_key": "cs_test_1",
        "buyer_id": "buyer-1",
        "bundle_id": "b1",
        "amount_minor_units": 1500,
        "currency": "usd",
        "buyer_email": "buyer@example.com",
    }
    values.update(overrides)
    return FulfillmentEvent(**values)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    _seed(store)
    return store


@pytest.fixture
def recorder(store: InMemoryDocumentStore) -> PurchaseRecorder:
    return PurchaseRecorder(store, FrozenClock(NOW))


# --- Exactly once ---


class TestIdempotency:
    def test_first_record_writes_every_sink(
        self, store: InMemoryDocumentStore, recorder: PurchaseRecorder
    ) -> None:
        result = recorder.record_with_outcome(_event())

        assert result.outcome == "recorded"
        assert result.record.status == "completed"
        assert result.record.total_items == 2
        assert result.record.creator_name == "Ada"

        index = store.get("bundlePurchases", "cs_test_1")
        assert index is not None and index["status"] == "completed"
        assert store.get("userPurchases/buyer-1/purchases", "cs_test_1") is not None
        assert store.get("creatorSales/creator-1/sales", "cs_test_1") is not None

    def test_redelivery_is_a_no_op(
        self, store: InMemoryDocumentStore, recorder: PurchaseRecorder
    ) -> None:
        first = recorder.record(_event())
        second = recorder.record_with_outcome(_event(trigger="client_verify"))

        assert second.already_processed
        assert second.record == first

        creator = store.get("users", "creator-1")
        buyer = store.get("users", "buyer-1")
        bundle = store.get("bundles", "b1")
        assert creator is not None and buyer is not None and bundle is not None
        assert creator["totalSales"] == 1
        assert creator["totalRevenue"] == 1500
        assert buyer["totalPurchases"] == 1
        assert buyer["totalSpent"] == 1500
        assert bundle["totalSales"] == 1

    def test_pending_entry_snapshot_is_reused(
        self, store: InMemoryDocumentStore, recorder: PurchaseRecorder
    ) -> None:
        # A concurrent invocation already claimed the key with a one-item snapshot
        store.set(
            "bundlePurchases",
            "cs_test_1",
            {
                "idempotencyKey": "cs_test_1",
                "buyerUid": "buyer-1",
                "bundleId": "b1",
                "creatorId": "creator-1",
                "amountMinorUnits": 1500,
                "status": "pending",
                "purchasedAt": NOW.isoformat(),
                "items": [_item(9)],
            },
        )
        record = recorder.record(_event())
        assert [i.id for i in record.items] == ["c9"]
        assert record.status == "completed"


# --- Rejections ---


class TestRejections:
    @pytest.mark.parametrize("buyer", ["", "  ", "anonymous", "Guest", "guest_1712", "null"])
    def test_anonymous_rejected(
        self,
        store: InMemoryDocumentStore,
        recorder: PurchaseRecorder,
        caplog: pytest.LogCaptureFixture,
        buyer: str,
    ) -> None:
        with caplog.at_level(logging.CRITICAL):
            with pytest.raises(AnonymousRejectedError):
                recorder.record(_event(buyer_id=buyer))

        assert store.get("bundlePurchases", "cs_test_1") is None
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    def test_is_anonymous_custom_sentinels(self) -> None:
        config = PurchasesConfig(anonymous_sentinels=frozenset({"nobody"}))
        assert is_anonymous("nobody", config)
        assert not is_anonymous("buyer-1", config)

    @pytest.mark.parametrize(
        "overrides",
        [{"idempotency_key": ""}, {"bundle_id": ""}, {"amount_minor_units": -1}],
    )
    def test_malformed_event(self, recorder: PurchaseRecorder, overrides: dict[str, Any]) -> None:
        with pytest.raises(ValidationError):
            recorder.record(_event(**overrides))

    def test_pending_entry_of_another_buyer(
        self, store: InMemoryDocumentStore, recorder: PurchaseRecorder
    ) -> None:
        recorder._claim(_event(), None)

        with pytest.raises(UnauthorizedError):
            recorder.record(_event(buyer_id="buyer-2"))
        assert recorder.status("cs_test_1") == "pending"
        assert store.get("userPurchases/buyer-2/purchases", "cs_test_1") is None

    def test_completed_entry_of_another_buyer(self, recorder: PurchaseRecorder) -> None:
        recorder.record(_event())
        with pytest.raises(UnauthorizedError):
            recorder.record(_event(buyer_id="buyer-2"))

    def test_unknown_bundle(self, recorder: PurchaseRecorder) -> None:
        with pytest.raises(NotFoundError):
            recorder.record(_event(bundle_id="missing"))

    def test_unresolvable_creator(self, store: InMemoryDocumentStore) -> None:
        store.set("bundles", "orphan", {"title": "No owner"})
        recorder = PurchaseRecorder(store, FrozenClock(NOW))
        with pytest.raises(NotFoundError):
            recorder.record(_event(bundle_id="orphan"))


# --- Failures ---


class TestPartialFailure:
    def test_failed_sink_marks_index_failed_then_retry_completes(self) -> None:
        store = FlakyStore("userPurchases/")
        _seed(store)
        recorder = PurchaseRecorder(store, FrozenClock(NOW))

        with pytest.raises(PartialWriteFailureError) as exc:
            recorder.record(_event())
        assert exc.value.sink == "buyer_history"
        assert exc.value.retryable
        assert recorder.status("cs_test_1") == "failed"

        record = recorder.record(_event())
        assert record.status == "completed"
        assert recorder.status("cs_test_1") == "completed"

        creator = store.get("users", "creator-1")
        buyer = store.get("users", "buyer-1")
        assert creator is not None and buyer is not None
        assert creator["totalSales"] == 1
        assert buyer["totalPurchases"] == 1

    def test_failed_counter_applied_on_retry(self) -> None:
        store = FlakyCounterStore("buyer-1")
        _seed(store)
        recorder = PurchaseRecorder(store, FrozenClock(NOW))

        with pytest.raises(PartialWriteFailureError) as exc:
            recorder.record(_event())
        assert exc.value.sink == "buyer_history"
        assert store.get("users", "buyer-1") is None

        assert recorder.record(_event()).status == "completed"
        recorder.record(_event())

        buyer = store.get("users", "buyer-1")
        creator = store.get("users", "creator-1")
        assert buyer is not None and creator is not None
        assert buyer["totalPurchases"] == 1
        assert buyer["totalSpent"] == 1500
        assert creator["totalSales"] == 1
        entry = store.get("userPurchases/buyer-1/purchases", "cs_test_1")
        assert entry is not None and entry["pendingCounters"] == []

    def test_programming_errors_are_not_partial_writes(self) -> None:
        store = BrokenStore()
        _seed(store)
        recorder = PurchaseRecorder(store, FrozenClock(NOW))

        with pytest.raises(TypeError):
            recorder.record(_event())
        assert recorder.status("cs_test_1") == "pending"

    def test_completed_never_downgraded(self, store: InMemoryDocumentStore) -> None:
        recorder = PurchaseRecorder(store, FrozenClock(NOW))
        recorder.record(_event())
        recorder._mark_failed("cs_test_1", "buyer_history", RuntimeError("late"))
        assert recorder.status("cs_test_1") == "completed"


# --- Snapshot ---


class TestSnapshot:
    def _bundle(self, store: InMemoryDocumentStore, data: dict[str, Any]) -> BundleDocument:
        store.set("bundles", "bx", data)
        stored = store.get("bundles", "bx")
        assert stored is not None
        return BundleDocument.from_document("bx", stored)

    def test_detailed_list_first(self, store: InMemoryDocumentStore) -> None:
        bundle = self._bundle(store, {"detailedContentItems": [_item(1)], "contents": [_item(2)]})
        assert [i.id for i in build_snapshot(store, bundle)] == ["c1"]

    def test_legacy_content_array(self, store: InMemoryDocumentStore) -> None:
        bundle = self._bundle(store, {"videos": [_item(3)]})
        assert [i.id for i in build_snapshot(store, bundle)] == ["c3"]

    def test_id_list_resolved_against_uploads(self, store: InMemoryDocumentStore) -> None:
        store.set(
            "uploads", "u7", {"fileUrl": "https://cdn.example.com/u7.png", "mimeType": "image/png"}
        )
        bundle = self._bundle(store, {"contentItems": ["u7", "gone"]})
        items = build_snapshot(store, bundle)
        assert [i.id for i in items] == ["u7"]
        assert items[0].content_type == "image"

    def test_parallel_url_arrays(self, store: InMemoryDocumentStore) -> None:
        bundle = self._bundle(
            store,
            {
                "contentItems": ["x1"],
                "contentUrls": ["https://cdn.example.com/x1.mp4"],
                "contentTitles": ["First"],
            },
        )
        items = build_snapshot(store, bundle)
        assert items[0].title == "First"

    def test_content_collections_last(self, store: InMemoryDocumentStore) -> None:
        store.set(
            "productBoxContent",
            "pbc1",
            {"productBoxId": "bx", "fileUrl": "https://cdn.example.com/p.pdf", "title": "Guide"},
        )
        bundle = self._bundle(store, {"title": "Empty"})
        items = build_snapshot(store, bundle)
        assert [i.id for i in items] == ["pbc1"]
        assert items[0].source == "product_box_content"

    def test_product_box_bundle(self, store: InMemoryDocumentStore) -> None:
        store.set(
            "productBoxes",
            "pb1",
            {"title": "Box", "creatorId": "creator-1", "price": 9.99, "contents": [_item(4)]},
        )
        record = PurchaseRecorder(store, FrozenClock(NOW)).record(
            _event(bundle_id="pb1", amount_minor_units=0)
        )
        assert record.bundle_source == "productBoxes"
        assert record.amount_minor_units == 999
        assert store.get("productBoxes", "pb1")["totalSales"] == 1


# --- Reads ---


class TestReads:
    def test_status_lifecycle(self, recorder: PurchaseRecorder) -> None:
        assert recorder.status("cs_test_1") == "unseen"
        recorder.record(_event())
        assert recorder.status("cs_test_1") == "completed"
        record = recorder.get("cs_test_1")
        assert record is not None
        assert record.buyer_email == "buyer@example.com"

    def test_list_for_buyer(self, recorder: PurchaseRecorder) -> None:
        recorder.record(
            _event(idempotency_key="cs_a", purchased_at=datetime(2024, 1, 1, tzinfo=UTC))
        )
        recorder.record(
            _event(idempotency_key="cs_b", purchased_at=datetime(2024, 2, 1, tzinfo=UTC))
        )
        keys = [r.idempotency_key for r in recorder.list_for_buyer("buyer-1")]
        assert keys == ["cs_b", "cs_a"]
        assert recorder.list_for_buyer("someone-else") == []

    def test_creator_profile_defaults(self, store: InMemoryDocumentStore) -> None:
        profile = creator_profile(store, "ghost")
        assert profile.name == "Unknown Creator"

    def test_apply_counters_false(self, store: InMemoryDocumentStore) -> None:
        recorder = PurchaseRecorder(store, FrozenClock(NOW))
        recorder.record_with_outcome(_event(), apply_counters=False)
        assert "totalSales" not in (store.get("users", "creator-1") or {})
        assert store.get("users", "buyer-1") is None
