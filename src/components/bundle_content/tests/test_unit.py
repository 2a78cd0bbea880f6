"""
Unit tests for the bundle content component.

Tests:
- quota boundary (free 10 / existing 8 / 5 candidates -> 2 added, 3 skipped)
- unlimited tier
- dangling and unusable candidates are skipped, never stored
- creator-upload fallback by uploadId
- aggregate consistency with the detailed list
- concurrent writers cannot exceed the quota
"""

import threading
from datetime import UTC, datetime
from typing import Any

import pytest

from src.adapters.memory_store import InMemoryDocumentStore
from src.components.bundle_content import (
    AddContentInput,
    add_content,
    compute_metadata,
    get_content,
    resolve_candidate,
    run,
)
from src.components.normalizer import Rejected
from src.components.tiers import FREE_TIER, PRO_TIER
from src.core.entities import ContentItem, TierInfo
from src.core.errors import NotFoundError, QuotaExceededError, ValidationError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _upload(n: int, **extra: Any) -> dict[str, Any]:
    return {
        "fileUrl": f"https://cdn.example.com/up-{n}.mp4",
        "mimeType": "video/mp4",
        "filename": f"clip-{n}.mp4",
        "fileSize": 100 * n,
        "duration": 10,
        **extra,
    }


def _existing_item(n: int) -> dict[str, Any]:
    return ContentItem(
        id=f"old-{n}",
        title=f"Old {n}",
        display_title=f"Old {n}",
        file_url=f"https://cdn.example.com/old-{n}.pdf",
        mime_type="application/pdf",
        content_type="document",
        file_size_bytes=50,
    ).to_document()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    for n in range(1, 8):
        store.set("uploads", f"up-{n}", _upload(n))
    return store


def _bundle(store: InMemoryDocumentStore, existing: int, bundle_id: str = "b1") -> None:
    store.set(
        "bundles",
        bundle_id,
        {
            "title": "Starter pack",
            "creatorId": "creator-1",
            "contentItems": [f"old-{n}" for n in range(existing)],
            "detailedContentItems": [_existing_item(n) for n in range(existing)],
        },
    )


# --- Quota ---


class TestQuota:
    def test_partial_add_at_boundary(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=8)
        result = add_content(
            store, "b1", ["up-1", "up-2", "up-3", "up-4", "up-5"], FREE_TIER, now_utc=NOW
        )

        assert result.added == ("up-1", "up-2")
        assert result.skipped_for_quota == ("up-3", "up-4", "up-5")
        assert result.total_items == 10
        assert result.message == "2 added, 3 skipped due to quota"

        doc = store.get("bundles", "b1")
        assert doc is not None
        assert len(doc["contentItems"]) == 10
        assert len(doc["detailedContentItems"]) == 10

    def test_unlimited_tier_adds_everything(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=8)
        result = add_content(
            store, "b1", ["up-1", "up-2", "up-3", "up-4", "up-5"], PRO_TIER, now_utc=NOW
        )
        assert result.added_count == 5
        assert result.skipped_count == 0
        assert result.total_items == 13

    def test_full_bundle_raises(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=10)
        with pytest.raises(QuotaExceededError) as exc:
            add_content(store, "b1", ["up-1"], FREE_TIER, now_utc=NOW)
        assert exc.value.limit == 10

        doc = store.get("bundles", "b1")
        assert doc is not None
        assert len(doc["contentItems"]) == 10

    def test_concurrent_writers_respect_quota(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=8)
        tier = TierInfo(plan="free", max_content_items_per_bundle=10)
        errors: list[Exception] = []

        def worker(ids: list[str]) -> None:
            try:
                add_content(store, "b1", ids, tier, now_utc=NOW)
            except QuotaExceededError as e:
                errors.append(e)

        threads = [
            threading.Thread(target=worker, args=(["up-1", "up-2"],)),
            threading.Thread(target=worker, args=(["up-3", "up-4"],)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        doc = store.get("bundles", "b1")
        assert doc is not None
        assert len(doc["contentItems"]) == 10
        assert len(doc["detailedContentItems"]) == 10


# --- Resolution ---


class TestResolution:
    def test_dangling_reference_skipped(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=0)
        result = add_content(store, "b1", ["up-1", "missing"], FREE_TIER, now_utc=NOW)

        assert result.added == ("up-1",)
        assert [r.source_id for r in result.rejected] == ["missing"]
        doc = store.get("bundles", "b1")
        assert doc is not None
        assert doc["contentItems"] == ["up-1"]

    def test_unusable_url_skipped(self, store: InMemoryDocumentStore) -> None:
        store.set("uploads", "broken", {"title": "No file", "fileUrl": "local/path"})
        _bundle(store, existing=0)
        result = add_content(store, "b1", ["broken"], FREE_TIER, now_utc=NOW)

        assert result.added == ()
        assert result.rejected[0].reason == "no usable file URL"
        doc = store.get("bundles", "b1")
        assert doc is not None
        assert doc["contentItems"] == []

    def test_creator_upload_fallback(self, store: InMemoryDocumentStore) -> None:
        store.set(
            "creatorUploads",
            "cu-1",
            {
                "uploadId": "legacy-9",
                "fileUrl": "https://cdn.example.com/l9.mp3",
                "mimeType": "audio/mpeg",
            },
        )
        item = resolve_candidate(store, "legacy-9")
        assert isinstance(item, ContentItem)
        assert item.id == "legacy-9"
        assert item.content_type == "audio"
        assert item.source == "creator_upload"

    def test_not_found(self, store: InMemoryDocumentStore) -> None:
        assert isinstance(resolve_candidate(store, "nope"), Rejected)

    def test_already_present_not_duplicated(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=0)
        add_content(store, "b1", ["up-1"], FREE_TIER, now_utc=NOW)
        result = add_content(store, "b1", ["up-1", "up-2"], FREE_TIER, now_utc=NOW)

        assert result.added == ("up-2",)
        assert result.already_present == ("up-1",)
        doc = store.get("bundles", "b1")
        assert doc is not None
        assert doc["contentItems"] == ["up-1", "up-2"]


# --- Validation ---


class TestValidation:
    def test_empty_candidates(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=0)
        with pytest.raises(ValidationError):
            add_content(store, "b1", [], FREE_TIER)

    def test_non_string_candidates_ignored(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=0)
        with pytest.raises(ValidationError):
            add_content(store, "b1", [None, 3, "  "], FREE_TIER)

    def test_missing_bundle(self, store: InMemoryDocumentStore) -> None:
        with pytest.raises(NotFoundError):
            add_content(store, "nope", ["up-1"], FREE_TIER)


# --- Aggregate ---


class TestMetadata:
    def test_aggregate_matches_detailed_list(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=2)
        result = add_content(store, "b1", ["up-1", "up-2"], FREE_TIER, now_utc=NOW)

        doc = store.get("bundles", "b1")
        assert doc is not None
        meta = doc["contentMetadata"]
        assert meta["totalItems"] == len(doc["detailedContentItems"]) == 4
        assert meta["totalSize"] == sum(d["fileSize"] for d in doc["detailedContentItems"])
        assert meta["contentBreakdown"] == {"video": 2, "audio": 0, "image": 0, "document": 2}
        assert meta["formats"] == ["mp4", "pdf"]
        assert meta["lastUpdated"] == NOW.isoformat()
        assert doc["contentUrls"][-1] == "https://cdn.example.com/up-2.mp4"
        assert result.content_metadata is not None
        assert result.content_metadata.total_items == 4

    def test_deterministic(self) -> None:
        items = [ContentItem.from_document(_existing_item(n)) for n in range(3)]
        assert compute_metadata(items, NOW) == compute_metadata(list(items), NOW)

    def test_empty(self) -> None:
        meta = compute_metadata([])
        assert meta.total_items == 0
        assert meta.total_size_formatted == "0 Bytes"


# --- Read model ---


class TestGetContent:
    def test_product_box_fallback(self, store: InMemoryDocumentStore) -> None:
        store.set(
            "productBoxes",
            "pb1",
            {
                "title": "Legacy box",
                "userId": "creator-2",
                "detailedContentItems": [_existing_item(1)],
            },
        )
        view = get_content(store, "pb1")
        assert view.source == "productBoxes"
        assert view.creator_id == "creator-2"
        assert view.content_metadata.total_items == 1

    def test_missing(self, store: InMemoryDocumentStore) -> None:
        with pytest.raises(NotFoundError):
            get_content(store, "nope")


class TestRun:
    def test_run_dispatches(self, store: InMemoryDocumentStore) -> None:
        _bundle(store, existing=0)
        request = AddContentInput(bundle_id="b1", candidate_ids=("up-1",), tier=FREE_TIER)
        result = run(request, store)
        assert result.added == ("up-1",)
