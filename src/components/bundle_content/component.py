"""
Bundle content component.

Appends uploads to a bundle under the owner's tier quota. The bundle
document is only ever written through one atomic ``update`` and the quota
is re-applied inside it, so concurrent writers on the same bundle cannot
push it past its limit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from src.components.normalizer import (
    NormalizerConfig,
    Rejected,
    SourceRecord,
    format_duration,
    format_file_size,
    normalize,
)
from src.components.tiers import remaining_capacity
from src.core.collections import BUNDLES, CREATOR_UPLOADS, UPLOADS, find_bundle
from src.core.entities import (
    CONTENT_TYPES,
    ContentItem,
    ContentMetadata,
    TierInfo,
)
from src.core.errors import NotFoundError, QuotaExceededError, ValidationError
from src.core.ports.db import Document, DocumentNotFoundError, DocumentStorePort

from .models import AddContentInput, AddContentOutput, BundleContentView

logger = logging.getLogger(__name__)


# --- Pure helpers ---


def compute_metadata(
    items: Sequence[ContentItem], now_utc: datetime | None = None
) -> ContentMetadata:
    """
    Aggregate over a full detailed content list.

    Deterministic for a given list and timestamp; ``total_items`` always
    equals ``len(items)``.
    """
    breakdown = {content_type: 0 for content_type in CONTENT_TYPES}
    for item in items:
        breakdown[item.content_type] += 1

    total_size = sum(item.file_size_bytes for item in items)
    total_duration = sum(item.duration_seconds for item in items)

    return ContentMetadata(
        total_items=len(items),
        total_size=total_size,
        total_duration=total_duration,
        content_breakdown=breakdown,
        formats=tuple(sorted({item.format for item in items})),
        qualities=tuple(sorted({item.resolution for item in items if item.resolution})),
        tags=tuple(sorted({tag for item in items for tag in item.tags})),
        total_size_formatted=format_file_size(total_size),
        total_duration_formatted=format_duration(total_duration),
        last_updated=now_utc,
    )


def _dedupe(candidate_ids: Iterable[Any]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for candidate in candidate_ids:
        if not isinstance(candidate, str) or not candidate.strip():
            continue
        candidate = candidate.strip()
        if candidate not in seen:
            seen.add(candidate)
            result.append(candidate)
    return result


def _bundle_fields(
    content_ids: list[str], detailed: list[Document], now_utc: datetime
) -> dict[str, Any]:
    """Every bundle field derived from the content lists."""
    items = [ContentItem.from_document(d) for d in detailed]
    metadata = compute_metadata(items, now_utc)
    return {
        "contentItems": content_ids,
        "detailedContentItems": detailed,
        "contentMetadata": metadata.to_document(),
        "contentTitles": [item.title for item in items],
        "contentDescriptions": [item.description for item in items if item.description],
        "contentTags": list(metadata.tags),
        "contentUrls": [item.file_url for item in items],
        "contentThumbnails": [item.thumbnail_url for item in items if item.thumbnail_url],
        "updatedAt": now_utc.isoformat(),
    }


# --- Candidate resolution ---


def resolve_candidate(
    store: DocumentStorePort,
    content_id: str,
    config: NormalizerConfig | None = None,
) -> ContentItem | Rejected:
    """
    Resolve an upload id to a ContentItem.

    Looks in uploads by id, then in creator uploads by their ``uploadId``.
    """
    upload = store.get(UPLOADS, content_id)
    if upload is not None:
        return normalize(SourceRecord(kind="upload", data=upload), content_id, config)

    matches = store.query(CREATOR_UPLOADS, "uploadId", content_id, limit=1)
    if matches:
        _, data = matches[0]
        return normalize(SourceRecord(kind="creator_upload", data=data), content_id, config)

    return Rejected(source_id=content_id, kind="upload", reason="not found")


# --- Main operations ---


def add_content(
    store: DocumentStorePort,
    bundle_id: str,
    candidate_ids: Iterable[Any],
    tier: TierInfo,
    config: NormalizerConfig | None = None,
    now_utc: datetime | None = None,
) -> AddContentOutput:
    """
    Append candidates to a bundle, up to the tier's remaining capacity.

    Args:
        store: Document store holding bundles and uploads
        bundle_id: Target bundle
        candidate_ids: Upload ids, in the order the creator picked them
        tier: Owner's tier
        config: Optional normalizer config
        now_utc: Timestamp for the aggregate (defaults to now)

    Returns:
        AddContentOutput with added / skipped / rejected ids

    Raises:
        ValidationError: if no candidate ids were given
        NotFoundError: if the bundle does not exist
        QuotaExceededError: if the bundle is already at its limit
    """
    now_utc = now_utc or datetime.now(UTC)
    candidates = _dedupe(candidate_ids)
    if not candidates:
        raise ValidationError("Content IDs must be a non-empty list", field="contentIds")

    current = store.get(BUNDLES, bundle_id)
    if current is None:
        raise NotFoundError("bundle", bundle_id)

    existing = {str(i) for i in current.get("contentItems") or []}
    fresh = [c for c in candidates if c not in existing]
    already_present = [c for c in candidates if c in existing]

    if not fresh:
        return AddContentOutput(
            bundle_id=bundle_id,
            already_present=tuple(already_present),
            total_items=len(existing),
        )

    remaining = remaining_capacity(tier, len(existing))
    if remaining == 0:
        raise QuotaExceededError(bundle_id, tier.max_content_items_per_bundle or 0)

    retained = fresh if remaining is None else fresh[:remaining]
    skipped = [] if remaining is None else fresh[remaining:]

    resolved: list[ContentItem] = []
    rejected: list[Rejected] = []
    for content_id in retained:
        result = resolve_candidate(store, content_id, config)
        if isinstance(result, Rejected):
            logger.warning(
                "Skipping content %s for bundle %s: %s", content_id, bundle_id, result.reason
            )
            rejected.append(result)
        else:
            resolved.append(result)

    if not resolved:
        return AddContentOutput(
            bundle_id=bundle_id,
            skipped_for_quota=tuple(skipped),
            already_present=tuple(already_present),
            rejected=tuple(rejected),
            total_items=len(existing),
        )

    added: list[str] = []
    late_skipped: list[str] = []
    late_present: list[str] = []

    def mutate(doc: Document) -> Document:
        # Runs under the store's lock; state may have moved since the read above
        added.clear()
        late_skipped.clear()
        late_present.clear()

        content_ids = [str(i) for i in doc.get("contentItems") or []]
        detailed = [d for d in doc.get("detailedContentItems") or [] if isinstance(d, dict)]
        present = set(content_ids)

        to_add: list[ContentItem] = []
        for item in resolved:
            if item.id in present:
                late_present.append(item.id)
            else:
                to_add.append(item)

        capacity = remaining_capacity(tier, len(content_ids))
        if capacity is not None:
            if capacity == 0 and to_add:
                raise QuotaExceededError(bundle_id, tier.max_content_items_per_bundle or 0)
            late_skipped.extend(item.id for item in to_add[capacity:])
            to_add = to_add[:capacity]

        for item in to_add:
            content_ids.append(item.id)
            detailed.append(item.to_document())
            added.append(item.id)

        return {**doc, **_bundle_fields(content_ids, detailed, now_utc)}

    try:
        updated = store.update(BUNDLES, bundle_id, mutate)
    except DocumentNotFoundError as e:
        raise NotFoundError("bundle", bundle_id) from e

    output = AddContentOutput(
        bundle_id=bundle_id,
        added=tuple(added),
        skipped_for_quota=tuple(skipped + late_skipped),
        already_present=tuple(already_present + late_present),
        rejected=tuple(rejected),
        total_items=len(updated["contentItems"]),
        content_metadata=compute_metadata(
            [ContentItem.from_document(d) for d in updated["detailedContentItems"]], now_utc
        ),
    )
    logger.info("Bundle %s: %s", bundle_id, output.message)
    return output


def get_content(store: DocumentStorePort, bundle_id: str) -> BundleContentView:
    """
    Content view of a bundle or legacy product box.

    Raises:
        NotFoundError: if neither collection has the id
    """
    bundle = find_bundle(store, bundle_id)
    if bundle is None:
        raise NotFoundError("bundle", bundle_id)

    items = tuple(ContentItem.from_document(d) for d in bundle.detailed_content_items)
    return BundleContentView(
        bundle_id=bundle.id,
        title=bundle.title,
        creator_id=bundle.creator_id,
        source=bundle.source,
        items=items,
        content_metadata=compute_metadata(items),
    )


# --- Run Function (Atomic Component Pattern) ---


def run(
    input_data: AddContentInput,
    store: DocumentStorePort,
    config: NormalizerConfig | None = None,
) -> AddContentOutput:
    """Entry point following the atomic component pattern."""
    return add_content(
        store, input_data.bundle_id, input_data.candidate_ids, input_data.tier, config
    )
