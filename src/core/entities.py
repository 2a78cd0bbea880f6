"""
Domain entities for the bundle fulfillment core.

Entities are immutable dataclasses. Stores hold plain documents with
camelCase keys (the shape the legacy collections already use), so every
entity carries a ``to_document`` / ``from_document`` pair.

- ContentItem: one normalized file
- ContentMetadata: aggregate derived from a bundle's detailed content list
- BundleDocument: creator-owned purchasable collection
- PurchaseRecord: canonical receipt of one transaction
- TierInfo: quota snapshot for a buyer/creator
- FulfillmentEvent: verified payment event handed to the recorder
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ContentType = Literal["video", "audio", "image", "document"]
PurchaseStatus = Literal["pending", "completed", "failed"]
Plan = Literal["free", "pro"]
Trigger = Literal["webhook", "client_verify", "client_poll", "legacy_reconcile"]

CONTENT_TYPES: tuple[ContentType, ...] = ("video", "audio", "image", "document")


# --- Document helpers ---


def _as_int(value: Any) -> int:
    """Best-effort non-negative int; anything unusable becomes 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(0, int(value))
    return 0


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return max(0.0, float(value))


def _dt_to_doc(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_from_doc(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


# --- ContentItem ---


def content_type_for_mime(mime_type: str) -> ContentType:
    """Content type from the MIME prefix alone."""
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type.startswith("image/"):
        return "image"
    return "document"


@dataclass(frozen=True)
class ContentItem:
    """
    Canonical content descriptor.

    Invariants:
    - file_url is an absolute URL with an allowed scheme
    - never mutated; merges build a new item
    """

    id: str
    title: str
    display_title: str
    file_url: str
    mime_type: str
    content_type: ContentType
    file_size_bytes: int = 0
    duration_seconds: float = 0.0
    thumbnail_url: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)
    creator_id: str | None = None
    created_at: datetime | None = None
    filename: str = ""
    description: str = ""
    resolution: str = ""
    source: str = ""

    @property
    def format(self) -> str:
        """MIME subtype, e.g. ``mp4`` for ``video/mp4``."""
        _, _, subtype = self.mime_type.partition("/")
        return subtype or "unknown"

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "displayTitle": self.display_title,
            "fileUrl": self.file_url,
            "mimeType": self.mime_type,
            "contentType": self.content_type,
            "fileSize": self.file_size_bytes,
            "duration": self.duration_seconds,
            "thumbnailUrl": self.thumbnail_url,
            "tags": sorted(self.tags),
            "creatorId": self.creator_id,
            "createdAt": _dt_to_doc(self.created_at),
            "filename": self.filename,
            "description": self.description,
            "resolution": self.resolution,
            "source": self.source,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> ContentItem:
        """Rehydrate an item previously written by ``to_document``."""
        mime_type = str(data.get("mimeType") or data.get("fileType") or "application/octet-stream")
        content_type = data.get("contentType")
        if content_type not in CONTENT_TYPES:
            content_type = content_type_for_mime(mime_type)
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            display_title=str(data.get("displayTitle") or data.get("title", "")),
            file_url=str(data.get("fileUrl", "")),
            mime_type=mime_type,
            content_type=content_type,
            file_size_bytes=_as_int(data.get("fileSize")),
            duration_seconds=_as_float(data.get("duration")),
            thumbnail_url=str(data.get("thumbnailUrl") or ""),
            tags=frozenset(t for t in data.get("tags") or [] if isinstance(t, str)),
            creator_id=data.get("creatorId"),
            created_at=_dt_from_doc(data.get("createdAt")),
            filename=str(data.get("filename") or ""),
            description=str(data.get("description") or ""),
            resolution=str(data.get("resolution") or ""),
            source=str(data.get("source") or ""),
        )


# --- ContentMetadata ---


@dataclass(frozen=True)
class ContentMetadata:
    """Aggregate over a bundle's detailed content list."""

    total_items: int = 0
    total_size: int = 0
    total_duration: float = 0.0
    content_breakdown: dict[str, int] = field(
        default_factory=lambda: {t: 0 for t in CONTENT_TYPES}
    )
    formats: tuple[str, ...] = ()
    qualities: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    total_size_formatted: str = "0 Bytes"
    total_duration_formatted: str = "0:00"
    last_updated: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "totalItems": self.total_items,
            "totalSize": self.total_size,
            "totalSizeFormatted": self.total_size_formatted,
            "totalDuration": self.total_duration,
            "totalDurationFormatted": self.total_duration_formatted,
            "contentBreakdown": dict(self.content_breakdown),
            "formats": list(self.formats),
            "qualities": list(self.qualities),
            "tags": list(self.tags),
            "lastUpdated": _dt_to_doc(self.last_updated),
        }


# --- BundleDocument ---


@dataclass(frozen=True)
class BundleDocument:
    """
    Creator-owned bundle.

    Invariant: len(detailed_content_items) == len(content_items).
    ``raw`` keeps the stored document so legacy content fields stay
    reachable for snapshot fallbacks.
    """

    id: str
    title: str
    creator_id: str | None
    description: str = ""
    price_minor_units: int = 0
    currency: str = "usd"
    active: bool = True
    content_items: tuple[str, ...] = ()
    detailed_content_items: tuple[dict[str, Any], ...] = ()
    content_metadata: dict[str, Any] = field(default_factory=dict)
    source: str = "bundles"
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_document(
        cls, doc_id: str, data: dict[str, Any], source: str = "bundles"
    ) -> BundleDocument:
        price_minor = data.get("priceMinorUnits")
        if price_minor is None:
            # Legacy documents store major units as ``price``
            price = data.get("price") or 0
            price_minor = round(price * 100) if isinstance(price, (int, float)) else 0
        return cls(
            id=doc_id,
            title=str(data.get("title") or ""),
            creator_id=data.get("creatorId") or data.get("userId"),
            description=str(data.get("description") or ""),
            price_minor_units=_as_int(price_minor),
            currency=str(data.get("currency") or "usd"),
            active=data.get("active", True) is not False,
            content_items=tuple(str(i) for i in data.get("contentItems") or []),
            detailed_content_items=tuple(
                d for d in data.get("detailedContentItems") or [] if isinstance(d, dict)
            ),
            content_metadata=dict(data.get("contentMetadata") or {}),
            source=source,
            raw=dict(data),
        )


# --- TierInfo ---


@dataclass(frozen=True)
class TierInfo:
    """Quota snapshot. ``None`` limits mean unlimited."""

    plan: Plan = "free"
    max_content_items_per_bundle: int | None = 10
    max_downloads_per_period: int | None = 15


# --- Purchases ---


@dataclass(frozen=True)
class FulfillmentEvent:
    """A payment that has been verified against the provider."""

    idempotency_key: str
    buyer_id: str
    bundle_id: str
    amount_minor_units: int
    currency: str
    creator_id: str | None = None
    buyer_email: str = ""
    trigger: Trigger = "webhook"
    purchased_at: datetime | None = None


@dataclass(frozen=True)
class PurchaseRecord:
    """
    Canonical receipt of one completed transaction.

    Invariant: at most one completed record per idempotency_key.
    """

    idempotency_key: str
    buyer_id: str
    bundle_id: str
    creator_id: str
    amount_minor_units: int
    currency: str
    status: PurchaseStatus
    purchased_at: datetime
    items: tuple[ContentItem, ...] = ()
    bundle_title: str = ""
    bundle_source: str = "bundles"
    trigger: Trigger = "webhook"
    buyer_email: str = ""
    creator_name: str = ""

    @property
    def total_items(self) -> int:
        return len(self.items)

    @property
    def total_size(self) -> int:
        return sum(item.file_size_bytes for item in self.items)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.idempotency_key,
            "idempotencyKey": self.idempotency_key,
            "sessionId": self.idempotency_key,
            "buyerUid": self.buyer_id,
            "bundleId": self.bundle_id,
            "creatorId": self.creator_id,
            "amountMinorUnits": self.amount_minor_units,
            "currency": self.currency,
            "status": self.status,
            "purchasedAt": _dt_to_doc(self.purchased_at),
            "items": [item.to_document() for item in self.items],
            "itemNames": [item.display_title for item in self.items],
            "totalItems": self.total_items,
            "totalSize": self.total_size,
            "bundleTitle": self.bundle_title,
            "bundleSource": self.bundle_source,
            "trigger": self.trigger,
            "buyerEmail": self.buyer_email,
            "creatorName": self.creator_name,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> PurchaseRecord:
        status = data.get("status")
        if status not in ("pending", "completed", "failed"):
            status = "pending"
        return cls(
            idempotency_key=str(data.get("idempotencyKey") or data.get("id")),
            buyer_id=str(data.get("buyerUid") or ""),
            bundle_id=str(data.get("bundleId") or ""),
            creator_id=str(data.get("creatorId") or ""),
            amount_minor_units=_as_int(data.get("amountMinorUnits")),
            currency=str(data.get("currency") or "usd"),
            status=status,
            purchased_at=_dt_from_doc(data.get("purchasedAt")) or datetime.min,
            items=tuple(ContentItem.from_document(i) for i in data.get("items") or []),
            bundle_title=str(data.get("bundleTitle") or ""),
            bundle_source=str(data.get("bundleSource") or "bundles"),
            trigger=data.get("trigger") or "webhook",
            buyer_email=str(data.get("buyerEmail") or ""),
            creator_name=str(data.get("creatorName") or ""),
        )
