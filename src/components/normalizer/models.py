"""
Normalizer component models.

Every content source stores files in its own shape. A source record is
tagged with its SourceKind and each kind has an explicit field-precedence
table: for every output attribute, the source fields tried in order.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from src.core.entities import ContentItem

SourceKind = Literal[
    "upload",
    "creator_upload",
    "product_box_content",
    "bundle_content",
    "bundle_inline",
    "legacy_purchase_item",
]

SOURCE_KINDS: tuple[SourceKind, ...] = (
    "upload",
    "creator_upload",
    "product_box_content",
    "bundle_content",
    "bundle_inline",
    "legacy_purchase_item",
)


# --- Field precedence ---


@dataclass(frozen=True)
class FieldPrecedence:
    """Source fields consulted, in order, for each ContentItem attribute."""

    file_url: tuple[str, ...]
    mime_type: tuple[str, ...] = ("mimeType", "fileType")
    title: tuple[str, ...] = ("title", "filename", "originalFileName", "name")
    filename: tuple[str, ...] = ("filename", "originalFileName", "name")
    file_size: tuple[str, ...] = ("fileSize", "size")
    duration: tuple[str, ...] = ("duration", "videoDuration")
    thumbnail_url: tuple[str, ...] = ("thumbnailUrl", "previewUrl")
    tags: tuple[str, ...] = ("tags",)
    creator_id: tuple[str, ...] = ("creatorId", "userId", "uid")
    created_at: tuple[str, ...] = ("uploadedAt", "createdAt")
    description: tuple[str, ...] = ("description",)
    resolution: tuple[str, ...] = ("resolution", "quality")


PRECEDENCE: dict[SourceKind, FieldPrecedence] = {
    "upload": FieldPrecedence(
        file_url=("fileUrl", "publicUrl", "downloadUrl"),
    ),
    "creator_upload": FieldPrecedence(
        file_url=("fileUrl", "publicUrl", "downloadUrl"),
        title=("title", "filename", "originalFileName"),
        creator_id=("creatorId", "userId"),
        created_at=("createdAt", "uploadedAt"),
    ),
    "product_box_content": FieldPrecedence(
        file_url=("fileUrl", "publicUrl", "downloadUrl", "url"),
        creator_id=("creatorId", "userId"),
    ),
    "bundle_content": FieldPrecedence(
        file_url=("fileUrl", "publicUrl", "downloadUrl", "url"),
        creator_id=("creatorId", "userId"),
    ),
    "bundle_inline": FieldPrecedence(
        file_url=("fileUrl", "downloadUrl", "publicUrl", "url"),
        title=("title", "displayTitle", "filename", "originalFileName", "name"),
        thumbnail_url=("thumbnailUrl", "previewUrl", "thumbnail"),
        created_at=("createdAt", "uploadedAt"),
    ),
    "legacy_purchase_item": FieldPrecedence(
        file_url=("fileUrl", "downloadUrl", "url"),
        title=("title", "displayTitle", "name", "filename"),
        file_size=("fileSize", "size"),
        duration=("duration",),
        thumbnail_url=("thumbnailUrl",),
        created_at=("createdAt", "uploadedAt", "purchasedAt"),
    ),
}


# --- Input / Output ---


@dataclass(frozen=True)
class SourceRecord:
    """A raw document tagged with the shape it came from."""

    kind: SourceKind
    data: Mapping[str, Any]


@dataclass(frozen=True)
class Rejected:
    """A record that cannot become a ContentItem. Never stored or counted."""

    source_id: str
    kind: SourceKind
    reason: str


@dataclass(frozen=True)
class NormalizeManyOutput:
    items: tuple[ContentItem, ...] = ()
    rejected: tuple[Rejected, ...] = ()


# --- Configuration ---


@dataclass(frozen=True)
class NormalizerConfig:
    """Normalizer configuration from rules."""

    allowed_url_schemes: tuple[str, ...] = ("https", "http")
    media_extensions: tuple[str, ...] = (
        "mp4", "mov", "avi", "mkv", "webm", "m4v",
        "mp3", "wav", "jpg", "jpeg", "png", "gif", "pdf",
    )
    default_mime_type: str = "application/octet-stream"
    fallback_title: str = "Untitled"
    extension_by_mime: dict[str, str] = field(
        default_factory=lambda: {
            "video/mp4": "mp4",
            "video/quicktime": "mov",
            "video/webm": "webm",
            "audio/mpeg": "mp3",
            "audio/mp3": "mp3",
            "audio/wav": "wav",
            "image/jpeg": "jpg",
            "image/png": "png",
            "image/gif": "gif",
            "application/pdf": "pdf",
        }
    )
