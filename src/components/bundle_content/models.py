"""
Bundle content component models.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.components.normalizer import Rejected
from src.core.entities import ContentItem, ContentMetadata, TierInfo


@dataclass(frozen=True)
class AddContentInput:
    """Request to append uploads to a bundle."""

    bundle_id: str
    candidate_ids: tuple[str, ...]
    tier: TierInfo


@dataclass(frozen=True)
class AddContentOutput:
    """
    Outcome of an add-content request.

    Partial success is a normal result: ``skipped_for_quota`` lists the
    candidates cut by the tier limit.
    """

    bundle_id: str
    added: tuple[str, ...] = ()
    skipped_for_quota: tuple[str, ...] = ()
    already_present: tuple[str, ...] = ()
    rejected: tuple[Rejected, ...] = ()
    total_items: int = 0
    content_metadata: ContentMetadata | None = None

    @property
    def added_count(self) -> int:
        return len(self.added)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_for_quota)

    @property
    def message(self) -> str:
        text = f"{self.added_count} added"
        if self.skipped_count:
            text += f", {self.skipped_count} skipped due to quota"
        return text


@dataclass(frozen=True)
class BundleContentView:
    """Read model of a bundle's content."""

    bundle_id: str
    title: str
    creator_id: str | None
    source: str
    items: tuple[ContentItem, ...]
    content_metadata: ContentMetadata
