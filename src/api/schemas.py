from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from src.components.bundle_content import AddContentOutput, BundleContentView
from src.components.fulfillment import VerificationOutcome
from src.components.normalizer import format_duration, format_file_size
from src.components.reconcile import ReconcileReport
from src.core.entities import ContentItem, ContentMetadata, PurchaseRecord

ContentType = Literal["video", "audio", "image", "document"]


# --- Content ---
class ContentItemModel(BaseModel):
    id: str
    title: str
    display_title: str
    file_url: str
    thumbnail_url: str = ""
    mime_type: str
    content_type: ContentType
    format: str
    file_size: int = 0
    file_size_formatted: str = "0 Bytes"
    duration: float = 0.0
    duration_formatted: str = "0:00"
    tags: list[str] = []
    resolution: str = ""
    description: str = ""

    @classmethod
    def from_item(cls, item: ContentItem) -> ContentItemModel:
        return cls(
            id=item.id,
            title=item.title,
            display_title=item.display_title,
            file_url=item.file_url,
            thumbnail_url=item.thumbnail_url,
            mime_type=item.mime_type,
            content_type=item.content_type,
            format=item.format,
            file_size=item.file_size_bytes,
            file_size_formatted=format_file_size(item.file_size_bytes),
            duration=item.duration_seconds,
            duration_formatted=format_duration(item.duration_seconds),
            tags=sorted(item.tags),
            resolution=item.resolution,
            description=item.description,
        )


def _metadata(metadata: ContentMetadata | None) -> dict[str, Any]:
    return metadata.to_document() if metadata is not None else {}


class AddContentRequest(BaseModel):
    content_ids: list[str] = Field(default_factory=list)


class RejectedModel(BaseModel):
    id: str
    reason: str


class AddContentResponse(BaseModel):
    bundle_id: str
    added: list[str]
    skipped_for_quota: list[str]
    already_present: list[str]
    rejected: list[RejectedModel]
    added_count: int
    skipped_count: int
    total_items: int
    message: str
    content_metadata: dict[str, Any] = {}

    @classmethod
    def from_output(cls, output: AddContentOutput) -> AddContentResponse:
        return cls(
            bundle_id=output.bundle_id,
            added=list(output.added),
            skipped_for_quota=list(output.skipped_for_quota),
            already_present=list(output.already_present),
            rejected=[RejectedModel(id=r.source_id, reason=r.reason) for r in output.rejected],
            added_count=output.added_count,
            skipped_count=output.skipped_count,
            total_items=output.total_items,
            message=output.message,
            content_metadata=_metadata(output.content_metadata),
        )


class BundleContentResponse(BaseModel):
    bundle_id: str
    title: str
    creator_id: str | None
    items: list[ContentItemModel]
    content_metadata: dict[str, Any] = {}

    @classmethod
    def from_view(cls, view: BundleContentView) -> BundleContentResponse:
        return cls(
            bundle_id=view.bundle_id,
            title=view.title,
            creator_id=view.creator_id,
            items=[ContentItemModel.from_item(i) for i in view.items],
            content_metadata=_metadata(view.content_metadata),
        )


# --- Purchases ---
class PurchaseResponse(BaseModel):
    idempotency_key: str
    bundle_id: str
    bundle_title: str
    creator_id: str
    creator_name: str
    amount_minor_units: int
    currency: str
    status: str
    purchased_at: datetime
    total_items: int
    total_size: int
    items: list[ContentItemModel]

    @classmethod
    def from_record(cls, record: PurchaseRecord) -> PurchaseResponse:
        return cls(
            idempotency_key=record.idempotency_key,
            bundle_id=record.bundle_id,
            bundle_title=record.bundle_title,
            creator_id=record.creator_id,
            creator_name=record.creator_name,
            amount_minor_units=record.amount_minor_units,
            currency=record.currency,
            status=record.status,
            purchased_at=record.purchased_at,
            total_items=record.total_items,
            total_size=record.total_size,
            items=[ContentItemModel.from_item(i) for i in record.items],
        )


class VerifyRequest(BaseModel):
    session_id: str
    bundle_id: str | None = None


class VerificationResponse(BaseModel):
    idempotency_key: str
    status: str
    granted: bool
    attempts: int = 1
    payment_status: str = ""
    message: str = ""
    purchase: PurchaseResponse | None = None

    @classmethod
    def from_outcome(cls, outcome: VerificationOutcome) -> VerificationResponse:
        return cls(
            idempotency_key=outcome.idempotency_key,
            status=outcome.status,
            granted=outcome.granted,
            attempts=outcome.attempts,
            payment_status=outcome.payment_status,
            message=outcome.message,
            purchase=PurchaseResponse.from_record(outcome.record) if outcome.record else None,
        )


class WebhookResponse(BaseModel):
    received: bool = True
    status: str
    idempotency_key: str = ""


# --- Reconcile ---
class ReconcileDetailModel(BaseModel):
    legacy_id: str
    idempotency_key: str
    action: str
    reason: str = ""


class ReconcileResponse(BaseModel):
    scanned: int
    upserted: int
    skipped: int
    filtered: int
    errors: int
    details: list[ReconcileDetailModel]

    @classmethod
    def from_report(cls, report: ReconcileReport) -> ReconcileResponse:
        return cls(
            scanned=report.scanned,
            upserted=report.upserted,
            skipped=report.skipped,
            filtered=report.filtered,
            errors=report.errors,
            details=[
                ReconcileDetailModel(
                    legacy_id=d.legacy_id,
                    idempotency_key=d.idempotency_key,
                    action=d.action,
                    reason=d.reason,
                )
                for d in report.details
            ],
        )
