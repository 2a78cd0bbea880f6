from pydantic import BaseModel, ConfigDict, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class NormalizerRules(BaseModel):
    allowed_url_schemes: list[str] = Field(default_factory=lambda: ["https", "http"])
    media_extensions: list[str] = Field(
        default_factory=lambda: [
            "mp4", "mov", "avi", "mkv", "webm", "m4v",
            "mp3", "wav", "jpg", "jpeg", "png", "gif", "pdf",
        ]
    )
    default_mime_type: str = "application/octet-stream"
    fallback_title: str = "Untitled"


class PlanLimits(BaseModel):
    # null means unlimited
    max_content_items_per_bundle: int | None = Field(default=None, ge=0)
    max_downloads_per_period: int | None = Field(default=None, ge=0)


class TiersRules(BaseModel):
    free: PlanLimits
    pro: PlanLimits
    pro_plan_names: list[str] = Field(default_factory=lambda: ["pro", "creator_pro"])
    active_statuses: list[str] = Field(default_factory=lambda: ["active", "trialing"])


class PollingRules(BaseModel):
    max_attempts: int = Field(default=5, ge=1)
    delay_seconds: float = Field(default=2.0, ge=0)


class FulfillmentRules(BaseModel):
    anonymous_sentinels: list[str]
    successful_payment_statuses: list[str]
    handled_webhook_events: list[str]
    polling: PollingRules = Field(default_factory=PollingRules)


class PurchasesRules(BaseModel):
    default_currency: str = "usd"


class ReconcileRules(BaseModel):
    legacy_purchase_types: list[str] = Field(default_factory=lambda: ["bundle", "product_box"])


class Rules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project: ProjectRules
    normalizer: NormalizerRules = Field(default_factory=NormalizerRules)
    tiers: TiersRules
    fulfillment: FulfillmentRules
    purchases: PurchasesRules = Field(default_factory=PurchasesRules)
    reconcile: ReconcileRules = Field(default_factory=ReconcileRules)
