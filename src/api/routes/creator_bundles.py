from fastapi import APIRouter, Depends

from src.api.deps import (
    get_clock,
    get_current_identity,
    get_normalizer_config,
    get_store,
    get_tier_config,
)
from src.api.schemas import AddContentRequest, AddContentResponse, BundleContentResponse
from src.components.bundle_content import add_content, get_content
from src.components.normalizer import NormalizerConfig
from src.components.tiers import TierConfig, tier_from_membership
from src.core.collections import BUNDLES, MEMBERSHIPS
from src.core.entities import BundleDocument
from src.core.errors import NotFoundError, UnauthorizedError
from src.core.ports.db import DocumentStorePort
from src.core.ports.identity import VerifiedIdentity
from src.core.ports.time import TimePort

router = APIRouter()


def _require_owner(creator_id: str | None, identity: VerifiedIdentity) -> None:
    if creator_id != identity.user_id:
        raise UnauthorizedError("Only the bundle's creator can manage its content")


@router.post("/{bundle_id}/content", response_model=AddContentResponse)
def add_bundle_content(
    bundle_id: str,
    req: AddContentRequest,
    identity: VerifiedIdentity = Depends(get_current_identity),
    store: DocumentStorePort = Depends(get_store),
    clock: TimePort = Depends(get_clock),
    normalizer: NormalizerConfig = Depends(get_normalizer_config),
    tiers: TierConfig = Depends(get_tier_config),
) -> AddContentResponse:
    """Add uploads to a bundle, bounded by the creator's tier."""
    data = store.get(BUNDLES, bundle_id)
    if data is None:
        raise NotFoundError("bundle", bundle_id)
    _require_owner(BundleDocument.from_document(bundle_id, data).creator_id, identity)

    tier = tier_from_membership(store.get(MEMBERSHIPS, identity.user_id), tiers)
    output = add_content(
        store, bundle_id, req.content_ids, tier, config=normalizer, now_utc=clock.now_utc()
    )
    return AddContentResponse.from_output(output)


@router.get("/{bundle_id}/content", response_model=BundleContentResponse)
def get_bundle_content(
    bundle_id: str,
    identity: VerifiedIdentity = Depends(get_current_identity),
    store: DocumentStorePort = Depends(get_store),
) -> BundleContentResponse:
    """Current content of a bundle (legacy product boxes included)."""
    view = get_content(store, bundle_id)
    _require_owner(view.creator_id, identity)
    return BundleContentResponse.from_view(view)
