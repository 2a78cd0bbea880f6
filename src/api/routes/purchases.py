from fastapi import APIRouter, Depends

from src.api.deps import (
    get_current_identity,
    get_optional_identity,
    get_reconcile_config,
    get_recorder,
    get_store,
    get_verifier,
)
from src.api.schemas import (
    PurchaseResponse,
    ReconcileResponse,
    VerificationResponse,
    VerifyRequest,
)
from src.components.fulfillment import FulfillmentVerifier
from src.components.purchases import PurchaseRecorder
from src.components.reconcile import ReconcileConfig, reconcile
from src.core.ports.db import DocumentStorePort
from src.core.ports.identity import VerifiedIdentity

router = APIRouter()


@router.post("/verify", response_model=VerificationResponse)
def verify_purchase(
    req: VerifyRequest,
    identity: VerifiedIdentity | None = Depends(get_optional_identity),
    verifier: FulfillmentVerifier = Depends(get_verifier),
) -> VerificationResponse:
    """Verify a checkout session with the provider and grant access."""
    outcome = verifier.verify(req.session_id, identity, bundle_id=req.bundle_id)
    return VerificationResponse.from_outcome(outcome)


@router.get("/{session_id}/status", response_model=VerificationResponse)
def purchase_status(
    session_id: str,
    identity: VerifiedIdentity | None = Depends(get_optional_identity),
    verifier: FulfillmentVerifier = Depends(get_verifier),
) -> VerificationResponse:
    """One polling attempt; unpaid sessions report ``pending``."""
    return VerificationResponse.from_outcome(verifier.poll_once(session_id, identity))


@router.post("/{session_id}/await", response_model=VerificationResponse)
def await_purchase(
    session_id: str,
    identity: VerifiedIdentity | None = Depends(get_optional_identity),
    verifier: FulfillmentVerifier = Depends(get_verifier),
) -> VerificationResponse:
    """Bounded server-side polling; gives up with ``verification_delayed``."""
    return VerificationResponse.from_outcome(verifier.await_fulfillment(session_id, identity))


@router.get("", response_model=list[PurchaseResponse])
def list_purchases(
    identity: VerifiedIdentity = Depends(get_current_identity),
    recorder: PurchaseRecorder = Depends(get_recorder),
) -> list[PurchaseResponse]:
    """Completed purchases of the caller, newest first."""
    return [PurchaseResponse.from_record(r) for r in recorder.list_for_buyer(identity.user_id)]


@router.post("/migrate", response_model=ReconcileResponse)
def migrate_purchases(
    identity: VerifiedIdentity = Depends(get_current_identity),
    store: DocumentStorePort = Depends(get_store),
    recorder: PurchaseRecorder = Depends(get_recorder),
    config: ReconcileConfig = Depends(get_reconcile_config),
) -> ReconcileResponse:
    """Move the caller's legacy purchases into the unified history."""
    report = reconcile(store, recorder, config, buyer_ids=[identity.user_id])
    return ReconcileResponse.from_report(report)
