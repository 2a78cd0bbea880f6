import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from src.api.deps import get_verifier
from src.api.schemas import WebhookResponse
from src.components.fulfillment import FulfillmentVerifier

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    verifier: FulfillmentVerifier = Depends(get_verifier),
) -> WebhookResponse:
    """
    Signed provider webhook.

    Errors marked retryable answer 5xx so the provider redelivers;
    redelivery after success is answered with ``already_processed``.
    """
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    outcome = verifier.handle_webhook(payload, stripe_signature)
    return WebhookResponse(status=outcome.status, idempotency_key=outcome.idempotency_key)
