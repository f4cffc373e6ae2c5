# backend/shopdesk/routes/v1/webhooks.py
"""Stripe webhook endpoint."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ...core.exceptions import DomainException, ValidationException
from ...schemas.payment import WebhookResponse
from ...services.dependencies import get_payment_lifecycle_service
from ...services.payment_lifecycle_service import PaymentLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    lifecycle: PaymentLifecycleService = Depends(get_payment_lifecycle_service),
):
    """
    Handle Stripe webhook events.

    Signature failures are rejected with 400 before anything is recorded.
    Processing failures return 500 so Stripe redelivers; the ledger row is
    left ``failed`` and the redelivery reclaims it.

    Note:
        This endpoint has no authentication as it uses webhook signature verification
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = lifecycle.stripe_service.construct_event(payload, sig_header)
    except ValidationException as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except DomainException as e:
        raise e.to_http_exception()

    event_type = event.get("type", "unknown")
    logger.info(f"Webhook verified for event: {event_type}")

    try:
        result = await asyncio.to_thread(lifecycle.handle_webhook_event, event)
    except Exception as e:
        logger.error(f"Webhook processing error for {event_type}: {str(e)}")
        body = WebhookResponse(status="error", event_type=event_type, message="Processing failed")
        return JSONResponse(
            body.model_dump(by_alias=True),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return WebhookResponse(**result)
