# backend/shopdesk/routes/v1/payments.py
"""
Payment routes for ShopDesk.

Router Endpoints:
    POST /payments/create-checkout-session - Start a Stripe Checkout session
    POST /payments/refund - Admin refund by payment or order id
    POST /payments/refund/{payment_id} - Admin refund of one payment
    GET /payments/stats - Admin payment dashboard totals
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ...core.exceptions import DomainException
from ...dependencies.permissions import Principal, require_admin
from ...schemas.payment import (
    CheckoutSessionCreate,
    CheckoutSessionResponse,
    PaymentResponse,
    PaymentStatsResponse,
    RefundBody,
    RefundRequest,
    RefundResponse,
)
from ...services.dependencies import get_payment_lifecycle_service, get_stripe_service
from ...services.payment_lifecycle_service import PaymentLifecycleService
from ...services.stripe_service import StripeService
from .common import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    data: CheckoutSessionCreate,
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutSessionResponse:
    try:
        return await asyncio.to_thread(stripe_service.create_checkout_session, data)
    except DomainException as e:
        handle_domain_exception(e)


async def _refund(
    lifecycle: PaymentLifecycleService,
    *,
    payment_id: Optional[str],
    order_id: Optional[str],
    reason: Optional[str],
) -> RefundResponse:
    try:
        payment = await asyncio.to_thread(
            lifecycle.refund_payment, payment_id=payment_id, order_id=order_id, reason=reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    logger.info(f"Payment {payment.id} refunded")
    return RefundResponse(
        success=True,
        message="Refund processed successfully",
        payment=PaymentResponse.model_validate(payment),
    )


@router.post("/refund", response_model=RefundResponse)
async def refund(
    data: RefundRequest,
    _: Principal = Depends(require_admin),
    lifecycle: PaymentLifecycleService = Depends(get_payment_lifecycle_service),
) -> RefundResponse:
    """
    Refund a payment identified by payment id or order id.

    Requires: ADMIN role
    """
    return await _refund(
        lifecycle, payment_id=data.payment_id, order_id=data.order_id, reason=data.reason
    )


@router.post("/refund/{payment_id}", response_model=RefundResponse)
async def refund_payment(
    payment_id: str,
    data: Optional[RefundBody] = None,
    _: Principal = Depends(require_admin),
    lifecycle: PaymentLifecycleService = Depends(get_payment_lifecycle_service),
) -> RefundResponse:
    return await _refund(
        lifecycle, payment_id=payment_id, order_id=None, reason=data.reason if data else None
    )


@router.get("/stats", response_model=PaymentStatsResponse)
async def get_payment_stats(
    _: Principal = Depends(require_admin),
    lifecycle: PaymentLifecycleService = Depends(get_payment_lifecycle_service),
) -> PaymentStatsResponse:
    return await asyncio.to_thread(lifecycle.get_payment_stats)
