"""Admin order routes."""

import asyncio
import logging

from fastapi import APIRouter, Depends

from ...core.exceptions import DomainException
from ...dependencies.permissions import Principal, require_admin
from ...schemas.order import OrderResponse, OrderUpdate
from ...services.dependencies import get_order_service
from ...services.order_service import OrderService
from .common import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: str,
    data: OrderUpdate,
    _: Principal = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Update order status, notes or tracking number.

    Requires: ADMIN role
    """
    try:
        order = await asyncio.to_thread(order_service.update_order, order_id, data)
        return OrderResponse.model_validate(order)
    except DomainException as e:
        handle_domain_exception(e)
