"""Order Service for ShopDesk: admin order edits and lifecycle cascades."""

from datetime import datetime, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.enums import ORDER_TRANSITIONS, OrderStatus, can_transition
from ..core.exceptions import InvalidStateException, NotFoundException
from ..models.order import Order
from ..repositories.factory import RepositoryFactory
from ..schemas.order import OrderUpdate
from .base import BaseService

logger = logging.getLogger(__name__)


def _apply_order_status(order: Order, target: OrderStatus) -> None:
    order.status = target.value
    now = datetime.now(timezone.utc)
    if target == OrderStatus.SHIPPED:
        order.shipped_at = now
    elif target == OrderStatus.DELIVERED:
        order.delivered_at = now
    elif target == OrderStatus.CANCELLED:
        order.cancelled_at = now


class OrderService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.order_repository = RepositoryFactory.create_order_repository(db)

    def cascade_status(self, order_id: Optional[str], target: OrderStatus) -> Optional[Order]:
        """
        Move an order as a side effect of a payment event.

        Runs inside the caller's transaction. A transition the order state
        machine does not allow is logged and skipped.
        """
        if not order_id:
            return None
        order = self.order_repository.get_by_id(order_id, for_update=True)
        if order is None:
            self.logger.warning(f"Order {order_id} linked to payment not found")
            return None
        if order.status == target.value:
            return order
        if not can_transition(ORDER_TRANSITIONS, OrderStatus, order.status, target.value):
            self.logger.warning(
                f"Skipping order {order.order_number} cascade {order.status} -> {target.value}"
            )
            return order
        _apply_order_status(order, target)
        self.logger.info(f"Order {order.order_number} moved to {target.value}")
        return order

    @BaseService.measure_operation("update_order")
    def update_order(self, order_id: str, data: OrderUpdate) -> Order:
        """
        Admin order edit.

        Raises:
            NotFoundException: unknown order
            InvalidStateException: status change not allowed
        """
        with self.transaction():
            order = self.order_repository.get_by_id(order_id, for_update=True)
            if order is None:
                raise NotFoundException("Order not found", code="ORDER_NOT_FOUND")

            if data.status is not None and data.status != order.status:
                target = OrderStatus(data.status)
                if not can_transition(ORDER_TRANSITIONS, OrderStatus, order.status, target.value):
                    raise InvalidStateException(
                        f"Cannot change order from {order.status} to {target.value}",
                        current_status=order.status,
                        target_status=target.value,
                    )
                _apply_order_status(order, target)

            if data.notes is not None:
                order.notes = data.notes
            if data.tracking_number is not None:
                order.tracking_number = data.tracking_number
            self.order_repository.flush()

        self.log_operation("order_updated", order_id=order_id, status=order.status)
        return self.order_repository.get_with_items(order_id) or order
