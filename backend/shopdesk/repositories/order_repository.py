"""Order and order item data access."""

from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ..models.order import Order, OrderItem
from .base_repository import BaseRepository


class OrderRepository(BaseRepository[Order]):
    def __init__(self, db: Session):
        super().__init__(db, Order)

    def get_by_session_id(self, session_id: str) -> Optional[Order]:
        query = (
            self._build_query()
            .options(selectinload(Order.items))
            .filter(Order.stripe_session_id == session_id)
        )
        return self._execute_first(query)

    def get_with_items(self, order_id: str) -> Optional[Order]:
        query = self._build_query().options(selectinload(Order.items)).filter(Order.id == order_id)
        return self._execute_first(query)

    def order_number_exists(self, order_number: str) -> bool:
        return self.exists(order_number=order_number)


class OrderItemRepository(BaseRepository[OrderItem]):
    def __init__(self, db: Session):
        super().__init__(db, OrderItem)
