"""
Payment Repository for ShopDesk

Lookups used by the Stripe webhook handlers (by payment intent, by charge)
and the aggregates shown on the admin payment dashboard.
"""

from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.enums import PaymentStatus
from ..models.payment import Payment
from .base_repository import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Payment]:
        query = (
            self._build_query()
            .filter(Payment.stripe_payment_intent_id == payment_intent_id)
            .order_by(Payment.created_at.desc())
        )
        return self._execute_first(query)

    def get_by_charge_id(self, charge_id: str) -> Optional[Payment]:
        return self.find_one_by(stripe_charge_id=charge_id)

    def get_completed_for_order(self, order_id: str, for_update: bool = False) -> Optional[Payment]:
        query = self._build_query().filter(
            Payment.order_id == order_id,
            Payment.status == PaymentStatus.COMPLETED.value,
        )
        if for_update:
            query = query.with_for_update()
        return self._execute_first(query)

    def latest_for_order(self, order_id: str, for_update: bool = False) -> Optional[Payment]:
        query = (
            self._build_query()
            .filter(Payment.order_id == order_id)
            .order_by(Payment.created_at.desc())
        )
        if for_update:
            query = query.with_for_update()
        return self._execute_first(query)

    def count_by_status(self) -> Dict[str, int]:
        query = self.db.query(Payment.status, func.count(Payment.id)).group_by(Payment.status)
        rows = self._execute_query(query)
        return {status: int(count or 0) for status, count in rows}

    def sum_amount(self, status: PaymentStatus) -> Decimal:
        query = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.status == status.value
        )
        value = self._execute_scalar(query)
        return Decimal(str(value or 0))
