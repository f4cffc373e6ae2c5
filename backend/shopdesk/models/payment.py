"""
Payment records.

A payment is written when a checkout session completes and is then driven
through PENDING/COMPLETED/FAILED/REFUNDED by Stripe webhooks and admin
refunds. ``transaction_id`` holds the checkout session id;
``stripe_charge_id`` is filled in from ``payment_intent.succeeded`` so that
``charge.refunded`` can find the row with an indexed lookup.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON
import ulid

from ..core.enums import PaymentStatus
from ..database import Base

if TYPE_CHECKING:
    from .appointment import Appointment
    from .order import Order


class Payment(Base):
    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED')",
            name="ck_payments_status",
        ),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    order_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    appointment_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="STRIPE")

    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    stripe_charge_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # "metadata" is reserved on declarative classes
    payment_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    order: Mapped[Optional["Order"]] = relationship("Order", back_populates="payments")
    appointment: Mapped[Optional["Appointment"]] = relationship("Appointment")

    def __repr__(self) -> str:
        return f"<Payment(amount={self.amount} {self.currency}, status={self.status})>"
