"""
Appointment model.

An appointment books a Service for a Customer at a start instant. Duration
and price are snapshotted from the service when the appointment is created
and are never recomputed, so later service edits do not move existing
bookings. ``cancelled_at`` is the soft-cancel marker; cancelled rows are
ignored by conflict checks.

``appointment_date`` is a naive wall-clock datetime in the business's local
time.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..core.enums import AppointmentStatus
from ..database import Base

if TYPE_CHECKING:
    from .catalog import Service
    from .user import Customer


class Appointment(Base):
    __tablename__ = "appointments"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED', 'NO_SHOW')",
            name="ck_appointments_status",
        ),
        CheckConstraint("duration > 0", name="ck_appointments_duration_positive"),
        Index("ix_appointments_service_date", "service_id", "appointment_date"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    service_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("services.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("customers.id", ondelete="CASCADE"), nullable=True
    )
    appointment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Snapshot from the service at booking time
    duration: Mapped[int] = mapped_column(Integer, nullable=False, comment="Minutes")
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AppointmentStatus.PENDING.value, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    service: Mapped["Service"] = relationship("Service", back_populates="appointments")
    customer: Mapped[Optional["Customer"]] = relationship("Customer")

    @property
    def end_time(self) -> datetime:
        return self.appointment_date + timedelta(minutes=self.duration)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval overlap with ``[start, end)``."""
        return start < self.end_time and self.appointment_date < end

    def __repr__(self) -> str:
        return f"<Appointment(service_id={self.service_id}, at={self.appointment_date}, status={self.status})>"
