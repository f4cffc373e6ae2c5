"""Outbound email log: one row per send attempt."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON
import ulid

from ..core.enums import EmailStatus
from ..database import Base


class EmailLog(Base):
    __tablename__ = "email_logs"

    __table_args__ = (
        CheckConstraint("status IN ('PENDING', 'SENT', 'FAILED')", name="ck_email_logs_status"),
        Index("ix_email_logs_recipient_email", "recipient_email"),
        Index("ix_email_logs_type_status", "email_type", "status"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    text_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    html_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EmailStatus.PENDING.value)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    related_order_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    related_appointment_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    email_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )

    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<EmailLog(recipient={self.recipient_email}, type={self.email_type}, status={self.status})>"
