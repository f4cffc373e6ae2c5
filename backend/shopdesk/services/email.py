# backend/shopdesk/services/email.py
"""
Email Service for ShopDesk

Sends transactional email through the configured provider and records
every attempt in the email log. Delivery is best-effort: ``send_email``
never raises for provider failures, it marks the log row FAILED and
reports the error in its return value.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import EmailStatus, EmailType
from ..core.exceptions import NotificationException
from ..models.appointment import Appointment
from ..models.order import Order
from ..models.payment import Payment
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .template_service import TemplateService

logger = logging.getLogger(__name__)


class EmailService(BaseService):
    """Service for rendering, sending and logging transactional email."""

    def __init__(self, db: Session, template_service: Optional[TemplateService] = None):
        super().__init__(db)
        self.email_log_repository = RepositoryFactory.create_email_log_repository(db)
        self.template_service = template_service or TemplateService(db)
        self.provider = settings.email_provider
        self.from_email = settings.from_email

        if self.provider == "resend":
            if not settings.resend_api_key:
                self.logger.warning("Resend provider selected but RESEND_API_KEY is empty")
            resend.api_key = settings.resend_api_key

    def _deliver(self, to_email: str, subject: str, text: str, html: Optional[str]) -> Optional[str]:
        """Hand the message to the provider and return its message id."""
        if self.provider == "console":
            self.logger.info("Email (console) to=%s subject=%s\n%s", to_email, subject, text)
            return None

        try:
            response = resend.Emails.send(
                {
                    "from": self.from_email,
                    "to": to_email,
                    "subject": subject,
                    "html": html or text,
                    "text": text,
                }
            )
        except Exception as exc:
            raise NotificationException(f"Email sending failed: {exc}") from exc

        if isinstance(response, dict):
            return response.get("id")
        return getattr(response, "id", None)

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        text: str,
        html: Optional[str],
        email_type: EmailType,
        *,
        recipient_name: Optional[str] = None,
        related_order_id: Optional[str] = None,
        related_appointment_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send one email and log it.

        Returns:
            ``{"success": bool, "log_id": str, "error": str | None}``
        """
        with self.transaction():
            log = self.email_log_repository.create(
                recipient_email=to_email,
                recipient_name=recipient_name,
                subject=subject,
                text_body=text,
                html_body=html,
                email_type=email_type.value,
                status=EmailStatus.PENDING.value,
                related_order_id=related_order_id,
                related_appointment_id=related_appointment_id,
                email_metadata=metadata,
            )

        error: Optional[str] = None
        try:
            message_id = self._deliver(to_email, subject, text, html)
        except NotificationException as exc:
            error = exc.message
            self.logger.error(f"Failed to send {email_type.value} email to {to_email}: {error}")
            log.status = EmailStatus.FAILED.value
            log.error_message = error
        else:
            log.status = EmailStatus.SENT.value
            log.provider_message_id = message_id
            log.sent_at = datetime.now(timezone.utc)

        with self.transaction():
            self.email_log_repository.flush()

        prometheus_metrics.inc_email(email_type.value, log.status)
        return {"success": error is None, "log_id": log.id, "error": error}

    def send_templated(
        self,
        email_type: EmailType,
        to_email: str,
        context: Dict[str, Any],
        **log_fields: Any,
    ) -> Dict[str, Any]:
        rendered = self.template_service.render_email(email_type, context)
        return self.send_email(
            to_email,
            rendered["subject"],
            rendered["text"],
            rendered["html"],
            email_type,
            recipient_name=context.get("customer_name"),
            **log_fields,
        )

    @BaseService.measure_operation("send_order_confirmation")
    def send_order_confirmation(self, order: Order, to_email: str, customer_name: str) -> Dict[str, Any]:
        context = {
            "customer_name": customer_name,
            "order_number": order.order_number,
            "order_date": order.created_at or datetime.now(timezone.utc),
            "items": [
                {
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "price": item.price,
                    "subtotal": item.subtotal,
                }
                for item in order.items
            ],
            "subtotal": order.subtotal,
            "tax": order.tax,
            "shipping": order.shipping,
            "total": order.total,
            "shipping_address": order.shipping_address,
        }
        return self.send_templated(
            EmailType.ORDER_CONFIRMATION, to_email, context, related_order_id=order.id
        )

    @BaseService.measure_operation("send_payment_receipt")
    def send_payment_receipt(
        self, order: Order, payment: Payment, to_email: str, customer_name: str
    ) -> Dict[str, Any]:
        context = {
            "customer_name": customer_name,
            "order_number": order.order_number,
            "payment_date": payment.created_at or datetime.now(timezone.utc),
            "amount": payment.amount,
            "payment_method": payment.payment_method,
            "transaction_id": payment.transaction_id,
        }
        return self.send_templated(
            EmailType.PAYMENT_RECEIPT,
            to_email,
            context,
            related_order_id=order.id,
            metadata={"payment_id": payment.id},
        )

    def _appointment_context(self, appointment: Appointment, customer_name: str) -> Dict[str, Any]:
        return {
            "customer_name": customer_name,
            "service_name": appointment.service.name,
            "appointment_date": appointment.appointment_date,
            "duration": appointment.duration,
            "price": appointment.price,
            "notes": appointment.notes,
        }

    @BaseService.measure_operation("send_appointment_confirmation")
    def send_appointment_confirmation(
        self, appointment: Appointment, to_email: str, customer_name: str
    ) -> Dict[str, Any]:
        return self.send_templated(
            EmailType.APPOINTMENT_CONFIRMATION,
            to_email,
            self._appointment_context(appointment, customer_name),
            related_appointment_id=appointment.id,
        )

    @BaseService.measure_operation("send_appointment_reminder")
    def send_appointment_reminder(
        self, appointment: Appointment, to_email: str, customer_name: str
    ) -> Dict[str, Any]:
        return self.send_templated(
            EmailType.APPOINTMENT_REMINDER,
            to_email,
            self._appointment_context(appointment, customer_name),
            related_appointment_id=appointment.id,
        )
