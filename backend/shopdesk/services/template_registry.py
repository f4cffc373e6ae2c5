"""
Template registry for strongly-typed access to Jinja templates.

Each email type has an HTML and a plain-text template; the subject line is
rendered from a short inline template.
"""

from enum import Enum
from typing import Final

from ..core.enums import EmailType


class TemplateRegistry(str, Enum):
    ORDER_CONFIRMATION_HTML = "email/order_confirmation.html"
    ORDER_CONFIRMATION_TEXT = "email/order_confirmation.txt"
    PAYMENT_RECEIPT_HTML = "email/payment_receipt.html"
    PAYMENT_RECEIPT_TEXT = "email/payment_receipt.txt"
    APPOINTMENT_CONFIRMATION_HTML = "email/appointment_confirmation.html"
    APPOINTMENT_CONFIRMATION_TEXT = "email/appointment_confirmation.txt"
    APPOINTMENT_REMINDER_HTML = "email/appointment_reminder.html"
    APPOINTMENT_REMINDER_TEXT = "email/appointment_reminder.txt"


EMAIL_TEMPLATES: Final[dict[EmailType, tuple[str, TemplateRegistry, TemplateRegistry]]] = {
    EmailType.ORDER_CONFIRMATION: (
        "Order Confirmation - {{ order_number }}",
        TemplateRegistry.ORDER_CONFIRMATION_TEXT,
        TemplateRegistry.ORDER_CONFIRMATION_HTML,
    ),
    EmailType.PAYMENT_RECEIPT: (
        "Payment Receipt - {{ order_number }}",
        TemplateRegistry.PAYMENT_RECEIPT_TEXT,
        TemplateRegistry.PAYMENT_RECEIPT_HTML,
    ),
    EmailType.APPOINTMENT_CONFIRMATION: (
        "Appointment Confirmed - {{ service_name }}",
        TemplateRegistry.APPOINTMENT_CONFIRMATION_TEXT,
        TemplateRegistry.APPOINTMENT_CONFIRMATION_HTML,
    ),
    EmailType.APPOINTMENT_REMINDER: (
        "Reminder: Appointment Tomorrow - {{ service_name }}",
        TemplateRegistry.APPOINTMENT_REMINDER_TEXT,
        TemplateRegistry.APPOINTMENT_REMINDER_HTML,
    ),
}
