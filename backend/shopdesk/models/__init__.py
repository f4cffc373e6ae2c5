"""
Database models for the ShopDesk platform.

- Catalog: categories, bookable services, products
- Users and customer profiles
- Appointments
- Orders, order items and payments
- Email and webhook ledgers
"""

from .appointment import Appointment
from .catalog import Category, Product, Service
from .email_log import EmailLog
from .order import Order, OrderItem
from .payment import Payment
from .user import Customer, User
from .webhook_event import WebhookEvent

__all__ = [
    "Appointment",
    "Category",
    "Customer",
    "EmailLog",
    "Order",
    "OrderItem",
    "Payment",
    "Product",
    "Service",
    "User",
    "WebhookEvent",
]
